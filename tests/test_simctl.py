import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from mobilekit.simctl import (
    SimulatorDevice,
    SimulatorListError,
    SimulatorRunError,
    device_list,
    parse_device_list,
    run,
)

RECORD = 'printf \'%s\\n\' "$@" >> "$ARGS_FILE"\necho ---- >> "$ARGS_FILE"\n'

LISTING = {
    "devices": {
        "com.apple.CoreSimulator.SimRuntime.iOS-17-0": [
            {"name": "iPhone 15", "udid": "FAKE-UDID-2", "state": "Shutdown"},
            {"name": "iPad", "udid": "FAKE-UDID-1"},
        ],
        "com.apple.CoreSimulator.SimRuntime.watchOS-10-0": [
            {"name": "Watch", "udid": "FAKE-UDID-3"}
        ],
    }
}


def _fake_tool(bin_dir: Path, name: str, body: str) -> None:
    path = bin_dir / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)


def _invocations(args_file: Path) -> list[list[str]]:
    chunks = args_file.read_text().split("----\n")
    return [chunk.splitlines() for chunk in chunks if chunk]


@pytest.fixture
def bin_env(tmp_path):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    args_file = tmp_path / "args.txt"
    env = {"PATH": str(bin_dir), "ARGS_FILE": str(args_file)}
    return SimpleNamespace(bin_dir=bin_dir, args_file=args_file, env=env)


def test_parse_keeps_only_ios_sorted():
    devices = parse_device_list(json.dumps(LISTING))
    assert devices == [
        SimulatorDevice("iPad", "FAKE-UDID-1"),
        SimulatorDevice("iPhone 15", "FAKE-UDID-2"),
    ]
    assert [str(device) for device in devices] == ["iPad", "iPhone 15"]


def test_parse_removes_duplicates():
    entry = {"name": "iPad", "udid": "FAKE-UDID-1"}
    listing = {"devices": {"iOS-16": [entry], "iOS-17": [entry]}}
    assert parse_device_list(json.dumps(listing)) == [SimulatorDevice("iPad", "FAKE-UDID-1")]


def test_parse_invalid_json():
    with pytest.raises(SimulatorListError) as info:
        parse_device_list("{oops")
    assert str(info.value).startswith("`simctl list` returned an invalid JSON: ")


def test_parse_missing_udid():
    with pytest.raises(SimulatorListError):
        parse_device_list(json.dumps({"devices": {"iOS-17": [{"name": "iPad"}]}}))


def test_device_list_from_command(bin_env):
    _fake_tool(bin_env.bin_dir, "xcrun", f"printf '%s' '{json.dumps(LISTING)}'\n")
    assert device_list(bin_env.env) == parse_device_list(json.dumps(LISTING))


def test_device_list_silent_failure_means_no_devices(bin_env):
    _fake_tool(bin_env.bin_dir, "xcrun", "exit 1\n")
    assert device_list(bin_env.env) == []


def test_device_list_noisy_failure_raises(bin_env):
    _fake_tool(bin_env.bin_dir, "xcrun", "echo boom >&2\nexit 1\n")
    with pytest.raises(SimulatorListError) as info:
        device_list(bin_env.env)
    assert "boom" in str(info.value)


def test_run_installs_then_launches(bin_env, tmp_path):
    _fake_tool(bin_env.bin_dir, "xcrun", RECORD)
    config = SimpleNamespace(
        export_dir=tmp_path / "build", app_name="demo", reverse_domain="com.example"
    )
    handle = run(config, bin_env.env, "FAKE-UDID-1")
    assert handle.wait() == 0
    app = tmp_path / "build" / "demo_iOS.xcarchive" / "Products/Applications" / "demo.app"
    assert _invocations(bin_env.args_file) == [
        ["simctl", "install", "FAKE-UDID-1", str(app)],
        ["simctl", "launch", "--console", "FAKE-UDID-1", "com.example.demo"],
    ]


def test_run_install_failure(bin_env, tmp_path):
    _fake_tool(bin_env.bin_dir, "xcrun", "exit 2\n")
    config = SimpleNamespace(
        export_dir=tmp_path / "build", app_name="demo", reverse_domain="com.example"
    )
    with pytest.raises(SimulatorRunError) as info:
        run(config, bin_env.env, "FAKE-UDID-1")
    assert info.value.cause.code == 2


def test_start_opens_simulator(bin_env):
    _fake_tool(bin_env.bin_dir, "open", RECORD)
    device = SimulatorDevice("iPad", "FAKE-UDID-1")
    assert device.start(bin_env.env).wait() == 0
    assert _invocations(bin_env.args_file) == [
        ["-a", "Simulator", "--args", "-CurrentDeviceUDID", "FAKE-UDID-1"]
    ]