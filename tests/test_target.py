from pathlib import Path
from types import SimpleNamespace

import pytest

from mobilekit.output import CommandFailed
from mobilekit.target import (
    BuildError,
    ExportError,
    Target,
    XcodeTooLow,
)

RECORD = 'printf \'%s\\n\' "$@" >> "$ARGS_FILE"\n'


def _fake_tool(bin_dir: Path, name: str, body: str) -> None:
    path = bin_dir / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)


@pytest.fixture
def setup(tmp_path):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    args_file = tmp_path / "args.txt"
    env = {"PATH": str(bin_dir), "ARGS_FILE": str(args_file)}
    config = SimpleNamespace(
        scheme="demo_iOS",
        workspace_path=tmp_path / "demo.xcworkspace",
        archive_dir=tmp_path / "build",
        project_dir=tmp_path,
        export_plist_path=tmp_path / "ExportOptions.plist",
        export_dir=tmp_path / "build",
    )
    return SimpleNamespace(bin_dir=bin_dir, args_file=args_file, env=env, config=config)


def test_all_is_in_name_order():
    assert list(Target.all()) == ["aarch64", "aarch64-sim", "x86_64"]
    assert Target.name_list() == list(Target.all())
    assert Target.DEFAULT_KEY in Target.all()


def test_for_arch_matches_arch_and_alias():
    assert Target.for_arch("arm64") is Target.all()["aarch64"]
    assert Target.for_arch("arm64e") is Target.all()["aarch64"]
    assert Target.for_arch("arm64-sim").triple == "aarch64-apple-ios-sim"
    assert Target.for_arch("x86_64").sdk == "iphonesimulator"
    assert Target.for_arch("mips") is None


def test_macos_target():
    assert Target.macos().triple == "x86_64-apple-darwin"
    assert Target.macos().is_macos()
    assert not any(target.is_macos() for target in Target.all().values())


def test_min_xcode_version_too_low():
    target = Target.all()["x86_64"]
    with pytest.raises(XcodeTooLow) as info:
        target.min_xcode_version_satisfied((10, 3))
    assert info.value.you_have == (10, 3)
    assert info.value.you_need == (11, 0)
    assert "iOS Simulator doesn't support Metal until Xcode 11.0" in str(info.value)


def test_min_xcode_version_satisfied():
    assert Target.all()["x86_64"].min_xcode_version_satisfied((12, 1)) == (12, 1)
    assert Target.all()["x86_64"].min_xcode_version_satisfied((11, 0)) == (11, 0)
    assert Target.all()["aarch64"].min_xcode_version_satisfied() is None


def test_build_passes_expected_arguments(setup):
    body = RECORD + 'printf \'%s\' "$FORCE_COLOR" > "$ARGS_FILE.env"\n'
    _fake_tool(setup.bin_dir, "xcodebuild", body)
    Target.all()["aarch64"].build(setup.config, setup.env, False, "release")
    assert setup.args_file.read_text().splitlines() == [
        "-quiet",
        "-scheme",
        "demo_iOS",
        "-workspace",
        str(setup.config.workspace_path),
        "-sdk",
        "iphoneos",
        "-configuration",
        "release",
        "-arch",
        "arm64",
        "-allowProvisioningUpdates",
        "build",
    ]
    assert Path(str(setup.args_file) + ".env").read_text() == "--force-color"


def test_build_failure_raises_build_error(setup):
    _fake_tool(setup.bin_dir, "xcodebuild", "exit 3\n")
    with pytest.raises(BuildError) as info:
        Target.all()["aarch64"].build(setup.config, setup.env)
    assert isinstance(info.value.cause, CommandFailed)
    assert info.value.cause.code == 3


def test_archive_without_build_number(setup):
    _fake_tool(setup.bin_dir, "xcodebuild", RECORD)
    Target.all()["x86_64"].archive(setup.config, setup.env, True, "debug")
    args = setup.args_file.read_text().splitlines()
    assert "-quiet" not in args
    assert args[-3:] == ["archive", "-archivePath", str(setup.config.archive_dir / "demo_iOS")]
    assert args[args.index("-sdk") + 1] == "iphonesimulator"


def test_export_arguments(setup):
    _fake_tool(setup.bin_dir, "xcodebuild", RECORD)
    Target.all()["aarch64"].export(setup.config, setup.env)
    assert setup.args_file.read_text().splitlines() == [
        "-quiet",
        "-exportArchive",
        "-archivePath",
        str(setup.config.archive_dir / "demo_iOS.xcarchive"),
        "-exportOptionsPlist",
        str(setup.config.export_plist_path),
        "-exportPath",
        str(setup.config.export_dir),
    ]


def test_export_missing_tool(setup):
    with pytest.raises(ExportError) as info:
        Target.all()["aarch64"].export(setup.config, setup.env)
    assert "xcodebuild" in str(info.value)