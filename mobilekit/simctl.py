"""iOS simulators: listing them, opening them and running an app on them."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .command import Command, Handle
from .output import CommandError

logger = logging.getLogger(__name__)


def _explicit_env(env: Any) -> Mapping[str, str]:
    if env is None:
        return {}
    if isinstance(env, Mapping):
        return env
    return env.explicit_env()


class SimulatorListError(Exception):
    """The list of simulators couldn't be obtained."""


class SimulatorRunError(Exception):
    """The app couldn't be deployed to a simulator."""

    def __init__(self, cause: CommandError) -> None:
        super().__init__(f"Failed to deploy app to simulator: {cause}")
        self.cause = cause


@dataclass(frozen=True, order=True)
class SimulatorDevice:
    """An available simulator."""

    name: str
    udid: str

    def __str__(self) -> str:
        return self.name

    @classmethod
    def _from_json(cls, data: Any) -> SimulatorDevice:
        if not isinstance(data, Mapping):
            raise SimulatorListError("`simctl list` returned an invalid JSON: device isn't an object")
        for key in ("name", "udid"):
            if not isinstance(data.get(key), str):
                raise SimulatorListError(
                    f"`simctl list` returned an invalid JSON: missing or invalid field `{key}`"
                )
        return cls(name=data["name"], udid=data["udid"])

    def start(self, env: Any) -> Handle:
        """Open the Simulator app on this device."""
        return (
            Command.impure("open")
            .with_args(["-a", "Simulator", "--args", "-CurrentDeviceUDID", self.udid])
            .with_env_vars(_explicit_env(env))
            .run()
        )


def parse_device_list(stdout: str) -> list[SimulatorDevice]:
    """Sorted, unique iOS simulators from `simctl list --json` output."""
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as cause:
        raise SimulatorListError(f"`simctl list` returned an invalid JSON: {cause}") from cause
    devices = data.get("devices") if isinstance(data, Mapping) else None
    if not isinstance(devices, Mapping):
        raise SimulatorListError("`simctl list` returned an invalid JSON: missing field `devices`")
    found = set()
    for runtime, entries in devices.items():
        if not isinstance(entries, list):
            raise SimulatorListError(
                f"`simctl list` returned an invalid JSON: devices of {runtime!r} aren't a list"
            )
        if "iOS" in runtime:
            found.update(SimulatorDevice._from_json(entry) for entry in entries)
    return sorted(found)


def device_list(env: Any) -> list[SimulatorDevice]:
    """The available iOS simulators, as reported by `xcrun simctl`."""
    command = Command.pure_parse("xcrun simctl list --json devices available").with_env_vars(
        _explicit_env(env)
    )
    try:
        stdout = command.run_and_wait_for_output().stdout_str()
    except CommandError as err:
        output = err.output
        if output is not None and not output.stdout and not output.stderr:
            logger.info(
                "device detection returned a non-zero exit code, but stdout and stderr "
                "are both empty; interpreting as a successful run with no devices connected"
            )
            return []
        raise SimulatorListError(f"Failed to request device list from `simctl`: {err}") from err
    return parse_device_list(stdout)


def run(config: Any, env: Any, device_id: str) -> Handle:
    """Install the archived app on a simulator and launch it.

    ``config`` needs the attributes ``export_dir``, ``app_name`` and
    ``reverse_domain``.
    """
    print("Deploying app to device...")
    name = config.app_name
    app = (
        config.export_dir
        / f"{name}_iOS.xcarchive"
        / "Products/Applications"
        / f"{name}.app"
    )
    variables = _explicit_env(env)
    try:
        Command.pure("xcrun").with_env_vars(variables).with_args(
            ["simctl", "install", device_id]
        ).with_arg(app).run().wait()
        return (
            Command.pure("xcrun")
            .with_env_vars(variables)
            .with_args(["simctl", "launch"])
            .with_args(["--console"])
            .with_arg(device_id)
            .with_arg(f"{config.reverse_domain}.{name}")
            .run()
        )
    except CommandError as cause:
        raise SimulatorRunError(cause) from cause