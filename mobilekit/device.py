"""Connected Apple devices: detecting them and deploying an app to them."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import platform
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from . import ios_deploy, simctl
from .command import Command, Handle
from .ios_deploy import RunAndDebugError, parse_events
from .output import CommandError
from .simctl import SimulatorDevice, SimulatorRunError
from .target import ArchiveError, BuildError, ExportError, Target

logger = logging.getLogger(__name__)

_DETECT_COMMAND = "ios-deploy --detect --timeout 1 --json --no-wifi"


def _explicit_env(env: Any) -> Mapping[str, str]:
    if env is None:
        return {}
    if isinstance(env, Mapping):
        return env
    return env.explicit_env()


def _quoted(value: Any) -> str:
    return json.dumps(os.fspath(value) if isinstance(value, os.PathLike) else value,
                      ensure_ascii=False)


class RunError(Exception):
    """Building, packaging or deploying the app to a device failed."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        *,
        old: Path | None = None,
        new: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.old = old
        self.new = new


class DeviceListError(Exception):
    """Connected devices couldn't be detected."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


def _simulator_arch() -> str:
    return "arm64-sim" if platform.machine().lower() in ("arm64", "aarch64") else "x86_64"


def _ipa_path(config: Any) -> Path:
    export_dir = Path(config.export_dir)
    old = export_dir / f"{config.scheme}.ipa"
    # The name of the exported IPA changed between Xcode versions.
    new = export_dir / f"{config.app_name}.ipa"
    for path in (old, new):
        found = path.is_file()
        logger.info("IPA %sfound at %r", "" if found else "not ", str(path))
        if found:
            return path
    raise RunError(
        f"IPA appears to be missing. Not found at either {_quoted(old)} or {_quoted(new)}",
        old=old,
        new=new,
    )


@dataclass(frozen=True, order=True)
class Device:
    """A physical device or simulator that an app can be run on."""

    id: str
    name: str
    model: str
    target: Target
    simulator: bool = False

    def __str__(self) -> str:
        return f"{self.name} ({self.model})"

    @classmethod
    def from_simulator(cls, simulator: SimulatorDevice) -> Device:
        """A device for an available simulator, targeting the host's simulator arch."""
        target = Target.for_arch(_simulator_arch())
        if target is None:
            raise DeviceListError(f"{_quoted(_simulator_arch())} isn't a valid target arch.")
        return cls(
            id=simulator.udid,
            name=simulator.name,
            model="",
            target=target,
            simulator=True,
        )

    def as_simulator(self) -> Device:
        """This device, marked as a simulator."""
        return dataclasses.replace(self, simulator=True)

    def run(
        self,
        config: Any,
        env: Any,
        pedantic: bool = False,
        non_interactive: bool = False,
        configuration: str = "debug",
    ) -> Handle:
        """Build, archive and deploy the app, returning a handle to the deploy step.

        ``config`` needs what :class:`Target` needs plus ``app_name``,
        ``app_path`` and ``reverse_domain``.
        """
        print("Building app...")
        try:
            self.target.build(config, env, pedantic, configuration)
        except BuildError as cause:
            raise RunError(str(cause), cause) from cause
        print("Archiving app...")
        try:
            self.target.archive(config, env, pedantic, configuration, None)
        except ArchiveError as cause:
            raise RunError(str(cause), cause) from cause

        if self.simulator:
            try:
                return simctl.run(config, env, self.id)
            except SimulatorRunError as cause:
                raise RunError(str(cause), cause) from cause

        print("Exporting app...")
        try:
            self.target.export(config, env, pedantic)
        except ExportError as cause:
            raise RunError(str(cause), cause) from cause
        print("Extracting IPA...")
        ipa = _ipa_path(config)
        command = (
            Command.pure("unzip")
            .with_env_vars(_explicit_env(env))
            .with_args([] if pedantic else ["-q"])
            .with_arg("-o")  # always overwrite
            .with_arg(ipa)
            .with_arg("-d")
            .with_arg(config.export_dir)
        )
        try:
            command.run_and_wait()
        except CommandError as cause:
            raise RunError(f"Failed to unzip archive: {cause}", cause) from cause

        try:
            return ios_deploy.run_and_debug(config, env, non_interactive, self.id)
        except RunAndDebugError as cause:
            raise RunError(str(cause), cause) from cause


def parse_device_list(stdout: str) -> list[Device]:
    """Sorted, unique devices from `ios-deploy --detect --json` output."""
    devices = set()
    for event in parse_events(stdout):
        info = event.device_info
        if info is None:
            continue
        target = Target.for_arch(info.model_arch)
        if target is None:
            raise DeviceListError(f"{_quoted(info.model_arch)} isn't a valid target arch.")
        devices.add(
            Device(
                id=info.device_identifier,
                name=info.device_name,
                model=info.model_name,
                target=target,
            )
        )
    return sorted(devices)


def device_list(env: Any) -> list[Device]:
    """The devices currently connected, as reported by `ios-deploy`."""
    command = Command.pure_parse(_DETECT_COMMAND).with_env_vars(_explicit_env(env))
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
        raise DeviceListError(
            f"Failed to request device list from `ios-deploy`: {err}", err
        ) from err
    return parse_device_list(stdout)