"""Looking up the installed Xcode version."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from .command import Command
from .output import CommandError

_COMMAND = "system_profiler SPDeveloperToolsDataType"
_VERSION_RE = re.compile(r"\bVersion: (?P<major>\d+)\.(?P<minor>\d+)\b", re.ASCII)
_U32_MAX = 2**32 - 1


class SystemProfileError(Exception):
    """The developer tools version couldn't be determined."""


class XcodeNotInstalled(SystemProfileError):
    def __init__(self) -> None:
        super().__init__("Xcode doesn't appear to be installed.")


class VersionSearchFailed(SystemProfileError):
    """The command's output held no version."""

    def __init__(self, command: str, output: str) -> None:
        super().__init__(
            f"Didn't find a version in the output of command {json.dumps(command)}: {output}"
        )
        self.command = command
        self.output = output


def _component(raw: str, which: str) -> int:
    value = int(raw)
    if value > _U32_MAX:
        raise SystemProfileError(
            f"The {which} version {json.dumps(raw)} wasn't a valid number: "
            "number too large to fit in target type"
        )
    return value


@dataclass(frozen=True)
class DeveloperTools:
    """The installed developer tools; only the version is recorded."""

    version: tuple[int, int]

    @classmethod
    def from_output(cls, output: str, command: str = _COMMAND) -> DeveloperTools:
        """Read the version from ``system_profiler`` output."""
        if not output:
            raise XcodeNotInstalled()
        match = _VERSION_RE.search(output)
        if match is None:
            raise VersionSearchFailed(command, output)
        return cls(
            version=(
                _component(match.group("major"), "major"),
                _component(match.group("minor"), "minor"),
            )
        )

    @classmethod
    def detect(cls) -> DeveloperTools:
        """Ask ``system_profiler`` for the installed version."""
        command = Command.impure_parse(_COMMAND)
        display = command.display
        try:
            output = command.run_and_wait_for_string()
        except CommandError as cause:
            raise SystemProfileError(str(cause)) from cause
        return cls.from_output(output, display)