"""Apple build targets and the `xcodebuild` steps that act on them."""

from __future__ import annotations

import types
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from .command import Command
from .output import CommandError
from .system_profile import DeveloperTools, SystemProfileError

XcodeVersion = tuple[int, int]


def _explicit_env(env: Any) -> Mapping[str, str]:
    """The variables to hand to a command: a mapping, or an object with ``explicit_env()``."""
    if env is None:
        return {}
    if isinstance(env, Mapping):
        return env
    return env.explicit_env()


def _verbosity(pedantic: bool) -> list[str]:
    return [] if pedantic else ["-quiet"]


class VersionCheckError(Exception):
    """The installed Xcode couldn't be shown to be recent enough."""


class XcodeLookupFailed(VersionCheckError):
    """The installed Xcode version couldn't be determined."""

    def __init__(self, cause: SystemProfileError) -> None:
        super().__init__(f"Failed to lookup Xcode version: {cause}")
        self.cause = cause


class XcodeTooLow(VersionCheckError):
    """The installed Xcode is older than a target needs."""

    def __init__(self, msg: str, you_have: XcodeVersion, you_need: XcodeVersion) -> None:
        super().__init__(
            f"Installed Xcode version too low ({msg} Xcode {you_need[0]}.{you_need[1]}; "
            f"you have Xcode {you_have[0]}.{you_have[1]}.); please upgrade and try again"
        )
        self.msg = msg
        self.you_have = you_have
        self.you_need = you_need


class BuildError(Exception):
    """Building through `xcodebuild` failed."""

    def __init__(self, cause: CommandError) -> None:
        super().__init__(str(cause))
        self.cause = cause


class ArchiveError(Exception):
    """Setting the version number or archiving through `xcodebuild` failed."""

    def __init__(self, message: str, cause: CommandError) -> None:
        super().__init__(message)
        self.cause = cause


class ExportError(Exception):
    """Exporting an archive through `xcodebuild` failed."""

    def __init__(self, cause: CommandError) -> None:
        super().__init__(str(cause))
        self.cause = cause


@dataclass(frozen=True, order=True)
class Target:
    """An Apple target: its Rust triple, Xcode arch and SDK.

    The ``config`` handed to the build steps is any object with the attributes
    ``scheme``, ``workspace_path``, ``archive_dir``, ``project_dir``,
    ``export_plist_path`` and ``export_dir``.
    """

    triple: str
    arch: str
    sdk: str
    alias: Optional[str] = None
    min_xcode_version: Optional[tuple[XcodeVersion, str]] = None

    DEFAULT_KEY: ClassVar[str] = "aarch64"

    @classmethod
    def all(cls) -> Mapping[str, Target]:
        """Every known target by name, in name order."""
        return types.MappingProxyType(_TARGETS)

    @classmethod
    def name_list(cls) -> list[str]:
        return list(_TARGETS)

    @classmethod
    def macos(cls) -> Target:
        return cls(triple="x86_64-apple-darwin", arch="x86_64", sdk="iphoneos")

    def is_macos(self) -> bool:
        return self == Target.macos()

    @classmethod
    def for_arch(cls, arch: str) -> Target | None:
        """The first target whose arch or alias is ``arch``."""
        return next(
            (target for target in _TARGETS.values() if arch in (target.arch, target.alias)),
            None,
        )

    def min_xcode_version_satisfied(
        self, installed_version: XcodeVersion | None = None
    ) -> XcodeVersion | None:
        """Check the installed Xcode against this target's minimum.

        Returns the version that was checked, or ``None`` when the target has
        no minimum. The installed version is looked up when not given.
        """
        if self.min_xcode_version is None:
            return None
        min_version, msg = self.min_xcode_version
        if installed_version is None:
            try:
                installed_version = DeveloperTools.detect().version
            except SystemProfileError as cause:
                raise XcodeLookupFailed(cause) from cause
        installed_version = tuple(installed_version)
        if installed_version < min_version:
            raise XcodeTooLow(msg, installed_version, min_version)
        return installed_version

    def _xcodebuild(self, config: Any, env: Any, pedantic: bool, configuration: str) -> Command:
        return (
            Command.pure("xcodebuild")
            .with_env_vars(_explicit_env(env))
            .with_args(_verbosity(pedantic))
            .with_args(["-scheme", config.scheme])
            .with_arg("-workspace")
            .with_arg(config.workspace_path)
            .with_args(["-sdk", self.sdk])
            .with_args(["-configuration", configuration])
            .with_args(["-arch", self.arch])
            .with_arg("-allowProvisioningUpdates")
        )

    def build(
        self, config: Any, env: Any, pedantic: bool = False, configuration: str = "debug"
    ) -> None:
        """Build the Xcode scheme for this target."""
        command = (
            Command.pure("xcodebuild")
            .with_env_vars(_explicit_env(env))
            .with_env_var("FORCE_COLOR", "--force-color")
            .with_args(_verbosity(pedantic))
            .with_args(["-scheme", config.scheme])
            .with_arg("-workspace")
            .with_arg(config.workspace_path)
            .with_args(["-sdk", self.sdk])
            .with_args(["-configuration", configuration])
            .with_args(["-arch", self.arch])
            .with_arg("-allowProvisioningUpdates")
            .with_arg("build")
        )
        try:
            command.run_and_wait()
        except CommandError as cause:
            raise BuildError(cause) from cause

    def archive(
        self,
        config: Any,
        env: Any,
        pedantic: bool = False,
        configuration: str = "debug",
        build_number: Any = None,
    ) -> None:
        """Archive the app, first setting its build number when one is given."""
        if build_number is not None:
            try:
                Command.pure_parse("xcrun agvtool new-version -all").with_arg(
                    str(build_number)
                ).with_current_dir(config.project_dir).run_and_wait()
            except CommandError as cause:
                raise ArchiveError(
                    f"Failed to set app version number: {cause}", cause
                ) from cause
        archive_path = config.archive_dir / config.scheme
        command = (
            self._xcodebuild(config, env, pedantic, configuration)
            .with_arg("archive")
            .with_arg("-archivePath")
            .with_arg(archive_path)
        )
        try:
            command.run_and_wait()
        except CommandError as cause:
            raise ArchiveError(f"Failed to archive via `xcodebuild`: {cause}", cause) from cause

    def export(self, config: Any, env: Any, pedantic: bool = False) -> None:
        """Export the archive built by :meth:`archive`."""
        archive_path = config.archive_dir / f"{config.scheme}.xcarchive"
        command = (
            Command.pure("xcodebuild")
            .with_env_vars(_explicit_env(env))
            .with_args(_verbosity(pedantic))
            .with_arg("-exportArchive")
            .with_arg("-archivePath")
            .with_arg(archive_path)
            .with_arg("-exportOptionsPlist")
            .with_arg(config.export_plist_path)
            .with_arg("-exportPath")
            .with_arg(config.export_dir)
        )
        try:
            command.run_and_wait()
        except CommandError as cause:
            raise ExportError(cause) from cause


_TARGETS: dict[str, Target] = {
    "aarch64": Target(
        triple="aarch64-apple-ios", arch="arm64", sdk="iphoneos", alias="arm64e"
    ),
    "aarch64-sim": Target(
        triple="aarch64-apple-ios-sim",
        arch="arm64-sim",
        sdk="iphonesimulator",
        alias="arm64e-sim",
    ),
    # The simulator only supports Metal from Xcode 11.0 on.
    "x86_64": Target(
        triple="x86_64-apple-ios",
        arch="x86_64",
        sdk="iphonesimulator",
        min_xcode_version=((11, 0), "iOS Simulator doesn't support Metal until"),
    ),
}