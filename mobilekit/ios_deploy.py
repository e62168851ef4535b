"""Events reported by `ios-deploy` and deploying an app with it."""

from __future__ import annotations

import enum
import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .command import Command, Handle
from .output import CommandError

logger = logging.getLogger(__name__)


def _explicit_env(env: Any) -> Mapping[str, str]:
    if env is None:
        return {}
    if isinstance(env, Mapping):
        return env
    return env.explicit_env()


def _field(data: Mapping[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    return data[key]


def _string(data: Mapping[str, Any], key: str) -> str:
    value = _field(data, key)
    if not isinstance(value, str):
        raise ValueError(f"`{key}` must be a string")
    return value


def _u32(data: Mapping[str, Any], key: str) -> int:
    value = _field(data, key)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 2**32:
        raise ValueError(f"`{key}` must be an unsigned 32-bit integer")
    return value


@dataclass(frozen=True, order=True)
class DeviceInfo:
    """A connected device as `ios-deploy` describes it."""

    device_identifier: str
    device_name: str
    model_arch: str
    model_name: str

    @classmethod
    def _from_json(cls, data: Any) -> DeviceInfo:
        if not isinstance(data, Mapping):
            raise ValueError("device info must be an object")
        return cls(
            device_identifier=_string(data, "DeviceIdentifier"),
            device_name=_string(data, "DeviceName"),
            model_arch=_string(data, "modelArch"),
            model_name=_string(data, "modelName"),
        )


class EventKind(enum.Enum):
    BUNDLE_COPY = "BundleCopy"
    BUNDLE_INSTALL = "BundleInstall"
    DEVICE_DETECTED = "DeviceDetected"
    ERROR = "Error"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Event:
    """One JSON event; only the fields of its kind are set."""

    kind: EventKind
    percent: Optional[int] = None
    overall_percent: Optional[int] = None
    path: Optional[Path] = None
    status: Optional[str] = None
    device: Optional[DeviceInfo] = None
    code: Optional[int] = None

    @classmethod
    def from_json(cls, data: Any) -> Event:
        """Read an event object; unrecognised kinds become ``UNKNOWN``."""
        if not isinstance(data, Mapping):
            raise ValueError("an event must be an object")
        tag = _string(data, "Event")
        try:
            kind = EventKind(tag)
        except ValueError:
            kind = EventKind.UNKNOWN
        if kind is EventKind.BUNDLE_COPY:
            return cls(
                kind,
                percent=_u32(data, "Percent"),
                overall_percent=_u32(data, "OverallPercent"),
                path=Path(_string(data, "Path")),
            )
        if kind is EventKind.BUNDLE_INSTALL:
            return cls(
                kind,
                percent=_u32(data, "Percent"),
                overall_percent=_u32(data, "OverallPercent"),
                status=_string(data, "Status"),
            )
        if kind is EventKind.DEVICE_DETECTED:
            return cls(kind, device=DeviceInfo._from_json(_field(data, "Device")))
        if kind is EventKind.ERROR:
            return cls(kind, code=_u32(data, "Code"), status=_string(data, "Status"))
        return cls(EventKind.UNKNOWN)

    @property
    def device_info(self) -> DeviceInfo | None:
        return self.device if self.kind is EventKind.DEVICE_DETECTED else None


def _documents(text: str) -> Iterator[str]:
    """Split back-to-back JSON objects at each ``}{``."""
    start = 0
    while (index := text.find("}{", start)) != -1:
        yield text[start : index + 1]
        start = index + 1
    yield text[start:]


def parse_events(text: str) -> list[Event]:
    """All events in `ios-deploy` output; unparsable ones are logged and skipped."""
    events = []
    for document in _documents(text):
        if not document:
            continue
        try:
            event = Event.from_json(json.loads(document))
        except ValueError as err:
            logger.error(
                "failed to parse `ios-deploy` event: %s\nraw event text:\n%s", err, document
            )
            continue
        logger.debug("parsed `ios-deploy` event: %r", event)
        events.append(event)
    return events


class RunAndDebugError(Exception):
    """The app couldn't be deployed to the device."""

    def __init__(self, cause: CommandError) -> None:
        super().__init__(f"Failed to deploy app to device: {cause}")
        self.cause = cause


def run_and_debug(config: Any, env: Any, non_interactive: bool, device_id: str) -> Handle:
    """Start deploying ``config.app_path`` to a device and debugging it."""
    print("Deploying app to device...")
    command = (
        Command.pure("ios-deploy")
        .with_env_vars(_explicit_env(env))
        .with_arg("--debug")
        .with_args(["--id", device_id])
        .with_arg("--bundle")
        .with_arg(config.app_path)
        .with_args(["--noninteractive"] if non_interactive else [])
        .with_arg("--no-wifi")
    )
    try:
        return command.run()
    except CommandError as cause:
        raise RunAndDebugError(cause) from cause