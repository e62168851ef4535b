"""The raw ``apple`` configuration section and its property-list pairs."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .teams import TeamsError, find_development_teams

PlistValue = Union[bool, str, list, "PlistDictionary"]


class DetectError(Exception):
    """No development team could be detected."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


@dataclass
class PlistDictionary:
    """A nested property-list dictionary made of key/value pairs."""

    dictionary: list[PListPair] = field(default_factory=list)

    def __str__(self) -> str:
        return dictionary_to_string(self)


@dataclass
class PListPair:
    """A property-list key with its value."""

    key: str
    value: PlistValue

    @classmethod
    def from_data(cls, data: Any) -> PListPair:
        if not isinstance(data, Mapping):
            raise ValueError("a plist pair must be a table")
        if "key" not in data:
            raise ValueError("missing field `key`")
        if "value" not in data:
            raise ValueError("missing field `value`")
        key = data["key"]
        if not isinstance(key, str):
            raise ValueError("plist pair `key` must be a string")
        return cls(key=key, value=plist_value_from_data(data["value"]))

    def to_data(self) -> dict[str, Any]:
        return {"key": self.key, "value": _value_to_data(self.value)}


def plist_value_from_data(data: Any) -> PlistValue:
    """Read a plist value: a bool, a string, an array or a ``dictionary`` table."""
    if isinstance(data, (bool, str)):
        return data
    if isinstance(data, (list, tuple)):
        return [plist_value_from_data(item) for item in data]
    if isinstance(data, Mapping) and "dictionary" in data:
        pairs = data["dictionary"]
        if not isinstance(pairs, (list, tuple)):
            raise ValueError("plist `dictionary` must be an array of pairs")
        return PlistDictionary([PListPair.from_data(pair) for pair in pairs])
    raise ValueError("data did not match any variant of plist value")


def _value_to_data(value: PlistValue) -> Any:
    if isinstance(value, PlistDictionary):
        return dictionary_to_string(value)
    if isinstance(value, list):
        return [_value_to_data(item) for item in value]
    return value


def value_to_string(value: PlistValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, PlistDictionary):
        return dictionary_to_string(value)
    if isinstance(value, list):
        return "[" + ",".join(value_to_string(item) for item in value) + "]"
    raise TypeError(f"not a plist value: {value!r}")


def pair_to_string(key: str, value: PlistValue) -> str:
    return f"{key}: {value_to_string(value)}"


def dictionary_to_string(dictionary: PlistDictionary) -> str:
    joined = ",".join(pair_to_string(pair.key, pair.value) for pair in dictionary.dictionary)
    return "{" + joined + "}"


def _load_str(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"`{key}` must be a string")
    return value


def _load_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"`{key}` must be a boolean")
    return value


def _load_str_list(key: str, value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"`{key}` must be an array of strings")
    return list(value)


def _load_pairs(key: str, value: Any) -> list[PListPair]:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"`{key}` must be an array of plist pairs")
    return [PListPair.from_data(item) for item in value]


_OPTIONAL_FIELDS: dict[str, Callable[[str, Any], Any]] = {
    "project_dir": _load_str,
    "ios_no_default_features": _load_bool,
    "ios_features": _load_str_list,
    "macos_no_default_features": _load_bool,
    "macos_features": _load_str_list,
    "bundle_version": _load_str,
    "bundle_version_short": _load_str,
    "ios_version": _load_str,
    "macos_version": _load_str,
    "use_legacy_build_system": _load_bool,
    "plist_pairs": _load_pairs,
    "enable_bitcode": _load_bool,
}


def _kebab(name: str) -> str:
    return name.replace("_", "-")


@dataclass
class Raw:
    """The ``apple`` section of the project configuration, as written."""

    development_team: str = ""
    project_dir: Optional[str] = None
    ios_no_default_features: Optional[bool] = None
    ios_features: Optional[list[str]] = None
    macos_no_default_features: Optional[bool] = None
    macos_features: Optional[list[str]] = None
    bundle_version: Optional[str] = None
    bundle_version_short: Optional[str] = None
    ios_version: Optional[str] = None
    macos_version: Optional[str] = None
    use_legacy_build_system: Optional[bool] = None
    plist_pairs: Optional[list[PListPair]] = None
    enable_bitcode: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Raw:
        """Read the section from its kebab-case table."""
        if not isinstance(data, Mapping):
            raise ValueError("the apple config must be a table")
        if "development-team" not in data:
            raise ValueError("missing field `development-team`")
        values: dict[str, Any] = {
            "development_team": _load_str("development-team", data["development-team"])
        }
        for name, load in _OPTIONAL_FIELDS.items():
            key = _kebab(name)
            value = data.get(key)
            if value is not None:
                values[name] = load(key, value)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """The section as a kebab-case table; unset fields are left out."""
        result: dict[str, Any] = {"development-team": self.development_team}
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            if name == "plist_pairs":
                result[_kebab(name)] = [pair.to_data() for pair in value]
            elif isinstance(value, list):
                result[_kebab(name)] = list(value)
            else:
                result[_kebab(name)] = value
        return result

    @classmethod
    def detect(cls) -> Raw:
        """A section using the first development team found in the keychain."""
        try:
            teams = find_development_teams()
        except TeamsError as cause:
            raise DetectError(
                f"Failed to find Apple developer teams: {cause}", cause
            ) from cause
        if not teams:
            raise DetectError("No Apple developer teams were detected.")
        return cls(development_team=teams[0].id)