"""Walking a template tree to produce the filesystem actions that recreate it."""

from __future__ import annotations

import enum
import json
import os
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PathArg = Union[str, "os.PathLike[str]"]
TransformPath = Callable[[Path], PathArg]

DEFAULT_TEMPLATE_EXT = "hbs"
"""The extension that marks a file as a template."""


def _quoted(path: PathArg) -> str:
    return json.dumps(os.fspath(path), ensure_ascii=False)


class ActionKind(enum.Enum):
    """What an :class:`Action` does."""

    CREATE_DIRECTORY = "create directory"
    COPY_FILE = "copy file"
    WRITE_TEMPLATE = "write template"


def _append_path(base: Path, other: Path, strip_extension: bool) -> Path:
    return base / (other.stem if strip_extension else other.name)


@dataclass(frozen=True)
class Action:
    """One filesystem step: create ``dest``, copy ``src`` to it, or render ``src`` into it."""

    kind: ActionKind
    dest: Path
    src: Path | None = None

    @classmethod
    def create_directory(cls, dest: PathArg, transform_path: TransformPath) -> Action:
        return cls(ActionKind.CREATE_DIRECTORY, Path(transform_path(Path(dest))))

    @classmethod
    def copy_file(cls, src: PathArg, dest: PathArg, transform_path: TransformPath) -> Action:
        src_path = Path(src)
        target = _append_path(Path(dest), src_path, strip_extension=False)
        return cls(ActionKind.COPY_FILE, Path(transform_path(target)), src_path)

    @classmethod
    def write_template(
        cls, src: PathArg, dest: PathArg, transform_path: TransformPath
    ) -> Action:
        src_path = Path(src)
        target = _append_path(Path(dest), src_path, strip_extension=True)
        return cls(ActionKind.WRITE_TEMPLATE, Path(transform_path(target)), src_path)

    def is_create_directory(self) -> bool:
        return self.kind is ActionKind.CREATE_DIRECTORY

    def is_copy_file(self) -> bool:
        return self.kind is ActionKind.COPY_FILE

    def is_write_template(self) -> bool:
        return self.kind is ActionKind.WRITE_TEMPLATE


class TraversalError(Exception):
    """Walking the template tree failed."""

    def __init__(self, message: str, path: Path, cause: BaseException) -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause


def no_transform(path: PathArg) -> Path:
    """Leave a destination path as it is."""
    return Path(path)


def _file_action(
    src: Path, dest: Path, transform_path: TransformPath, template_ext: str | None
) -> Action:
    if template_ext is not None and src.suffix == f".{template_ext}":
        return Action.write_template(src, dest, transform_path)
    return Action.copy_file(src, dest, transform_path)


def _transform_failed(path: Path, cause: BaseException) -> TraversalError:
    return TraversalError(f"Failed to transform path at {_quoted(path)}: {cause}", path, cause)


def _traverse_dir(
    src: Path,
    dest: Path,
    transform_path: TransformPath,
    template_ext: str | None,
    actions: deque[Action],
) -> None:
    # transform_path is caller-supplied, so any failure it raises is wrapped.
    if src.is_file():
        try:
            actions.append(_file_action(src, dest, transform_path, template_ext))
        except Exception as cause:
            raise _transform_failed(dest, cause) from cause
        return

    try:
        actions.appendleft(Action.create_directory(dest, transform_path))
    except Exception as cause:
        raise _transform_failed(dest, cause) from cause

    try:
        entries = sorted(src.iterdir())
    except OSError as cause:
        raise TraversalError(
            f"Failed to read directory at {_quoted(src)}: {cause}", src, cause
        ) from cause

    for path in entries:
        if path.is_dir():
            _traverse_dir(
                path,
                _append_path(dest, path, strip_extension=False),
                transform_path,
                template_ext,
                actions,
            )
        else:
            try:
                actions.append(_file_action(path, dest, transform_path, template_ext))
            except Exception as cause:
                raise _transform_failed(path, cause) from cause


def traverse(
    src: PathArg,
    dest: PathArg,
    transform_path: TransformPath = no_transform,
    template_ext: str | None = DEFAULT_TEMPLATE_EXT,
) -> deque[Action]:
    """List the actions that recreate the tree at ``src`` under ``dest``.

    Directories become create-directory actions, files ending in
    ``template_ext`` become write-template actions and every other file a
    copy action. ``transform_path`` post-processes each destination path.
    """
    actions: deque[Action] = deque()
    _traverse_dir(Path(src), Path(dest), transform_path, template_ext, actions)
    return actions