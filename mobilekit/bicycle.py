"""Handlebars-style template rendering and processing of template trees."""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import os
import re
import shutil
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from .traverse import DEFAULT_TEMPLATE_EXT, Action, ActionKind, TraversalError, traverse

logger = logging.getLogger(__name__)

PathArg = Union[str, "os.PathLike[str]"]


def _quoted(path: PathArg) -> str:
    return json.dumps(os.fspath(path), ensure_ascii=False)


def _to_json(value: Any) -> Any:
    """Convert a value to plain JSON-compatible data."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, enum.Enum):
        return _to_json(value.value)
    if isinstance(value, os.PathLike):
        return os.fsdecode(os.fspath(value))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_json(getattr(value, f.name)) for f in dataclasses.fields(value)}
    for method in ("to_data", "to_dict"):
        convert = getattr(value, method, None)
        if callable(convert):
            return _to_json(convert())
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    if isinstance(value, Iterable):
        return [_to_json(item) for item in value]
    return str(value)


class JsonMap(dict):
    """Template variable names mapped to JSON-compatible values."""

    def insert(self, name: str, value: Any) -> None:
        self[name] = _to_json(value)


InsertData = Callable[[JsonMap], None]


class EscapeFn(enum.Enum):
    """How variables are escaped before rendering; a callable may be used instead."""

    NONE = "none"
    HTML = "html"


_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "`": "&#x60;",
    "=": "&#x3D;",
}
_HTML_RE = re.compile("[" + re.escape("".join(_HTML_ESCAPES)) + "]")


def _html_escape(text: str) -> str:
    return _HTML_RE.sub(lambda m: _HTML_ESCAPES[m.group()], text)


def _escape_function(escape_fn: EscapeFn | Callable[[str], str]) -> Callable[[str], str]:
    if escape_fn is EscapeFn.NONE:
        return lambda text: text
    if escape_fn is EscapeFn.HTML:
        return _html_escape
    if callable(escape_fn):
        return escape_fn
    raise TypeError(f"invalid escape function: {escape_fn!r}")


class RenderingError(Exception):
    """A template couldn't be rendered."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to render template: {detail}")
        self.detail = detail


class ProcessingError(Exception):
    """An action couldn't be carried out."""

    def __init__(
        self,
        message: str,
        *,
        src: Path | None = None,
        dest: Path | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.src = src
        self.dest = dest
        self.cause = cause


# --- template parsing -------------------------------------------------------

_TAG_RE = re.compile(
    r"\{\{!--(?P<long_comment>.*?)--\}\}"
    r"|\{\{\{(?P<raw_open>~?)(?P<raw>.*?)(?P<raw_close>~?)\}\}\}"
    r"|\{\{(?P<open>~?)(?P<expr>.*?)(?P<close>~?)\}\}",
    re.S,
)
_ARG_RE = re.compile(
    r"""\s*(?:(?P<key>[\w@-]+)=)?"""
    r"""(?:"(?P<dq>(?:[^"\\]|\\.)*)"|'(?P<sq>(?:[^'\\]|\\.)*)'|(?P<bare>[^\s"']+))""",
    re.S,
)
_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?([eE][-+]?\d+)?")
_UNESCAPE_RE = re.compile(r"\\(.)", re.S)
_BARE_LITERALS = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class _Literal:
    value: Any


@dataclass(frozen=True)
class _PathRef:
    path: str


_Term = Union[_Literal, _PathRef]


@dataclass
class _Text:
    text: str


@dataclass
class _Expression:
    name: str
    params: list[_Term]
    hash: dict[str, _Term]
    escaped: bool


@dataclass
class _Block:
    name: str
    params: list[_Term]
    hash: dict[str, _Term]
    body: list = field(default_factory=list)
    inverse: list = field(default_factory=list)
    in_inverse: bool = False


def _tokenize(template: str) -> list[str | tuple[str, bool]]:
    """Split a template into text pieces and ``(tag content, raw)`` pairs."""
    tokens: list[str | tuple[str, bool]] = []
    pos = 0
    strip_next = False
    for match in _TAG_RE.finditer(template):
        text = template[pos : match.start()]
        if strip_next:
            text = text.lstrip()
        if match.group("open") or match.group("raw_open"):
            text = text.rstrip()
        if text:
            tokens.append(text)
        pos = match.end()
        strip_next = bool(match.group("close") or match.group("raw_close"))
        if match.group("long_comment") is not None:
            continue
        if match.group("raw") is not None:
            tokens.append((match.group("raw").strip(), True))
        else:
            tokens.append((match.group("expr").strip(), False))
    tail = template[pos:]
    if strip_next:
        tail = tail.lstrip()
    if tail:
        tokens.append(tail)
    return tokens


def _term(match: re.Match) -> _Term:
    for group in ("dq", "sq"):
        if match.group(group) is not None:
            return _Literal(_UNESCAPE_RE.sub(r"\1", match.group(group)))
    bare = match.group("bare")
    if bare in _BARE_LITERALS:
        return _Literal(_BARE_LITERALS[bare])
    if _NUMBER_RE.fullmatch(bare):
        number = float(bare) if any(c in bare for c in ".eE") else int(bare)
        return _Literal(number)
    return _PathRef(bare)


def _parse_call(content: str) -> tuple[str, list[_Term], dict[str, _Term]]:
    params: list[_Term] = []
    hash_args: dict[str, _Term] = {}
    name: str | None = None
    pos = 0
    while pos < len(content):
        if not content[pos:].strip():
            break
        match = _ARG_RE.match(content, pos)
        if match is None:
            raise RenderingError(f"invalid expression {content!r}")
        pos = match.end()
        if name is None:
            if match.group("key") is not None or match.group("bare") is None:
                raise RenderingError(f"invalid expression {content!r}")
            name = match.group("bare")
        elif match.group("key") is not None:
            hash_args[match.group("key")] = _term(match)
        else:
            params.append(_term(match))
    if name is None:
        raise RenderingError("empty expression")
    return name, params, hash_args


def _parse(template: str) -> list:
    root: list = []
    stack: list[_Block] = []
    current = root
    for token in _tokenize(template):
        if isinstance(token, str):
            current.append(_Text(token))
            continue
        content, raw = token
        if not content:
            raise RenderingError("empty expression")
        head = content[0]
        if head == "!":
            continue
        if head == "#":
            name, params, hash_args = _parse_call(content[1:])
            block = _Block(name, params, hash_args)
            current.append(block)
            stack.append(block)
            current = block.body
        elif head == "/":
            name = content[1:].strip()
            if not stack:
                raise RenderingError(f"unexpected closing tag {name!r}")
            block = stack.pop()
            if block.name != name:
                raise RenderingError(
                    f"closing tag {name!r} doesn't match opening tag {block.name!r}"
                )
            if stack:
                parent = stack[-1]
                current = parent.inverse if parent.in_inverse else parent.body
            else:
                current = root
        elif content in ("else", "^"):
            if not stack:
                raise RenderingError("`else` outside of a block")
            stack[-1].in_inverse = True
            current = stack[-1].inverse
        elif head == ">":
            raise RenderingError(f"partials aren't supported: {content!r}")
        else:
            name, params, hash_args = _parse_call(content)
            current.append(_Expression(name, params, hash_args, escaped=not raw))
    if stack:
        raise RenderingError(f"block {stack[-1].name!r} was never closed")
    return root


# --- rendering --------------------------------------------------------------

_MISSING = object()


def _display(value: Any) -> str:
    if value is None:
        return ""
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return json.dumps(value)
    if isinstance(value, list):
        return "[" + ", ".join(_display(item) for item in value) + "]"
    if isinstance(value, dict):
        return "[object]"
    return str(value)


def _lookup_helper(obj: Any, key: Any) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(str(key))
    if isinstance(obj, list) and isinstance(key, int) and 0 <= key < len(obj):
        return obj[key]
    return None


_BUILTIN_HELPERS: dict[str, Callable[..., Any]] = {
    "eq": lambda a, b: a == b,
    "ne": lambda a, b: a != b,
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "and": lambda *values: all(bool(v) for v in values),
    "or": lambda *values: any(bool(v) for v in values),
    "not": lambda value: not value,
    "len": lambda value: len(value),
    "lookup": _lookup_helper,
}


class _Renderer:
    def __init__(self, helpers: Mapping[str, Callable[..., Any]], escape: Callable[[str], str]):
        self._helpers = {**_BUILTIN_HELPERS, **helpers}
        self._escape = escape

    def render(self, nodes: list, contexts: list[Any], data: dict[str, Any]) -> str:
        return "".join(self._node(node, contexts, data) for node in nodes)

    def _node(self, node: Any, contexts: list[Any], data: dict[str, Any]) -> str:
        if isinstance(node, _Text):
            return node.text
        if isinstance(node, _Expression):
            return self._expression(node, contexts, data)
        return self._block(node, contexts, data)

    def _lookup(self, path: str, contexts: list[Any], data: dict[str, Any], strict: bool) -> Any:
        if path.startswith("@"):
            key, _, rest = path[1:].partition(".")
            if key == "root":
                value = contexts[0]
            elif key in data:
                value = data[key]
            else:
                value = _MISSING
            segments = [s for s in re.split(r"[./]", rest) if s]
        else:
            depth = 0
            while path.startswith("../"):
                depth += 1
                path = path[3:]
            value = contexts[-1 - depth] if depth < len(contexts) else _MISSING
            segments = [s for s in re.split(r"[./]", path) if s]
            if segments and segments[0] == "this":
                segments = segments[1:]
        for segment in segments:
            if value is _MISSING:
                break
            if isinstance(value, Mapping) and segment in value:
                value = value[segment]
            elif isinstance(value, list) and segment.isdigit() and int(segment) < len(value):
                value = value[int(segment)]
            else:
                value = _MISSING
        if value is _MISSING:
            if strict:
                raise RenderingError(f"variable {path!r} not found in strict mode")
            return None
        return value

    def _eval(self, term: _Term, contexts: list[Any], data: dict[str, Any], strict: bool = True) -> Any:
        if isinstance(term, _Literal):
            return term.value
        return self._lookup(term.path, contexts, data, strict)

    def _call_helper(self, name: str, node: _Expression, contexts, data) -> Any:
        args = [self._eval(term, contexts, data) for term in node.params]
        kwargs = {key: self._eval(term, contexts, data) for key, term in node.hash.items()}
        try:
            return self._helpers[name](*args, **kwargs)
        except RenderingError:
            raise
        except Exception as cause:
            raise RenderingError(f"helper {name!r} failed: {cause}") from cause

    def _expression(self, node: _Expression, contexts: list[Any], data: dict[str, Any]) -> str:
        if node.name in self._helpers:
            value = self._call_helper(node.name, node, contexts, data)
        elif node.params or node.hash:
            raise RenderingError(f"helper {node.name!r} isn't defined")
        else:
            value = self._lookup(node.name, contexts, data, strict=True)
        text = _display(value)
        return self._escape(text) if node.escaped else text

    def _single_param(self, block: _Block) -> _Term:
        if len(block.params) != 1:
            raise RenderingError(f"block helper {block.name!r} takes exactly one parameter")
        return block.params[0]

    def _block(self, block: _Block, contexts: list[Any], data: dict[str, Any]) -> str:
        if block.name in ("if", "unless"):
            value = self._eval(self._single_param(block), contexts, data, strict=False)
            truthy = bool(value) != (block.name == "unless")
            return self.render(block.body if truthy else block.inverse, contexts, data)
        if block.name == "with":
            value = self._eval(self._single_param(block), contexts, data)
            if not value:
                return self.render(block.inverse, contexts, data)
            return self.render(block.body, [*contexts, value], data)
        if block.name == "each":
            value = self._eval(self._single_param(block), contexts, data)
            if isinstance(value, Mapping):
                items = list(value.items())
            elif isinstance(value, list):
                items = list(enumerate(value))
            elif not value:
                items = []
            else:
                raise RenderingError("`each` needs a list or an object")
            if not items:
                return self.render(block.inverse, contexts, data)
            parts = []
            for index, (key, item) in enumerate(items):
                item_data = {
                    **data,
                    "index": index,
                    "first": index == 0,
                    "last": index == len(items) - 1,
                }
                if isinstance(value, Mapping):
                    item_data["key"] = key
                parts.append(self.render(block.body, [*contexts, item], item_data))
            return "".join(parts)
        raise RenderingError(f"block helper {block.name!r} isn't defined")


# --- public interface -------------------------------------------------------


class Bicycle:
    """Renders templates and processes template trees in strict mode."""

    def __init__(
        self,
        escape_fn: EscapeFn | Callable[[str], str] = EscapeFn.NONE,
        helpers: Mapping[str, Callable[..., Any]] | Iterable[tuple[str, Callable[..., Any]]] = (),
        base_data: Mapping[str, Any] | None = None,
    ) -> None:
        helper_map = dict(helpers.items() if isinstance(helpers, Mapping) else helpers)
        self._renderer = _Renderer(helper_map, _escape_function(escape_fn))
        self._base_data = JsonMap()
        for name, value in (base_data or {}).items():
            self._base_data.insert(name, value)

    def render(self, template: str, insert_data: InsertData | None = None) -> str:
        """Render ``template``; ``insert_data`` adds variables for this call."""
        data = JsonMap(self._base_data)
        if insert_data is not None:
            insert_data(data)
        return self._renderer.render(_parse(template), [dict(data)], {})

    def process_action(self, action: Action, insert_data: InsertData | None = None) -> None:
        """Carry out one action, overwriting existing files."""
        logger.info("%r", action)
        if action.kind is ActionKind.CREATE_DIRECTORY:
            try:
                action.dest.mkdir(parents=True, exist_ok=True)
            except OSError as cause:
                raise ProcessingError(
                    f"Failed to create directory at {_quoted(action.dest)}: {cause}",
                    dest=action.dest,
                    cause=cause,
                ) from cause
        elif action.kind is ActionKind.COPY_FILE:
            try:
                shutil.copy(action.src, action.dest)
            except OSError as cause:
                raise ProcessingError(
                    f"Failed to copy file {_quoted(action.src)} to {_quoted(action.dest)}: {cause}",
                    src=action.src,
                    dest=action.dest,
                    cause=cause,
                ) from cause
        else:
            try:
                template = action.src.read_bytes().decode("utf-8")
            except (OSError, UnicodeDecodeError) as cause:
                raise ProcessingError(
                    f"Failed to read template at {_quoted(action.src)}: {cause}",
                    src=action.src,
                    cause=cause,
                ) from cause
            try:
                rendered = self.render(template, insert_data)
            except RenderingError as cause:
                raise ProcessingError(
                    f"Failed to render template at {_quoted(action.src)}: {cause}",
                    src=action.src,
                    cause=cause,
                ) from cause
            try:
                action.dest.write_bytes(rendered.encode("utf-8"))
            except OSError as cause:
                raise ProcessingError(
                    f"Failed to write template from {_quoted(action.src)} "
                    f"to {_quoted(action.dest)}: {cause}",
                    src=action.src,
                    dest=action.dest,
                    cause=cause,
                ) from cause

    def process_actions(
        self, actions: Iterable[Action], insert_data: InsertData | None = None
    ) -> None:
        for action in actions:
            self.process_action(action, insert_data)

    def process(
        self, src: PathArg, dest: PathArg, insert_data: InsertData | None = None
    ) -> None:
        """Recreate the template tree at ``src`` under ``dest``."""
        self.filter_and_process(src, dest, insert_data)

    def filter_and_process(
        self,
        src: PathArg,
        dest: PathArg,
        insert_data: InsertData | None = None,
        action_filter: Callable[[Action], bool] | None = None,
    ) -> None:
        """Like :meth:`process`, but only for actions ``action_filter`` accepts."""
        src_path = Path(src)
        try:
            actions = traverse(
                src_path,
                dest,
                lambda path: self.transform_path(path, insert_data),
                DEFAULT_TEMPLATE_EXT,
            )
        except TraversalError as cause:
            raise ProcessingError(
                f"Failed to traverse templates at {_quoted(src_path)}: {cause}",
                src=src_path,
                cause=cause,
            ) from cause
        if action_filter is not None:
            actions = [action for action in actions if action_filter(action)]
        self.process_actions(actions, insert_data)

    def transform_path(self, path: PathArg, insert_data: InsertData | None = None) -> Path:
        """Render a path as a template when it contains ``{{``."""
        path = Path(path)
        path_str = path.as_posix()
        if "{{" not in path_str:
            return path
        return Path(self.render(path_str, insert_data))