"""Get/set over nested JSON documents addressed by dotted/bracketed paths.

Path grammar: dot-separated object keys, each optionally followed by one or
more ``[index]`` subscripts, e.g.
``assumptions.opex[1].cost_structure.fixed_component.value``.

Writes never mutate the input. Only the containers on the traversed spine are
copied; every sibling subtree is shared with the original document.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterator, Union

from bizcase.engine.errors import PathError

_PART_RE = re.compile(r"^(?P<key>[^\[\]]*)(?P<subs>(?:\[\d+\])*)$")
_SUB_RE = re.compile(r"\[(\d+)\]")

_MISSING = object()


@dataclass(frozen=True)
class Key:
    """Object member access."""

    name: str


@dataclass(frozen=True)
class Index:
    """Array element access."""

    position: int


PathSegment = Union[Key, Index]


def parse_path(path: str) -> tuple[PathSegment, ...]:
    """Parse a path string into Key/Index segments."""
    if not isinstance(path, str) or not path:
        raise PathError("Path must be a non-empty string", path=str(path))

    segments: list[PathSegment] = []
    for part in path.split("."):
        match = _PART_RE.match(part)
        if match is None:
            raise PathError(f"Invalid path segment '{part}' in '{path}'", path=path)
        key = match.group("key")
        subs = match.group("subs")
        if not key and not (subs and not segments):
            raise PathError(f"Empty key in path '{path}'", path=path)
        if key:
            segments.append(Key(key))
        for index in _SUB_RE.findall(subs):
            segments.append(Index(int(index)))
    return tuple(segments)


def format_path(segments: Sequence[PathSegment]) -> str:
    """Inverse of parse_path."""
    out = ""
    for seg in segments:
        if isinstance(seg, Index):
            out += f"[{seg.position}]"
        else:
            out = f"{out}.{seg.name}" if out else seg.name
    return out


def _is_array(node: Any) -> bool:
    return isinstance(node, Sequence) and not isinstance(node, (str, bytes))


def _step(node: Any, seg: PathSegment) -> Any:
    if isinstance(seg, Key):
        if isinstance(node, Mapping) and seg.name in node:
            return node[seg.name]
        return _MISSING
    if _is_array(node) and 0 <= seg.position < len(node):
        return node[seg.position]
    return _MISSING


def _lookup(doc: Any, segments: Sequence[PathSegment]) -> Any:
    current = doc
    for seg in segments:
        if current is None:
            return _MISSING
        current = _step(current, seg)
        if current is _MISSING:
            return _MISSING
    return current


def get_nested_value(doc: Any, path: str, default: Any = None) -> Any:
    """Read the value at ``path``; ``default`` when any step is missing."""
    if doc is None:
        return default
    found = _lookup(doc, parse_path(path))
    return default if found is _MISSING else found


def has_nested_path(doc: Any, path: str) -> bool:
    try:
        return _lookup(doc, parse_path(path)) is not _MISSING
    except PathError:
        return False


def _assign(node: Any, segments: Sequence[PathSegment], value: Any, path: str, depth: int) -> Any:
    seg = segments[0]

    if isinstance(seg, Key):
        if not isinstance(node, Mapping):
            raise PathError(
                f"Expected an object before '{seg.name}' at depth {depth} of '{path}'",
                path=path,
            )
        clone: Any = dict(node)
        if len(segments) == 1:
            clone[seg.name] = value
            return clone
        if seg.name not in node:
            raise PathError(f"Missing key '{seg.name}' while setting '{path}'", path=path)
        clone[seg.name] = _assign(node[seg.name], segments[1:], value, path, depth + 1)
        return clone

    if not _is_array(node):
        raise PathError(
            f"Expected an array before [{seg.position}] at depth {depth} of '{path}'",
            path=path,
        )
    if seg.position >= len(node):
        raise PathError(
            f"Index {seg.position} out of range (length {len(node)}) while setting '{path}'",
            path=path,
        )
    clone = list(node)
    if len(segments) == 1:
        clone[seg.position] = value
    else:
        clone[seg.position] = _assign(node[seg.position], segments[1:], value, path, depth + 1)
    return clone


def set_nested_value(doc: Any, path: str, value: Any) -> Any:
    """Return a copy of ``doc`` with ``value`` written at ``path``.

    Every intermediate container must already exist; only the final key of an
    object may be new. Raises PathError otherwise, before anything is returned.
    """
    if not isinstance(doc, Mapping) and not _is_array(doc):
        raise PathError("Document must be an object or array", path=path)
    return _assign(doc, parse_path(path), value, path, 0)


def update_nested_values(doc: Any, updates: Mapping[str, Any]) -> Any:
    """Apply several writes in order, each on the result of the previous."""
    result = doc
    for path, value in updates.items():
        result = set_nested_value(result, path, value)
    return result


def _walk_numeric_leaves(node: Any, prefix: list[PathSegment]) -> Iterator[str]:
    if isinstance(node, Mapping):
        leaf = node.get("value", _MISSING)
        numeric = isinstance(leaf, (int, float)) and not isinstance(leaf, bool)
        if numeric:
            yield format_path([*prefix, Key("value")])
        for key, child in node.items():
            # a nested leaf under "value" (legacy OPEX) is still walked
            if key == "value" and numeric:
                continue
            yield from _walk_numeric_leaves(child, [*prefix, Key(str(key))])
    elif _is_array(node):
        for position, child in enumerate(node):
            yield from _walk_numeric_leaves(child, [*prefix, Index(position)])


def list_numeric_leaf_paths(doc: Any) -> list[str]:
    """Every ``....value`` path holding a number; candidates for drivers."""
    return list(_walk_numeric_leaves(doc, []))
