from __future__ import annotations

import copy
import logging
from typing import Any

from querykit.schemas.query import LOGICAL_KEYS, MAX_PATH_DEPTH, PathPolicy

_LOG = logging.getLogger("querykit.relation_paths")


class FieldPathError(ValueError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f'Unsupported field path "{path}": {reason}')


def split_path(path: str) -> tuple[str, ...] | None:
    if not isinstance(path, str):
        return None
    segments = tuple(path.split("."))
    if len(segments) > MAX_PATH_DEPTH:
        return None
    if any(not segment.strip() for segment in segments):
        return None
    return segments


def resolve_path(path: str, policy: PathPolicy) -> tuple[str, ...] | None:
    segments = split_path(path)
    if segments is not None:
        return segments
    if policy == "reject":
        raise FieldPathError(str(path), f"expected 1 to {MAX_PATH_DEPTH} non-empty dot-separated segments")
    _LOG.debug("ignoring unsupported field path %r", path)
    return None


def nest_path(segments: tuple[str, ...], leaf: Any) -> dict[str, Any]:
    node: Any = leaf
    for segment in reversed(segments):
        node = {segment: node}
    return node


def assign_path(tree: dict[str, Any], segments: tuple[str, ...], leaf: Any) -> dict[str, Any]:
    node = tree
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = leaf
    return tree


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _combine_logical(target: dict[str, Any], key: str, value: Any) -> None:
    # Both constraints must hold.
    if key == "AND":
        target["AND"] = _as_list(target["AND"]) + _as_list(value)
        return
    existing = target.pop(key)
    combined = _as_list(target.get("AND", [])) + [{key: existing}, {key: value}]
    target["AND"] = combined


def merge_conditions(target: dict[str, Any], fragment: dict[str, Any]) -> dict[str, Any]:
    for key, value in fragment.items():
        current = target.get(key)
        if key in LOGICAL_KEYS and key in target:
            _combine_logical(target, key, copy.deepcopy(value))
        elif isinstance(current, dict) and isinstance(value, dict):
            merge_conditions(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target
