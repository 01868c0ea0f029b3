from __future__ import annotations

import re
from typing import Any, Iterable

_BRACKET_KEY_RE = re.compile(r"^(?P<name>[^\[\]]+)\[(?P<op>[A-Za-z_][A-Za-z0-9_]*)?\]$")


def _append(target: dict[str, Any], key: str, value: Any) -> None:
    current = target.get(key)
    if key not in target:
        target[key] = value
    elif isinstance(current, list):
        current.append(value)
    else:
        target[key] = [current, value]


def parse_query_items(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Group raw ``(key, value)`` pairs into query parameters.

    ``tag=a&tag=b`` and ``tag[]=a`` give lists, ``price[gte]=10`` gives
    ``{"price": {"gte": "10"}}``. Any other bracket text stays part of the key.

    Once a key has an operator form, plain values for it are dropped, so
    ``a[gte]=1&a=2&a[lte]=3`` and ``a=2&a[gte]=1&a[lte]=3`` both give
    ``{"a": {"gte": "1", "lte": "3"}}``.
    """
    params: dict[str, Any] = {}
    for raw_key, value in items:
        match = _BRACKET_KEY_RE.match(raw_key)
        name = raw_key if match is None else match.group("name")
        op = None if match is None else match.group("op")
        current = params.get(name)
        if op is not None:
            if not isinstance(current, dict):
                current = {}
                params[name] = current
            _append(current, op, value)
            continue
        if isinstance(current, dict):
            continue
        if match is not None and current is None:
            params[name] = [value]
            continue
        _append(params, name, value)
    return params
