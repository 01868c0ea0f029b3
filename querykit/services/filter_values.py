"""Typed filter values built from raw query-string input.

Coercion never fails: anything that is not a boolean literal, a number or a
list is kept as the text it arrived as.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from querykit.schemas.query import LIST_OPERATORS, RangeOperator

_LOG = logging.getLogger("querykit.filter_values")

_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INT_RE = re.compile(r"[+-]?\d+")


def parse_number(raw: Any) -> int | float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else None
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text or not _NUMBER_RE.fullmatch(text):
        return None
    if _INT_RE.fullmatch(text):
        return int(text)
    value = float(text)
    return value if math.isfinite(value) else None


def _numeric_or_raw(raw: Any) -> Any:
    number = parse_number(raw)
    return raw if number is None else number


@dataclass(frozen=True)
class BoolValue:
    value: bool

    def to_native(self) -> bool:
        return self.value


@dataclass(frozen=True)
class NumberValue:
    value: int | float

    def to_native(self) -> int | float:
        return self.value


@dataclass(frozen=True)
class TextValue:
    value: str

    def to_native(self) -> str:
        return self.value


@dataclass(frozen=True)
class Membership:
    """Field is one of these values (``IN`` semantics)."""

    items: tuple[FilterValue, ...]

    def to_native(self) -> dict[str, list[Any]]:
        return {"in": [item.to_native() for item in self.items]}


@dataclass(frozen=True)
class RangeClause:
    operators: dict[RangeOperator, Any] = field(default_factory=dict)

    def to_native(self) -> dict[str, Any]:
        return {
            op.value: list(operand) if isinstance(operand, list) else operand
            for op, operand in self.operators.items()
        }


@dataclass(frozen=True)
class OpaqueValue:
    """An object with no recognized operator, handed on as plain equality."""

    raw: Mapping[str, Any]

    def to_native(self) -> dict[str, Any]:
        return dict(self.raw)


FilterValue = Union[BoolValue, NumberValue, TextValue, Membership, RangeClause, OpaqueValue]


def coerce_value(raw: Any) -> FilterValue:
    if isinstance(raw, bool):
        return BoolValue(raw)
    if raw == "true":
        return BoolValue(True)
    if raw == "false":
        return BoolValue(False)
    if isinstance(raw, (list, tuple)):
        return Membership(tuple(coerce_value(item) for item in raw))
    if isinstance(raw, Mapping):
        return OpaqueValue(dict(raw))
    number = parse_number(raw)
    if number is not None:
        return NumberValue(number)
    return TextValue(raw if isinstance(raw, str) else str(raw))


def compile_range(raw: Mapping[str, Any]) -> RangeClause | OpaqueValue:
    operators: dict[RangeOperator, Any] = {}
    for key, operand in raw.items():
        try:
            op = RangeOperator(key)
        except ValueError:
            _LOG.debug("dropping unknown range operator %r", key)
            continue
        if op in LIST_OPERATORS:
            items = operand if isinstance(operand, (list, tuple)) else [operand]
            operators[op] = [_numeric_or_raw(item) for item in items]
            continue
        if isinstance(operand, (list, tuple)):
            if not operand:
                continue
            # Repeated scalar operators: the last occurrence wins.
            operand = operand[-1]
        operators[op] = _numeric_or_raw(operand)
    if not operators:
        return OpaqueValue(dict(raw))
    return RangeClause(operators)
