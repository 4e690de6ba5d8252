"""Search criteria: parsing filter maps into normalized criteria."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from customattrs.errors import FilterError

OPERATORS = frozenset(
    {"=", "!=", "<", ">", "<=", ">=", "LIKE", "IN", "BETWEEN", "NULL", "NOT NULL"}
)

OPERATOR_ALIASES = {
    "==": "=",
    "<>": "!=",
    "ILIKE": "LIKE",
    "IS NULL": "NULL",
    "IS NOT NULL": "NOT NULL",
    "IS_NULL": "NULL",
    "IS_NOT_NULL": "NOT NULL",
}

NULL_OPERATORS = frozenset({"NULL", "NOT NULL"})


@dataclass(frozen=True)
class Criterion:
    """One normalized filter on one attribute.

    ``value`` holds the raw comparison value (a list for ``IN``); ``low`` and
    ``high`` are the raw ``BETWEEN`` bounds. Values are cast through the
    attribute type only when the criterion is compiled.
    """

    attribute_name: str
    operator: str
    value: Any = None
    low: Any = None
    high: Any = None
    case_sensitive: bool = False
    full_text: bool = False

    @property
    def is_null_check(self) -> bool:
        return self.operator in NULL_OPERATORS


def normalize_operator(attribute_name: str, operator: Any) -> str:
    if not isinstance(operator, str) or not operator.strip():
        raise FilterError(attribute_name, f"Operator must be a non-empty string, got {operator!r}")
    op = " ".join(operator.split()).upper()
    op = OPERATOR_ALIASES.get(op, op)
    if op not in OPERATORS:
        raise FilterError(attribute_name, f"Unsupported operator '{operator}'")
    return op


def parse_criterion(
    attribute_name: str,
    condition: Any,
    *,
    case_sensitive_like: bool = False,
) -> Criterion:
    """Turn one filter-map entry into a :class:`Criterion`.

    A bare literal means equality, ``None`` (or ``""``) means "unset or null"
    and a list means membership. Mappings carry ``operator`` plus ``value``,
    ``min``/``max`` for ``BETWEEN`` and ``options`` for ``LIKE``.
    """
    if not isinstance(condition, Mapping):
        if condition is None or condition == "":
            return Criterion(attribute_name, "NULL")
        if isinstance(condition, (list, tuple, set, frozenset)):
            return Criterion(attribute_name, "IN", value=list(condition))
        return Criterion(attribute_name, "=", value=condition)

    raw_operator = condition.get("operator", "=")
    op = normalize_operator(attribute_name, raw_operator)
    options = condition.get("options") or {}
    if not isinstance(options, Mapping):
        raise FilterError(attribute_name, "'options' must be a mapping")

    if op in NULL_OPERATORS:
        return Criterion(attribute_name, op)

    if op == "BETWEEN":
        low, high = condition.get("min"), condition.get("max")
        if low is None or high is None:
            raise FilterError(attribute_name, "BETWEEN requires both 'min' and 'max'")
        return Criterion(attribute_name, op, low=low, high=high)

    if "value" not in condition:
        raise FilterError(attribute_name, f"{op} requires a 'value'")
    value = condition["value"]

    if op == "IN":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise FilterError(attribute_name, "IN requires a list value")
        return Criterion(attribute_name, op, value=list(value))

    if value is None or value == "":
        if op == "=":
            return Criterion(attribute_name, "NULL")
        if op == "!=":
            return Criterion(attribute_name, "NOT NULL")
        raise FilterError(attribute_name, f"{op} cannot compare against an empty value")

    if op == "LIKE":
        if isinstance(value, (dict, list, tuple, set, bool)):
            raise FilterError(attribute_name, "LIKE requires a text value")
        is_ilike = str(raw_operator).strip().upper() == "ILIKE"
        case_sensitive = bool(options.get("case_sensitive", case_sensitive_like))
        return Criterion(
            attribute_name,
            op,
            value=str(value),
            case_sensitive=case_sensitive and not is_ilike,
            full_text=bool(options.get("full_text", False)),
        )

    return Criterion(attribute_name, op, value=value)


def parse_filters(
    filters: Mapping[str, Any],
    *,
    case_sensitive_like: bool = False,
) -> list[Criterion]:
    return [
        parse_criterion(name, condition, case_sensitive_like=case_sensitive_like)
        for name, condition in filters.items()
    ]
