"""Type checking, rule checking and casting of attribute values.

Dispatch on :class:`AttributeType` happens through three tables kept side by
side in this module (``_TYPE_CHECKS``, ``_CASTERS``) and in ``types.py``
(``SLOT_BY_TYPE``). Adding a type means touching exactly those tables.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from customattrs.errors import AttributeFailure, ValidationError
from customattrs.types import (
    KNOWN_RULES,
    NAME_RE,
    RULES_BY_TYPE,
    AttributeDefinition,
    AttributeType,
)

_FLOAT = TypeAdapter(float)

_BOOLEAN_STRINGS = {"1", "0", "true", "false"}
_TRUE_STRINGS = {"1", "true"}

_RELATIVE_DAYS = {"today": 0, "tomorrow": 1, "yesterday": -1}

_DATE_FORMATS = (
    "%Y/%m/%d",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)


# --- Scalar parsing ---


def is_empty(value: Any) -> bool:
    """Null and the empty string both count as "no value"."""
    return value is None or (isinstance(value, str) and value == "")


def _is_numeric_scalar(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def parse_number(value: Any) -> float | None:
    """Parse anything numeric into a finite float, or return None."""
    if isinstance(value, bool) or value is None:
        return None
    if _is_numeric_scalar(value):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            number = _FLOAT.validate_python(value.strip())
        except PydanticValidationError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_date(value: Any, today: Callable[[], date] = date.today) -> date | None:
    """Parse a calendar date from a date, datetime or date-like string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    lowered = text.lower()
    if lowered in _RELATIVE_DAYS:
        return today() + timedelta(days=_RELATIVE_DAYS[lowered])
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def is_boolean_like(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, int):
        return value in (0, 1)
    if isinstance(value, str):
        return value.strip().lower() in _BOOLEAN_STRINGS
    return False


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# --- Type dispatch ---


def _check_text(definition: AttributeDefinition, value: Any) -> str | None:
    if isinstance(value, str) or _is_numeric_scalar(value):
        return None
    return f"The {definition.label} must be text."


def _check_number(definition: AttributeDefinition, value: Any) -> str | None:
    if parse_number(value) is None:
        return f"The {definition.label} must be a number."
    return None


def _check_date(definition: AttributeDefinition, value: Any) -> str | None:
    if parse_date(value) is None:
        return f"The {definition.label} must be a valid date."
    return None


def _check_boolean(definition: AttributeDefinition, value: Any) -> str | None:
    if not is_boolean_like(value):
        return f"The {definition.label} must be true or false."
    return None


def _check_select(definition: AttributeDefinition, value: Any) -> str | None:
    if is_empty(value):
        return f"The {definition.label} must have a value selected."
    if not isinstance(value, str) or value not in definition.options:
        return f"The {definition.label} must be one of: {', '.join(definition.options)}."
    return None


def _cast_string(value: Any) -> str:
    return str(value)


def _cast_number(value: Any) -> float:
    number = parse_number(value)
    if number is None:
        raise ValueError(f"Cannot cast {value!r} to a number")
    return number


def _cast_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return isinstance(value, int) and value == 1


def _cast_date(value: Any) -> date | None:
    # Unparsable dates become None rather than raising.
    return parse_date(value)


_TYPE_CHECKS: dict[AttributeType, Callable[[AttributeDefinition, Any], str | None]] = {
    AttributeType.TEXT: _check_text,
    AttributeType.NUMBER: _check_number,
    AttributeType.DATE: _check_date,
    AttributeType.BOOLEAN: _check_boolean,
    AttributeType.SELECT: _check_select,
}

_CASTERS: dict[AttributeType, Callable[[Any], Any]] = {
    AttributeType.TEXT: _cast_string,
    AttributeType.SELECT: _cast_string,
    AttributeType.NUMBER: _cast_number,
    AttributeType.DATE: _cast_date,
    AttributeType.BOOLEAN: _cast_boolean,
}


class Validator:
    """Validates and casts raw values against attribute definitions."""

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self._today = today

    def errors_for(self, definition: AttributeDefinition, value: Any) -> list[str]:
        """Every validation message for ``value``; empty when valid. Side-effect free."""
        label = definition.label
        if is_empty(value):
            if definition.required:
                return [f"The {label} field is required."]
            if definition.type is AttributeType.SELECT and value == "":
                return [f"The {label} must have a value selected."]
            return []

        type_error = _TYPE_CHECKS[definition.type](definition, value)
        if type_error:
            return [type_error]
        return self._rule_errors(definition, value)

    def failure_for(self, definition: AttributeDefinition, value: Any) -> AttributeFailure | None:
        messages = self.errors_for(definition, value)
        if not messages:
            return None
        return AttributeFailure(
            attribute_name=definition.name,
            messages=messages,
            value=value,
            label=definition.label,
            attribute_type=definition.type.value,
        )

    def validate(self, definition: AttributeDefinition, value: Any) -> None:
        """Raise :class:`ValidationError` unless ``value`` is acceptable."""
        failure = self.failure_for(definition, value)
        if failure is not None:
            raise ValidationError([failure])

    def cast(self, definition: AttributeDefinition, value: Any) -> Any:
        """Convert a raw value to the Python type stored for the definition."""
        if is_empty(value):
            return None
        if definition.type is AttributeType.DATE:
            return parse_date(value, self._today)
        return _CASTERS[definition.type](value)

    def resolve_date(self, constraint: Any) -> date | None:
        return parse_date(constraint, self._today)

    def _rule_errors(self, definition: AttributeDefinition, value: Any) -> list[str]:
        errors: list[str] = []
        label = definition.label
        is_text = definition.type is AttributeType.TEXT
        for rule, constraint in definition.rules.items():
            if rule in ("min", "max") and is_text or rule in ("min_length", "max_length"):
                length = len(str(value))
                limit = _format_number(constraint)
                if rule in ("min", "min_length") and length < constraint:
                    errors.append(f"The {label} must be at least {limit} characters.")
                elif rule in ("max", "max_length") and length > constraint:
                    errors.append(f"The {label} may not be greater than {limit} characters.")
            elif rule in ("min", "max") and definition.type is AttributeType.NUMBER:
                number = parse_number(value)
                limit = _format_number(constraint)
                if number is None:
                    continue
                if rule == "min" and number < constraint:
                    errors.append(f"The {label} must be at least {limit}.")
                elif rule == "max" and number > constraint:
                    errors.append(f"The {label} may not be greater than {limit}.")
            elif rule in ("after", "before") and definition.type is AttributeType.DATE:
                current = parse_date(value, self._today)
                bound = self.resolve_date(constraint)
                ok = current is not None and bound is not None
                if ok and rule == "after":
                    ok = current > bound
                elif ok:
                    ok = current < bound
                if not ok:
                    word = "after" if rule == "after" else "before"
                    errors.append(f"The {label} must be {word} {constraint}.")
        return errors


# --- Definition checks ---


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_length(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value.is_integer() and value >= 0
    return isinstance(value, int) and value >= 0


def definition_violations(
    *,
    name: Any,
    label: Any,
    type: Any,
    required: Any = False,
    options: Any = None,
    rules: Any = None,
) -> dict[str, list[str]]:
    """Collect every constraint an attribute definition violates.

    Never stops at the first problem; an empty dict means the definition is
    acceptable.
    """
    violations: dict[str, list[str]] = {}

    def add(key: str, message: str) -> None:
        violations.setdefault(key, []).append(message)

    if name is None or name == "":
        add("name", "Attribute name is required.")
    elif not isinstance(name, str) or not NAME_RE.match(name):
        add(
            "name",
            "Attribute name must start with a letter and contain only letters, "
            "numbers, and underscores.",
        )

    if not isinstance(label, str) or not label.strip():
        add("label", "Attribute label is required.")

    attr_type: AttributeType | None = None
    if type is None or type == "":
        add("type", "Attribute type is required.")
    else:
        try:
            attr_type = AttributeType(type)
        except ValueError:
            add("type", f"Attribute type must be one of: {', '.join(AttributeType.values())}.")

    if not isinstance(required, bool):
        add("required", "Required flag must be true or false.")

    has_options = options is not None and options != [] and options != ()
    if attr_type is AttributeType.SELECT:
        if not isinstance(options, (list, tuple)) or not options:
            add("options", "Select attributes must have at least one option.")
        else:
            seen: set[str] = set()
            for index, option in enumerate(options):
                if not isinstance(option, str) or not option.strip():
                    add("options", f"Option at index {index} must be a non-empty string.")
                elif option in seen:
                    add("options", f"Option '{option}' is listed more than once.")
                else:
                    seen.add(option)
    elif has_options and attr_type is not None:
        add("options", "Options are only allowed for select attributes.")

    if rules is not None and not isinstance(rules, Mapping):
        add("rules", "Validation rules must be a mapping of rule name to constraint.")
    elif rules:
        _rule_violations(dict(rules), attr_type, add)

    return violations


def _rule_violations(
    rules: dict[str, Any],
    attr_type: AttributeType | None,
    add: Callable[[str, str], None],
) -> None:
    for rule, constraint in rules.items():
        key = f"rules.{rule}"
        if rule not in KNOWN_RULES:
            add(key, f"Unknown validation rule: {rule}")
            continue
        if attr_type is None:
            continue
        if rule not in RULES_BY_TYPE[attr_type]:
            add(key, f"{rule} validation is not supported for {attr_type.value} attributes.")
            continue
        if rule in ("min", "max") and attr_type is AttributeType.TEXT:
            if not _is_length(constraint):
                add(key, f"Text {rule} length must be a non-negative integer.")
        elif rule in ("min", "max"):
            if not _is_number(constraint):
                add(key, f"Number {rule} value must be numeric.")
        elif rule in ("min_length", "max_length"):
            if not _is_length(constraint):
                add(key, f"{rule} must be a non-negative integer.")
        elif rule in ("after", "before"):
            if not isinstance(constraint, str) or parse_date(constraint) is None:
                add(key, f"{rule} must be 'today' or a valid date string.")

    for low, high, message in (
        ("min", "max", "Minimum value cannot be greater than maximum value."),
        ("min_length", "max_length", "Minimum length cannot be greater than maximum length."),
    ):
        lo, hi = rules.get(low), rules.get(high)
        if _is_number(lo) and _is_number(hi) and lo > hi:
            add(f"rules.{low}", message)
