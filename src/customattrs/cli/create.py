"""customattrs create: define a new attribute."""

from __future__ import annotations

from typing import Any, Optional

import typer

from customattrs.cli import _exitcodes as ec
from customattrs.cli._output import print_error, print_object
from customattrs.cli._storage import open_engine
from customattrs.errors import DefinitionError, StorageError


def humanize(name: str) -> str:
    """Default label for a name: ``birth_date`` -> ``Birth date``."""
    text = " ".join(name.replace("_", " ").split())
    return text[:1].upper() + text[1:]


def parse_rule_value(raw: str) -> Any:
    text = raw.strip()
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    if text.lower() in ("true", "false"):
        return text.lower() == "true"
    return text


def parse_rules(pairs: list[str]) -> dict[str, Any]:
    """Parse repeated ``key=value`` options into a rules mapping."""
    rules: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip() or not value.strip():
            raise ValueError(f"Invalid rule '{pair}': expected key=value")
        rules[key.strip()] = parse_rule_value(value)
    return rules


def create_cmd(
    name: str = typer.Argument(..., help="Attribute name (letters, digits, underscores)"),
    type_name: str = typer.Argument(..., metavar="TYPE", help="text, number, date, boolean or select"),
    label: Optional[str] = typer.Argument(None, help="Display label (default: humanized name)"),
    required: bool = typer.Option(False, "--required", help="Values may not be empty"),
    option: Optional[list[str]] = typer.Option(
        None, "--option", "-o", help="Allowed value for select attributes (repeatable)"
    ),
    rule: Optional[list[str]] = typer.Option(
        None, "--rule", "-r", help="Validation rule as key=value, e.g. min=0 (repeatable)"
    ),
) -> None:
    """Create an attribute definition."""
    from customattrs.cli import state

    try:
        rules = parse_rules(rule or [])
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        engine = open_engine()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        definition = engine.catalog.define(
            name,
            label if label is not None else humanize(name),
            type_name,
            required=required,
            options=list(option) if option else None,
            rules=rules or None,
        )
    except DefinitionError as e:
        print_error(f"Cannot create attribute '{name}':")
        for field, messages in e.violations.items():
            for message in messages:
                print_error(f"  {field}: {message}")
        raise typer.Exit(ec.USAGE_ERROR)
    except StorageError as e:
        print_error(e.user_message())
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        engine.close()

    data = {
        "name": definition.name,
        "label": definition.label,
        "type": definition.type.value,
        "required": definition.required,
        "options": list(definition.options),
        "rules": dict(definition.rules),
    }
    if state.json_output:
        print_object(data, json_mode=True)
    else:
        print(f"Created attribute '{definition.name}'")
        print_object(data)
