"""customattrs list: show attribute definitions."""

from __future__ import annotations

from typing import Any, Optional

import typer

from customattrs.cli import _exitcodes as ec
from customattrs.cli._output import print_error, print_table, print_yaml
from customattrs.cli._storage import open_engine
from customattrs.errors import CustomAttrsError
from customattrs.types import AttributeDefinition, AttributeType

_HEADERS = ["name", "label", "type", "required", "options", "rules", "values"]


def _as_dict(definition: AttributeDefinition, value_count: int) -> dict[str, Any]:
    return {
        "name": definition.name,
        "label": definition.label,
        "type": definition.type.value,
        "required": definition.required,
        "options": list(definition.options),
        "rules": dict(definition.rules),
        "values": value_count,
    }


def list_cmd(
    type_name: Optional[str] = typer.Option(None, "--type", help="Only attributes of this type"),
    required: bool = typer.Option(False, "--required", help="Only required attributes"),
    fmt: str = typer.Option("table", "--format", help="Output format: table, json or yaml"),
) -> None:
    """List attribute definitions."""
    from customattrs.cli import state

    if type_name is not None and type_name not in AttributeType.values():
        print_error(
            f"Unknown type '{type_name}'. Valid types: {', '.join(AttributeType.values())}"
        )
        raise typer.Exit(ec.USAGE_ERROR)
    if fmt not in ("table", "json", "yaml"):
        print_error("--format must be 'table', 'json' or 'yaml'")
        raise typer.Exit(ec.USAGE_ERROR)
    if state.json_output:
        fmt = "json"

    try:
        engine = open_engine()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        definitions = engine.catalog.list(type=type_name, required_only=required)
        items = [_as_dict(d, engine.catalog.count_values(d.name)) for d in definitions]
    except CustomAttrsError as e:
        print_error(e.user_message())
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        engine.close()

    if fmt == "yaml":
        print_yaml(items)
        return
    if fmt == "json":
        print_table(_HEADERS, [[item[h] for h in _HEADERS] for item in items], json_mode=True)
        return
    if not items:
        print("No attributes defined.")
        return
    print_table(_HEADERS, [[item[h] for h in _HEADERS] for item in items])
    print(f"\n{len(items)} attribute(s)")
