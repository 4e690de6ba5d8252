"""customattrs bind: attach cache documents of an entity type to a host table."""

from __future__ import annotations

from typing import Optional

import typer

from customattrs.cli import _exitcodes as ec
from customattrs.cli._output import print_error, print_object, print_table
from customattrs.cli._storage import open_engine
from customattrs.errors import StorageError


def bind_cmd(
    entity_type: Optional[str] = typer.Argument(None, help="Entity type tag"),
    table: Optional[str] = typer.Option(None, "--table", help="Host table holding the entities"),
    id_column: str = typer.Option("id", "--id-column", help="Host table id column"),
    cache_column: Optional[str] = typer.Option(
        None, "--cache-column", help="Host column receiving the JSON document"
    ),
    remove: bool = typer.Option(False, "--remove", help="Remove the binding instead"),
) -> None:
    """Bind an entity type to a host table column, or list bindings when no type is given."""
    from customattrs.cli import state

    if entity_type is None and (table or remove):
        print_error("ENTITY_TYPE is required with --table or --remove")
        raise typer.Exit(ec.USAGE_ERROR)
    if entity_type is not None and not remove and not table:
        print_error("--table is required to bind an entity type")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        engine = open_engine()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        if entity_type is None:
            rows = [
                [b.entity_type, b.table, b.id_column, b.cache_column]
                for b in engine.cache.bindings()
            ]
            headers = ["entity_type", "table", "id_column", "cache_column"]
            if not rows and not state.json_output:
                print("No bindings.")
            else:
                print_table(headers, rows, json_mode=state.json_output)
            return
        if remove:
            if not engine.cache.unbind(entity_type):
                print_error(f"No binding for entity type '{entity_type}'")
                raise typer.Exit(ec.GENERAL_ERROR)
            print(f"Removed binding for '{entity_type}'")
            return
        assert table is not None
        binding = engine.bind(entity_type, table, id_column, cache_column)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    except StorageError as e:
        print_error(e.user_message())
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        engine.close()

    data = {
        "entity_type": binding.entity_type,
        "table": binding.table,
        "id_column": binding.id_column,
        "cache_column": binding.cache_column,
    }
    if state.json_output:
        print_object(data, json_mode=True)
    else:
        print(f"Bound '{binding.entity_type}' to {binding.table}.{binding.cache_column}")
