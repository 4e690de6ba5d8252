"""customattrs delete: remove an attribute and all of its values."""

from __future__ import annotations

import typer

from customattrs.cli import _exitcodes as ec
from customattrs.cli._output import print_error, print_object
from customattrs.cli._storage import open_engine
from customattrs.errors import AttributeNotFoundError, StorageError


def delete_cmd(
    name: str = typer.Argument(..., help="Attribute name"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt"),
) -> None:
    """Delete an attribute definition together with every stored value."""
    from customattrs.cli import state

    try:
        engine = open_engine()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        definition = engine.catalog.get(name)
        count = engine.catalog.count_values(name)
        if not force:
            print(f"Attribute: {definition.name} ({definition.label}, {definition.type.value})")
            print(f"Stored values: {count}")
            if not typer.confirm(f"Delete '{name}' and its {count} value(s)?", default=False):
                print("Deletion cancelled.")
                return
        removed = engine.catalog.delete(name)
    except AttributeNotFoundError as e:
        print_error(e.user_message())
        raise typer.Exit(ec.GENERAL_ERROR)
    except StorageError as e:
        print_error(e.user_message())
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        engine.close()

    if state.json_output:
        print_object({"deleted": name, "values_removed": removed}, json_mode=True)
    else:
        print(f"Deleted attribute '{name}' and {removed} value(s)")
