"""customattrs resync: rebuild cache documents from the value table."""

from __future__ import annotations

from typing import Optional

import typer

from customattrs.cli import _exitcodes as ec
from customattrs.cli._output import print_error, print_object, print_table, print_warning
from customattrs.cli._storage import open_engine
from customattrs.errors import StorageError


def resync_cmd(
    entity_type: Optional[str] = typer.Argument(None, help="Entity type to resync"),
    all_types: bool = typer.Option(False, "--all", help="Resync every bound entity type"),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", min=1, help="Entities per committed batch (default: config)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only report what would be rebuilt"),
) -> None:
    """Rebuild cache documents in independently committed batches."""
    from customattrs.cli import state

    if (entity_type is None) == (not all_types):
        print_error("Give exactly one of ENTITY_TYPE or --all")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        engine = open_engine()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        if all_types:
            types = [b.entity_type for b in engine.cache.bindings()]
        else:
            assert entity_type is not None
            types = [entity_type]
            if engine.cache.binding_for(entity_type) is None:
                print_warning(f"Entity type '{entity_type}' has no cache binding")

        if dry_run:
            rows = [[t, engine.cache.pending(t)] for t in types]
            if state.json_output:
                print_table(["entity_type", "entities"], rows, json_mode=True)
            else:
                print("Dry run: no documents were written.")
                print_table(["entity_type", "entities"], rows)
            return

        results: dict[str, int] = {}
        for t in types:
            results[t] = engine.cache.resync(t, batch_size)
    except StorageError as e:
        print_error(f"Resync failed: {e.user_message()}")
        processed = e.context.get("processed")
        if processed is not None:
            print_error(f"{processed} document(s) were committed before the failure")
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        engine.close()

    if state.json_output:
        print_object(results, json_mode=True)
        return
    if not results:
        print("No bound entity types to resync.")
        return
    for t, count in results.items():
        print(f"Resynced {count} cache document(s) for '{t}'")
