"""customattrs optimize: report backend features and apply advisory indexes."""

from __future__ import annotations

from typing import Any

import typer

from customattrs.cli import _exitcodes as ec
from customattrs.cli._output import print_error, print_object, print_warning
from customattrs.cli._storage import open_engine


def _show_info(info: dict[str, Any]) -> None:
    print(f"Database driver: {info['driver']}")
    print("\nSupported features:")
    for feature, supported in info["features"].items():
        print(f"  [{'x' if supported else ' '}] {feature}")
    print("\nMigration configuration:")
    for key, value in info["migration_config"].items():
        shown = ("true" if value else "false") if isinstance(value, bool) else value
        print(f"  {key}: {shown}")


def optimize_cmd(
    check: bool = typer.Option(
        False, "--check", help="Only report compatibility, apply nothing"
    ),
) -> None:
    """Show backend capabilities and create backend-specific search indexes."""
    from customattrs.cli import state

    try:
        engine = open_engine()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        info = engine.database_info()
        if check:
            if state.json_output:
                print_object(info, json_mode=True)
            else:
                _show_info(info)
                print("\nDatabase compatibility check completed.")
            return

        applied = engine.optimize()
        recommendations = engine.dialect.recommendations()
    except Exception as e:
        print_error(f"Database optimization failed: {e}")
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        engine.close()

    if state.json_output:
        print_object({**info, "applied": applied, "recommendations": recommendations}, json_mode=True)
        return
    _show_info(info)
    if not applied:
        print_warning("No optimizations were applied.")
    else:
        print("\nApplied optimizations:")
        for statement in applied:
            print(f"  {statement}")
    print("\nRecommendations:")
    for tip in recommendations:
        print(f"  - {tip}")
