"""customattrs CLI: operator console for attribute definitions and caches."""

from __future__ import annotations

import logging
from typing import Optional

import typer
from click.core import ParameterSource

from customattrs.cli import bind, create, delete, list_cmd, optimize, resync

app = typer.Typer(
    name="customattrs",
    help="customattrs CLI: manage custom attribute definitions, caches and indexes.",
    no_args_is_help=True,
)

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class _State:
    """Global CLI state shared across subcommands."""

    db: str = "customattrs.db"
    storage_uri: str | None = None
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        from customattrs import __version__

        print(f"customattrs {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="CUSTOMATTRS_DB",
        help="SQLite database file path (default: customattrs.db)",
    ),
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="CUSTOMATTRS_STORAGE_URI",
        help="Backend storage URI (e.g. sqlite:///customattrs.db)",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    log_level: str = typer.Option(
        "WARNING", "--log-level", envvar="CUSTOMATTRS_LOG_LEVEL", help="Logging level"
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all customattrs commands."""
    from customattrs.storage import parse_storage_target

    level = log_level.strip().upper()
    if level not in _LOG_LEVELS:
        raise typer.BadParameter(
            f"must be one of {', '.join(_LOG_LEVELS)}", param_hint="--log-level"
        )
    logging.basicConfig(level=getattr(logging, level))

    db_source = ctx.get_parameter_source("db")
    uri_source = ctx.get_parameter_source("storage_uri")

    resolved_db = db or "customattrs.db"
    resolved_uri = storage_uri
    # Explicit --db wins over CUSTOMATTRS_STORAGE_URI from the environment.
    if db_source == ParameterSource.COMMANDLINE and uri_source == ParameterSource.ENVIRONMENT:
        resolved_uri = None

    if resolved_uri:
        db_for_validation = resolved_db if db_source == ParameterSource.COMMANDLINE else None
        try:
            parse_storage_target(db_path=db_for_validation, storage_uri=resolved_uri)
        except Exception as e:
            raise typer.BadParameter(str(e), param_hint="--storage-uri")

    state.db = resolved_db
    state.storage_uri = resolved_uri
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.command(name="list")(list_cmd.list_cmd)
app.command(name="create")(create.create_cmd)
app.command(name="delete")(delete.delete_cmd)
app.command(name="bind")(bind.bind_cmd)
app.command(name="resync")(resync.resync_cmd)
app.command(name="optimize")(optimize.optimize_cmd)


def main() -> None:
    """Entry point for the customattrs CLI."""
    app()
