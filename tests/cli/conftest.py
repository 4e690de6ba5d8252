"""Shared fixtures for CLI tests."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from customattrs import AttributeEngine, EntityRef
from customattrs.cli import app

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """Create a temp DB path for the CLI to open."""
    db_path = str(tmp_path / "cli_test.db")
    return db_path


@pytest.fixture
def seeded_db(cli_db):
    """A DB with three attributes, a bound ``users`` host table and values for users 1..3."""
    engine = AttributeEngine.open(cli_db)
    engine.catalog.define("age", "Age", "number", rules={"min": 0})
    engine.catalog.define("nickname", "Nickname", "text")
    engine.catalog.define("tier", "Tier", "select", required=True, options=["gold", "silver"])
    engine.repo.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, custom_attributes TEXT)")
    for i in (1, 2, 3):
        engine.repo.execute("INSERT INTO users (id) VALUES (?)", (i,))
    engine.bind("user", "users")
    engine.values.set_many(EntityRef(1, "user"), {"age": 30, "tier": "gold"})
    engine.values.set_many(EntityRef(2, "user"), {"age": 25, "nickname": "Bo"})
    engine.values.set_one(EntityRef(3, "user"), "age", 41)
    engine.close()
    return cli_db


def run_sql(db_path: str, sql: str, params: tuple = ()) -> list[tuple]:
    """Run one statement against the CLI database outside the engine."""
    conn = sqlite3.connect(db_path, isolation_level=None)
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def invoke(
    runner: CliRunner,
    args: list[str],
    db_path: str | None = None,
    input: str | None = None,
) -> "Result":
    """Invoke CLI with proper state setup."""
    if db_path:
        # Inject --db before subcommand
        args = ["--db", db_path] + args
    result = runner.invoke(app, args, input=input, catch_exceptions=False)
    return result
