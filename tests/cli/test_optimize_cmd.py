"""Tests for customattrs optimize command."""

import json

from tests.cli.conftest import invoke


def test_check(runner, seeded_db):
    result = invoke(runner, ["optimize", "--check"], seeded_db)
    assert result.exit_code == 0
    assert "Database driver: sqlite" in result.output
    assert "json_functions" in result.output
    assert "Database compatibility check completed." in result.output


def test_check_json(runner, seeded_db):
    result = invoke(runner, ["--json", "optimize", "--check"], seeded_db)
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["driver"] == "sqlite"
    assert data["migration_config"]["json_column_type"] == "text"
    assert data["storage"]["db_path"] == seeded_db


def test_optimize_applies_indexes(runner, seeded_db):
    result = invoke(runner, ["optimize"], seeded_db)
    assert result.exit_code == 0
    assert "Applied optimizations:" in result.output
    assert "idx_attribute_values_text_nocase" in result.output
    assert "Recommendations:" in result.output


def test_optimize_json(runner, seeded_db):
    result = invoke(runner, ["--json", "optimize"], seeded_db)
    data = json.loads(result.stdout)
    assert "ANALYZE" in data["applied"]
    assert data["recommendations"]
