"""Tests for customattrs delete command."""

import json

from tests.cli.conftest import invoke, run_sql


def test_delete_force(runner, seeded_db):
    result = invoke(runner, ["delete", "age", "--force"], seeded_db)
    assert result.exit_code == 0
    assert "Deleted attribute 'age' and 3 value(s)" in result.output
    assert run_sql(seeded_db, "SELECT COUNT(*) FROM attribute_values WHERE attribute_name = 'age'") == [(0,)]


def test_delete_rewrites_cache_documents(runner, seeded_db):
    invoke(runner, ["delete", "age", "-f"], seeded_db)
    (document,) = run_sql(seeded_db, "SELECT custom_attributes FROM users WHERE id = 1")[0]
    assert json.loads(document) == {"tier": "gold"}


def test_delete_confirmed(runner, seeded_db):
    result = invoke(runner, ["delete", "nickname"], seeded_db, input="y\n")
    assert result.exit_code == 0
    assert "Stored values: 1" in result.output
    assert "Deleted attribute 'nickname' and 1 value(s)" in result.output


def test_delete_cancelled(runner, seeded_db):
    result = invoke(runner, ["delete", "age"], seeded_db, input="n\n")
    assert result.exit_code == 0
    assert "Deletion cancelled." in result.output
    listed = json.loads(invoke(runner, ["--json", "list"], seeded_db).stdout)
    assert "age" in [d["name"] for d in listed]


def test_delete_unknown(runner, seeded_db):
    result = invoke(runner, ["delete", "ghost", "--force"], seeded_db)
    assert result.exit_code == 1
    assert "'ghost' does not exist" in result.output


def test_delete_json(runner, seeded_db):
    result = invoke(runner, ["--json", "delete", "tier", "--force"], seeded_db)
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"deleted": "tier", "values_removed": 1}
