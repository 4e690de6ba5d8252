"""Tests for the attribute catalog."""

from __future__ import annotations

import pytest

from customattrs import CustomAttrsConfig
from customattrs.catalog import AttributeCatalog
from customattrs.errors import AttributeNotFoundError, DefinitionError, DuplicateAttributeError
from customattrs.types import AttributeType

from tests.conftest import user


class TestDefine:
    def test_define_returns_stored_definition(self, engine):
        definition = engine.catalog.define(
            "age", "Age", "number", required=True, rules={"min": 0, "max": 150}
        )
        assert definition.id is not None
        assert definition.type is AttributeType.NUMBER
        assert definition.required is True
        assert definition.rules == {"min": 0, "max": 150}
        assert definition.created_at is not None

    def test_accepts_enum_type(self, engine):
        definition = engine.catalog.define("joined", "Joined", AttributeType.DATE)
        assert definition.slot == "date_value"

    def test_label_is_trimmed(self, engine):
        assert engine.catalog.define("city", "  City ", "text").label == "City"

    def test_duplicate_name_rejected(self, engine):
        engine.catalog.define("age", "Age", "number")
        with pytest.raises(DuplicateAttributeError) as exc_info:
            engine.catalog.define("age", "Age again", "text")
        assert exc_info.value.violations == {"name": ["An attribute named 'age' already exists."]}
        assert engine.catalog.get("age").type is AttributeType.NUMBER

    def test_every_violation_reported_at_once(self, engine):
        with pytest.raises(DefinitionError) as exc_info:
            engine.catalog.define("9lives", "", "select", rules={"after": "today"})
        assert set(exc_info.value.violations) == {"name", "label", "options", "rules.after"}
        assert engine.catalog.list() == []

    def test_select_options_round_trip(self, engine):
        engine.catalog.define("size", "Size", "select", options=["S", "M", "L"])
        assert engine.catalog.get("size").options == ["S", "M", "L"]


class TestLookup:
    def test_get_unknown_raises(self, engine):
        with pytest.raises(AttributeNotFoundError):
            engine.catalog.get("ghost")

    def test_lookup_unknown_returns_none(self, engine):
        assert engine.catalog.lookup("ghost") is None

    def test_lookup_is_memoized(self, engine, repo):
        engine.catalog.define("age", "Age", "number")
        first = engine.catalog.get("age")
        repo.execute("UPDATE attributes SET label = 'Changed' WHERE name = 'age'")
        assert engine.catalog.get("age") is first
        engine.catalog.clear_cache()
        assert engine.catalog.get("age").label == "Changed"

    def test_memo_disabled(self, repo):
        catalog = AttributeCatalog(repo, CustomAttrsConfig(cache_definitions=False))
        catalog.define("age", "Age", "number")
        catalog.get("age")
        repo.execute("UPDATE attributes SET label = 'Changed' WHERE name = 'age'")
        assert catalog.get("age").label == "Changed"


class TestUpdate:
    def test_update_mutable_fields(self, engine):
        engine.catalog.define("age", "Age", "number")
        updated = engine.catalog.update("age", label="Years", required=True, rules={"max": 99})
        assert updated.label == "Years"
        assert updated.required is True
        assert updated.rules == {"max": 99}
        assert updated.type is AttributeType.NUMBER

    def test_none_leaves_fields_unchanged(self, engine):
        engine.catalog.define("color", "Color", "select", options=["red"])
        updated = engine.catalog.update("color", label="Colour")
        assert updated.options == ["red"]

    def test_update_revalidates_merged_definition(self, engine):
        engine.catalog.define("age", "Age", "number", rules={"max": 10})
        with pytest.raises(DefinitionError) as exc_info:
            engine.catalog.update("age", rules={"min": 20, "max": 10})
        assert "rules.min" in exc_info.value.violations
        assert engine.catalog.get("age").rules == {"max": 10}

    def test_update_does_not_touch_stored_values(self, people):
        people.values.set_one(user(1), "age", 120)
        people.catalog.update("age", rules={"max": 100})
        assert people.values.get_one(user(1), "age") == 120.0

    def test_update_unknown_raises(self, engine):
        with pytest.raises(AttributeNotFoundError):
            engine.catalog.update("ghost", label="Ghost")


class TestDeleteAndList:
    def test_delete_removes_values(self, people):
        people.values.set_one(user(1), "age", 30)
        people.values.set_one(user(2), "age", 40)
        assert people.catalog.count_values("age") == 2
        assert people.catalog.delete("age") == 2
        assert people.catalog.lookup("age") is None
        assert people.repo.fetch_value(1, "user", "age") is None

    def test_delete_unknown_raises(self, engine):
        with pytest.raises(AttributeNotFoundError):
            engine.catalog.delete("ghost")

    def test_list_is_ordered_by_name(self, people):
        names = [d.name for d in people.catalog.list()]
        assert names == ["active", "age", "color", "joined", "name"]

    def test_list_filters(self, people):
        people.catalog.update("age", required=True)
        assert [d.name for d in people.catalog.list(type="date")] == ["joined"]
        assert [d.name for d in people.catalog.list(type=AttributeType.BOOLEAN)] == ["active"]
        assert [d.name for d in people.catalog.list(required_only=True)] == ["age"]

    def test_list_unknown_type(self, people):
        with pytest.raises(ValueError):
            people.catalog.list(type="colour")
