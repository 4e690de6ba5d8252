"""Tests for attribute searches."""

from __future__ import annotations

import pytest

from customattrs import AttributeNotFoundError, EntityRef, FilterError

from tests.conftest import user


@pytest.fixture
def levels(people):
    """Users 1..7 at level 1..7, user 8 with only a name, user 9 with an explicit null level."""
    people.catalog.define("level", "Level", "number")
    for i in range(1, 8):
        people.values.set_one(user(i), "level", i)
    people.values.set_one(user(8), "name", "Eve")
    people.values.set_one(user(9), "level", None)
    return people


@pytest.fixture
def directory(people):
    """Users with names, colors, activity flags and join dates."""
    rows = {
        1: {"name": "Alice Smith", "color": "red", "active": True, "joined": "2024-01-10"},
        2: {"name": "bob jones", "color": "green", "active": False, "joined": "2024-02-20"},
        3: {"name": "ALICIA Keys", "color": "blue", "active": True, "joined": "2024-03-30"},
        4: {"name": "Carol", "color": "red", "active": False, "joined": "2023-12-31"},
    }
    for entity_id, values in rows.items():
        people.values.set_many(user(entity_id), values)
    return people


class TestComparisons:
    @pytest.mark.parametrize("threshold,count", [(3, 4), (4, 3), (5, 2)])
    def test_greater_than_counts(self, levels, threshold, count):
        found = levels.search.search("user", {"level": {"operator": ">", "value": threshold}})
        assert len(found) == count

    def test_numeric_string_is_cast(self, levels):
        found = levels.search.search("user", {"level": {"operator": ">", "value": "5"}})
        assert found == {6, 7}

    def test_text_comparison_is_lexicographic(self, people):
        people.catalog.define("level", "Level", "text")
        for i, value in enumerate(["1", "2", "10", "9"], start=1):
            people.values.set_one(user(i), "level", value)
        found = people.search.search("user", {"level": {"operator": ">", "value": "5"}})
        assert found == {4}

    def test_equality_literal(self, levels):
        assert levels.search.search("user", {"level": 3}) == {3}

    @pytest.mark.parametrize("operator", ["!=", "<>"])
    def test_not_equal(self, levels, operator):
        found = levels.search.search("user", {"level": {"operator": operator, "value": 3}})
        assert found == {1, 2, 4, 5, 6, 7}

    def test_less_or_equal(self, levels):
        found = levels.search.search("user", {"level": {"operator": "<=", "value": 2}})
        assert found == {1, 2}

    def test_in(self, levels):
        found = levels.search.search("user", {"level": {"operator": "IN", "value": [1, "3", 99]}})
        assert found == {1, 3}

    def test_list_literal_means_in(self, levels):
        assert levels.search.search("user", {"level": [2, 4]}) == {2, 4}

    def test_empty_in_matches_nothing(self, levels):
        assert levels.search.search("user", {"level": {"operator": "IN", "value": []}}) == set()

    def test_in_ignores_null_members(self, levels):
        assert levels.search.search("user", {"level": [1, None]}) == {1}
        assert levels.search.search("user", {"level": {"operator": "IN", "value": [None, ""]}}) == set()

    def test_between_is_inclusive(self, levels):
        found = levels.search.search(
            "user", {"level": {"operator": "BETWEEN", "min": 2, "max": 4}}
        )
        assert found == {2, 3, 4}

    def test_between_needs_both_bounds(self, levels):
        with pytest.raises(FilterError):
            levels.search.search("user", {"level": {"operator": "BETWEEN", "min": 2}})

    def test_uncastable_value(self, levels):
        with pytest.raises(FilterError):
            levels.search.search("user", {"level": {"operator": ">", "value": "high"}})


class TestNullChecks:
    def test_null_includes_missing_rows(self, levels):
        assert levels.search.search("user", {"level": None}) == {8, 9}

    @pytest.mark.parametrize("operator", ["NULL", "is null", "IS_NULL"])
    def test_null_operator_spellings(self, levels, operator):
        assert levels.search.search("user", {"level": {"operator": operator}}) == {8, 9}

    def test_not_null(self, levels):
        found = levels.search.search("user", {"level": {"operator": "NOT NULL"}})
        assert found == set(range(1, 8))

    def test_equals_none_is_null(self, levels):
        found = levels.search.search("user", {"level": {"operator": "=", "value": None}})
        assert found == {8, 9}

    def test_null_combined_with_regular_filter(self, levels):
        found = levels.search.search("user", {"level": None, "name": "Eve"})
        assert found == {8}


class TestLike:
    def test_default_is_case_insensitive_substring(self, directory):
        found = directory.search.search("user", {"name": {"operator": "LIKE", "value": "ali"}})
        assert found == {1, 3}

    def test_case_sensitive(self, directory):
        found = directory.search.search(
            "user",
            {"name": {"operator": "LIKE", "value": "Ali", "options": {"case_sensitive": True}}},
        )
        assert found == {1}

    def test_ilike_ignores_case_sensitive_option(self, directory):
        found = directory.search.search(
            "user",
            {"name": {"operator": "ILIKE", "value": "Ali", "options": {"case_sensitive": True}}},
        )
        assert found == {1, 3}

    def test_explicit_wildcards(self, directory):
        found = directory.search.search("user", {"name": {"operator": "LIKE", "value": "%jones"}})
        assert found == {2}

    def test_like_on_select(self, directory):
        found = directory.search.search("user", {"color": {"operator": "LIKE", "value": "re"}})
        assert found == {1, 2, 4}

    def test_like_on_number_rejected(self, levels):
        with pytest.raises(FilterError, match="LIKE"):
            levels.search.search("user", {"level": {"operator": "LIKE", "value": "1"}})


class TestCombination:
    def test_and(self, directory):
        found = directory.search.search("user", {"color": "red", "active": True})
        assert found == {1}

    def test_short_circuits_on_empty_result(self, directory, monkeypatch):
        calls = []
        original = directory.search._matching

        def counting(entity_type, criterion, universe):
            calls.append(criterion.attribute_name)
            return original(entity_type, criterion, universe)

        monkeypatch.setattr(directory.search, "_matching", counting)
        found = directory.search.search("user", {"color": "purple", "active": True})
        assert found == set()
        assert calls == ["color"]

    def test_empty_filters_match_nothing(self, directory):
        assert directory.search.search("user", {}) == set()
        assert directory.search.advanced_search("user", {}, "OR") == set()

    def test_unknown_attribute(self, directory):
        with pytest.raises(AttributeNotFoundError):
            directory.search.search("user", {"nickname": "Al"})

    def test_bad_operator(self, directory):
        with pytest.raises(FilterError, match="Unsupported operator"):
            directory.search.search("user", {"name": {"operator": "~", "value": "x"}})

    def test_or(self, directory):
        found = directory.search.advanced_search(
            "user", {"color": "blue", "active": False}, logic="or"
        )
        assert found == {2, 3, 4}

    def test_and_logic(self, directory):
        found = directory.search.advanced_search("user", {"color": "red", "active": False})
        assert found == {4}

    def test_invalid_logic(self, directory):
        with pytest.raises(ValueError):
            directory.search.advanced_search("user", {"color": "red"}, logic="XOR")

    def test_entity_types_are_isolated(self, directory):
        directory.values.set_one(EntityRef(1, "team"), "color", "red")
        assert directory.search.search("team", {"color": "red"}) == {1}


class TestTypedValues:
    def test_dates(self, directory):
        found = directory.search.search(
            "user", {"joined": {"operator": ">=", "value": "2024-02-20"}}
        )
        assert found == {2, 3}

    def test_booleans(self, directory):
        assert directory.search.search("user", {"active": "false"}) == {2, 4}


class TestSort:
    def test_sort_ascending_missing_last(self, levels):
        assert levels.search.sort("user", [3, 1, 8, 2], "level") == [1, 2, 3, 8]

    def test_sort_descending(self, levels):
        assert levels.search.sort("user", [3, 1, 8, 2], "level", descending=True) == [3, 2, 1, 8]

    def test_sort_dates(self, directory):
        assert directory.search.sort("user", [1, 2, 3, 4], "joined") == [4, 1, 2, 3]


class TestShortcuts:
    def test_search_text(self, directory):
        assert directory.search.search_text("user", "name", "smith") == {1}
        assert directory.search.search_text("user", "name", "Smith", case_sensitive=True) == {1}
        assert directory.search.search_text("user", "name", "smith", case_sensitive=True) == set()

    def test_number_range(self, levels):
        assert levels.search.search_number_range("user", "level", 6, 10) == {6, 7}

    def test_date_range(self, directory):
        found = directory.search.search_date_range("user", "joined", "2024-01-01", "2024-02-28")
        assert found == {1, 2}

    def test_boolean(self, directory):
        assert directory.search.search_boolean("user", "active", True) == {1, 3}

    def test_wrong_or_missing_attribute_matches_nothing(self, directory):
        assert directory.search.search_text("user", "active", "x") == set()
        assert directory.search.search_number_range("user", "ghost", 1, 2) == set()
        assert directory.search.search_boolean("user", "name", True) == set()

    def test_attribute_presence(self, levels):
        assert levels.search.with_any_attribute("user", ["name"]) == {8}
        assert levels.search.with_any_attribute("user", ["name", "level"]) == set(range(1, 10))
        assert levels.search.with_all_attributes("user", ["name", "level"]) == set()
        assert levels.search.with_any_attribute("user", []) == set()


class TestFullText:
    def test_falls_back_to_like_without_index(self, directory):
        found = directory.search.search(
            "user", {"name": {"operator": "LIKE", "value": "ali", "options": {"full_text": True}}}
        )
        assert found == {1, 3}

    def test_uses_fts_index_after_optimize(self, directory):
        if not directory.dialect.supports("fts_extension"):
            pytest.skip("sqlite built without FTS5")
        directory.optimize()
        found = directory.search.search_text("user", "name", "alice", full_text=True)
        assert found == {1}
        directory.values.set_one(user(2), "name", "Alice Cooper")
        assert directory.search.search_text("user", "name", "alice", full_text=True) == {1, 2}
