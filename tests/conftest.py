"""Shared test fixtures for customattrs tests."""

from __future__ import annotations

from datetime import date

import pytest

from customattrs import AttributeEngine, CustomAttrsConfig, EntityRef, FeatureCache
from customattrs.storage import Repository

TODAY = date(2024, 6, 15)


def user(entity_id: int | str) -> EntityRef:
    return EntityRef(entity_id, "user")


# --- Fixtures ---


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def repo(tmp_db):
    """Create a Repository instance with a temporary database."""
    r = Repository(tmp_db)
    yield r
    r.close()


@pytest.fixture
def feature_cache():
    """A private feature cache so probes never leak between tests."""
    return FeatureCache()


@pytest.fixture
def config():
    return CustomAttrsConfig()


@pytest.fixture
def engine(repo, config, feature_cache):
    """An engine whose notion of "today" is fixed at 2024-06-15."""
    return AttributeEngine(repo, config, feature_cache=feature_cache, today=lambda: TODAY)


@pytest.fixture
def people(engine):
    """A small catalog: name (text), age (number), active (boolean), joined (date), color (select)."""
    catalog = engine.catalog
    catalog.define("name", "Name", "text")
    catalog.define("age", "Age", "number", rules={"min": 0, "max": 150})
    catalog.define("active", "Active", "boolean")
    catalog.define("joined", "Joined", "date")
    catalog.define("color", "Favourite color", "select", options=["red", "green", "blue"])
    return engine


@pytest.fixture
def host_table(repo):
    """A host table ``users`` with ids 1..10 and an empty cache column."""
    repo.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT, custom_attributes TEXT)"
    )
    for i in range(1, 11):
        repo.execute("INSERT INTO users (id, email) VALUES (?, ?)", (i, f"user{i}@example.com"))
    return "users"


@pytest.fixture
def bound(people, host_table):
    """The people engine with ``user`` entities caching into ``users.custom_attributes``."""
    people.bind("user", host_table)
    return people
