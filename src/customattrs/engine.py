"""Composition root wiring storage, catalog, values, cache and search together."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import date
from typing import Any

from customattrs.backends import Dialect, FeatureCache, dialect_for
from customattrs.cache import CacheSynchronizer
from customattrs.catalog import AttributeCatalog
from customattrs.config import CustomAttrsConfig
from customattrs.search import SearchCompiler
from customattrs.storage import VALUE_TABLE, Repository, open_repository
from customattrs.store import ValueStore
from customattrs.types import HostBinding
from customattrs.validation import Validator

logger = logging.getLogger(__name__)


class AttributeEngine:
    """One attribute engine over one repository.

    Usage::

        with AttributeEngine.open("app.db") as engine:
            engine.catalog.define("age", "Age", "number")
            engine.values.set_one(EntityRef(1, "user"), "age", "42")
            engine.search.search("user", {"age": {"operator": ">", "value": 40}})
    """

    def __init__(
        self,
        repo: Repository,
        config: CustomAttrsConfig | None = None,
        *,
        feature_cache: FeatureCache | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.repo = repo
        self.config = config or CustomAttrsConfig()
        self.dialect: Dialect = dialect_for(
            repo.driver, connection=repo.connection, feature_cache=feature_cache
        )
        self.validator = Validator(today)
        self.catalog = AttributeCatalog(repo, self.config)
        self.cache = CacheSynchronizer(repo, self.catalog, self.dialect, self.config)
        self.values = ValueStore(repo, self.catalog, self.validator, self.cache)
        self.search = SearchCompiler(
            repo, self.catalog, self.validator, self.dialect, self.config
        )
        self.catalog.on_delete(self.cache.refresh)
        # Probe outside any transaction.
        self.dialect.features()

    @classmethod
    def open(
        cls,
        db_path: str | None = None,
        *,
        storage_uri: str | None = None,
        config: CustomAttrsConfig | None = None,
        feature_cache: FeatureCache | None = None,
    ) -> AttributeEngine:
        repo = open_repository(db_path, storage_uri=storage_uri)
        return cls(repo, config, feature_cache=feature_cache)

    def close(self) -> None:
        self.repo.close()

    def __enter__(self) -> AttributeEngine:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def bind(
        self,
        entity_type: str,
        table: str,
        id_column: str = "id",
        cache_column: str | None = None,
    ) -> HostBinding:
        """Attach a cache document column on ``table`` to an entity type."""
        binding = HostBinding(
            entity_type=entity_type,
            table=table,
            id_column=id_column,
            cache_column=cache_column or self.config.default_cache_column,
        )
        return self.cache.bind(binding)

    def database_info(self) -> dict[str, Any]:
        info = self.dialect.info()
        info["storage"] = self.repo.storage_info()
        return info

    def optimize(self) -> list[str]:
        """Run the dialect's advisory index statements; failing ones are logged and skipped."""
        executed: list[str] = []
        for statement in self.dialect.optimization_statements(VALUE_TABLE):
            try:
                self.repo.execute(statement)
            except sqlite3.Error as exc:
                logger.warning(
                    "Database optimization failed",
                    extra={"statement": statement, "error": str(exc)},
                )
                continue
            executed.append(statement)
            logger.info("Database optimization applied", extra={"statement": statement})
        self.dialect.clear_feature_cache()
        return executed
