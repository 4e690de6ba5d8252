"""Backend capability detection and dialect-specific SQL fragments."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from customattrs.types import SLOT_BY_TYPE, STRING_SLOT, AttributeType, encode_slot_value

logger = logging.getLogger(__name__)

BASE_FEATURES: tuple[str, ...] = (
    "json_functions",
    "fulltext_search",
    "generated_columns",
    "json_extract",
    "json_search",
    "case_sensitive_like",
)

COMPARISON_OPERATORS = frozenset({"=", "!=", "<>", "<", ">", "<=", ">="})


@dataclass(frozen=True)
class Fragment:
    """A parameterized SQL predicate."""

    sql: str
    params: tuple[Any, ...] = ()


class FeatureCache:
    """Probed feature tables, keyed by backend kind.

    One instance is normally shared by every dialect in the process; tests
    pass their own and call :meth:`clear` between cases.
    """

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, bool]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_or_probe(self, key: str, probe: Callable[[], dict[str, bool]]) -> dict[str, bool]:
        if key not in self._entries:
            self._entries[key] = probe()
            logger.debug("Probed backend features", extra={"backend": key})
        return self._entries[key]

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


FEATURE_CACHE = FeatureCache()


def like_pattern(term: str) -> str:
    """Wrap a search term in ``%`` unless the caller supplied wildcards."""
    if "%" in term:
        return term
    return f"%{term}%"


def _glob_pattern(pattern: str) -> str:
    out = []
    for ch in pattern:
        if ch == "%":
            out.append("*")
        elif ch == "_":
            out.append("?")
        elif ch in "*?[":
            out.append(f"[{ch}]")
        else:
            out.append(ch)
    return "".join(out)


def encode_filter_value(attr_type: AttributeType, value: Any) -> Any:
    """Column representation of an already-cast filter value."""
    return encode_slot_value(SLOT_BY_TYPE[attr_type], value)


class Dialect:
    """Fallback dialect for unknown drivers: plain ANSI predicates, no extras."""

    name = "generic"
    placeholder = "?"

    def __init__(self, feature_cache: FeatureCache | None = None) -> None:
        self._feature_cache = feature_cache if feature_cache is not None else FEATURE_CACHE

    # --- Features ---

    def _probe(self) -> dict[str, bool]:
        return {feature: False for feature in BASE_FEATURES}

    def features(self) -> dict[str, bool]:
        return dict(self._feature_cache.get_or_probe(self.name, self._probe))

    def supports(self, feature: str) -> bool:
        return self.features().get(feature, False)

    def clear_feature_cache(self) -> None:
        """Forget and re-probe this backend's features."""
        self._feature_cache.clear(self.name)
        self.features()

    # --- Fragment builders ---

    def like_fragment(self, column: str, term: str, case_sensitive: bool = False) -> Fragment:
        return Fragment(f"{column} LIKE {self.placeholder}", (like_pattern(term),))

    def fulltext_fragment(self, column: str, term: str, table: str = "attribute_values") -> Fragment:
        return self.like_fragment(column, term)

    def comparison_fragment(
        self,
        attr_type: AttributeType,
        column: str,
        value: Any,
        operator: str = "=",
    ) -> Fragment:
        op = operator.strip().upper()
        if op in ("LIKE", "ILIKE"):
            return self.like_fragment(column, str(value), case_sensitive=op == "LIKE")
        if op == "FULLTEXT":
            return self.fulltext_fragment(column, str(value))
        if op not in COMPARISON_OPERATORS:
            raise ValueError(f"Unsupported comparison operator: {operator}")
        if op == "<>":
            op = "!="
        return Fragment(
            f"{column} {op} {self.placeholder}",
            (encode_filter_value(attr_type, value),),
        )

    def in_fragment(self, attr_type: AttributeType, column: str, values: Sequence[Any]) -> Fragment:
        if not values:
            return Fragment("1 = 0")
        marks = ", ".join(self.placeholder for _ in values)
        return Fragment(
            f"{column} IN ({marks})",
            tuple(encode_filter_value(attr_type, v) for v in values),
        )

    def between_fragment(self, attr_type: AttributeType, column: str, low: Any, high: Any) -> Fragment:
        return Fragment(
            f"{column} BETWEEN {self.placeholder} AND {self.placeholder}",
            (encode_filter_value(attr_type, low), encode_filter_value(attr_type, high)),
        )

    def null_fragment(self, column: str, negate: bool = False) -> Fragment:
        return Fragment(f"{column} IS NOT NULL" if negate else f"{column} IS NULL")

    # --- Operator surface ---

    def optimization_statements(self, table: str) -> list[str]:
        return []

    def migration_config(self) -> dict[str, Any]:
        return {
            "supports_fulltext": False,
            "json_column_type": "text",
            "text_column_type": "text",
            "supports_generated_columns": False,
        }

    def recommendations(self) -> list[str]:
        return ["No specific recommendations for this database driver."]

    def info(self) -> dict[str, Any]:
        return {
            "driver": self.name,
            "features": self.features(),
            "migration_config": self.migration_config(),
        }


class SQLiteDialect(Dialect):
    name = "sqlite"

    def __init__(
        self,
        connection: sqlite3.Connection,
        feature_cache: FeatureCache | None = None,
    ) -> None:
        super().__init__(feature_cache)
        self._conn = connection

    def _probe(self) -> dict[str, bool]:
        features = {feature: False for feature in BASE_FEATURES}
        features["json1_extension"] = False
        features["fts_extension"] = False
        # GLOB matches case-sensitively
        features["case_sensitive_like"] = True
        try:
            self._conn.execute("SELECT json('{}')").fetchone()
        except sqlite3.Error:
            logger.debug("sqlite json1 extension unavailable")
        else:
            features["json_functions"] = True
            features["json_extract"] = True
            features["json1_extension"] = True
        try:
            self._conn.execute(
                "CREATE VIRTUAL TABLE IF NOT EXISTS temp.customattrs_fts_probe USING fts5(content)"
            )
            self._conn.execute("DROP TABLE IF EXISTS temp.customattrs_fts_probe")
        except sqlite3.Error:
            logger.debug("sqlite fts5 extension unavailable")
        else:
            features["fts_extension"] = True
            features["fulltext_search"] = True
        return features

    def _has_table(self, table: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE name = ? AND type IN ('table', 'view')",
            (table,),
        ).fetchone()
        return row is not None

    def like_fragment(self, column: str, term: str, case_sensitive: bool = False) -> Fragment:
        pattern = like_pattern(term)
        if case_sensitive:
            # sqlite LIKE ignores ASCII case; GLOB does not.
            return Fragment(f"{column} GLOB ?", (_glob_pattern(pattern),))
        return Fragment(f"{column} LIKE ?", (pattern,))

    def fulltext_fragment(self, column: str, term: str, table: str = "attribute_values") -> Fragment:
        fts_table = f"{table}_fts"
        usable = (
            column.rsplit(".", 1)[-1] == STRING_SLOT
            and self.supports("fulltext_search")
            and self._has_table(fts_table)
        )
        if not usable:
            return self.like_fragment(column, term)
        phrase = '"' + term.replace('"', '""') + '"'
        return Fragment(
            f"id IN (SELECT rowid FROM {fts_table} WHERE {fts_table} MATCH ?)",
            (phrase,),
        )

    def optimization_statements(self, table: str) -> list[str]:
        statements = [
            f"CREATE INDEX IF NOT EXISTS idx_{table}_text_nocase "
            f"ON {table} (entity_type, attribute_name, string_value COLLATE NOCASE)",
        ]
        if self.supports("fts_extension"):
            fts = f"{table}_fts"
            statements += [
                f"CREATE VIRTUAL TABLE IF NOT EXISTS {fts} USING fts5("
                f"string_value, content='{table}', content_rowid='id')",
                f"CREATE TRIGGER IF NOT EXISTS {fts}_insert AFTER INSERT ON {table} BEGIN "
                f"INSERT INTO {fts}(rowid, string_value) VALUES (new.id, new.string_value); END",
                f"CREATE TRIGGER IF NOT EXISTS {fts}_delete AFTER DELETE ON {table} BEGIN "
                f"INSERT INTO {fts}({fts}, rowid, string_value) "
                f"VALUES ('delete', old.id, old.string_value); END",
                f"CREATE TRIGGER IF NOT EXISTS {fts}_update AFTER UPDATE ON {table} BEGIN "
                f"INSERT INTO {fts}({fts}, rowid, string_value) "
                f"VALUES ('delete', old.id, old.string_value); "
                f"INSERT INTO {fts}(rowid, string_value) VALUES (new.id, new.string_value); END",
                f"INSERT INTO {fts}({fts}) VALUES ('rebuild')",
            ]
        statements.append("ANALYZE")
        return statements

    def migration_config(self) -> dict[str, Any]:
        return {
            "supports_fulltext": self.supports("fts_extension"),
            "json_column_type": "text",
            "text_column_type": "text",
            "supports_generated_columns": False,
        }

    def recommendations(self) -> list[str]:
        tips = ["SQLite is fine for development; consider MySQL or PostgreSQL for production."]
        if not self.supports("json1_extension"):
            tips.append("Enable the JSON1 extension for native JSON cache documents.")
        if self.supports("fts_extension"):
            tips.append("FTS5 is available: run optimize to enable full-text search.")
        else:
            tips.append("Enable the FTS5 extension for full-text search.")
        tips.append("Consider PRAGMA journal_mode=WAL and synchronous=NORMAL.")
        return tips


class MySQLDialect(Dialect):
    name = "mysql"
    placeholder = "%s"

    def __init__(
        self,
        feature_cache: FeatureCache | None = None,
        version_probe: Callable[[], str] | None = None,
    ) -> None:
        super().__init__(feature_cache)
        self._version_probe = version_probe

    def _probe(self) -> dict[str, bool]:
        features = {feature: True for feature in BASE_FEATURES}
        features["generated_columns"] = False
        if self._version_probe is not None:
            try:
                version = self._version_probe()
            except Exception:
                logger.warning("MySQL version probe failed", exc_info=True)
            else:
                features["generated_columns"] = _version_tuple(version) >= (5, 7, 0)
        return features

    def like_fragment(self, column: str, term: str, case_sensitive: bool = False) -> Fragment:
        op = "LIKE BINARY" if case_sensitive and self.supports("case_sensitive_like") else "LIKE"
        return Fragment(f"{column} {op} %s", (like_pattern(term),))

    def fulltext_fragment(self, column: str, term: str, table: str = "attribute_values") -> Fragment:
        if not self.supports("fulltext_search"):
            return self.like_fragment(column, term)
        return Fragment(f"MATCH({column}) AGAINST(%s IN BOOLEAN MODE)", (term,))

    def optimization_statements(self, table: str) -> list[str]:
        statements = []
        if self.supports("fulltext_search"):
            statements.append(f"ALTER TABLE {table} ADD FULLTEXT INDEX ft_string_content (string_value)")
        if self.supports("generated_columns"):
            statements.append(
                f"ALTER TABLE {table} ADD INDEX idx_json_search "
                "((CAST(JSON_EXTRACT(string_value, '$') AS CHAR(255))))"
            )
        statements.append(
            f"ALTER TABLE {table} ADD INDEX idx_entity_attribute_value "
            "(entity_type, attribute_name, string_value(100))"
        )
        return statements

    def migration_config(self) -> dict[str, Any]:
        return {
            "supports_fulltext": True,
            "json_column_type": "json",
            "text_column_type": "text",
            "supports_generated_columns": self.supports("generated_columns"),
        }

    def recommendations(self) -> list[str]:
        tips = ["Consider MySQL 8.0+ for better JSON support."]
        if self.supports("generated_columns"):
            tips.append("Generated columns are supported for computed attributes.")
        if self.supports("fulltext_search"):
            tips.append("Full-text search is enabled; use it for text attribute searches.")
        return tips


class PostgresDialect(Dialect):
    name = "pgsql"
    placeholder = "%s"

    def _probe(self) -> dict[str, bool]:
        features = {feature: True for feature in BASE_FEATURES}
        features["jsonb_support"] = True
        return features

    def like_fragment(self, column: str, term: str, case_sensitive: bool = False) -> Fragment:
        op = "LIKE" if case_sensitive else "ILIKE"
        return Fragment(f"{column} {op} %s", (like_pattern(term),))

    def fulltext_fragment(self, column: str, term: str, table: str = "attribute_values") -> Fragment:
        return Fragment(f"to_tsvector({column}) @@ plainto_tsquery(%s)", (term,))

    def optimization_statements(self, table: str) -> list[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS idx_{table}_gin_string "
            f"ON {table} USING gin(to_tsvector('english', string_value))",
            f"CREATE INDEX IF NOT EXISTS idx_{table}_number "
            f"ON {table} (entity_type, attribute_name, number_value) WHERE number_value IS NOT NULL",
        ]

    def migration_config(self) -> dict[str, Any]:
        return {
            "supports_fulltext": True,
            "json_column_type": "jsonb",
            "text_column_type": "text",
            "supports_generated_columns": True,
        }

    def recommendations(self) -> list[str]:
        return [
            "Consider JSONB columns for cache documents.",
            "Monitor attribute searches with pg_stat_statements.",
        ]


def _version_tuple(version: str) -> tuple[int, ...]:
    parts = []
    for piece in version.split("-", 1)[0].split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def dialect_for(
    driver: str,
    *,
    connection: sqlite3.Connection | None = None,
    feature_cache: FeatureCache | None = None,
    version_probe: Callable[[], str] | None = None,
) -> Dialect:
    """Build the dialect for a driver name (sqlite, mysql, pgsql; anything else is generic)."""
    if driver == "sqlite":
        if connection is None:
            raise ValueError("The sqlite dialect needs a live connection to probe")
        return SQLiteDialect(connection, feature_cache)
    if driver == "mysql":
        return MySQLDialect(feature_cache, version_probe)
    if driver in ("pgsql", "postgres", "postgresql"):
        return PostgresDialect(feature_cache)
    return Dialect(feature_cache)
