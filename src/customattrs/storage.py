"""SQLite repository for attribute definitions, values and host bindings."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from customattrs.backends import Fragment
from customattrs.errors import StorageBackendError, StorageError
from customattrs.types import VALUE_SLOTS, AttributeDefinition, HostBinding, ValueRecord

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "customattrs.db"
VALUE_TABLE = "attribute_values"

_VALUE_COLUMNS = (
    "entity_id, entity_type, attribute_id, attribute_name, "
    "string_value, number_value, date_value, boolean_value"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def storage_errors(operation: str, **context: Any) -> Iterator[None]:
    """Log driver failures with their context and re-raise them sanitized."""
    try:
        yield
    except sqlite3.Error as exc:
        logger.error(
            "Attribute storage operation failed",
            extra={"operation": operation, "context": context, "error": str(exc)},
            exc_info=True,
        )
        raise StorageError(
            operation,
            context={**context, "original_error": str(exc)},
        ) from exc


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage target from a path or URI."""

    backend: str
    uri: str
    db_path: str


def parse_storage_target(
    db_path: str | None = None,
    storage_uri: str | None = None,
) -> StorageTarget:
    """Resolve a storage target from ``--db`` and ``--storage-uri`` forms."""
    if storage_uri is None and db_path is None:
        db_path = DEFAULT_DB_PATH

    if storage_uri is None and db_path is not None:
        return StorageTarget(backend="sqlite", uri=f"sqlite:///{db_path}", db_path=db_path)

    assert storage_uri is not None
    parsed = urlparse(storage_uri)

    if parsed.scheme != "sqlite":
        raise StorageBackendError(
            "parse_storage_uri",
            f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'",
        )

    sqlite_path = parsed.path
    if parsed.netloc:
        sqlite_path = f"{parsed.netloc}{sqlite_path}"
    elif sqlite_path.startswith("//"):
        # sqlite:////abs/path -> /abs/path
        sqlite_path = sqlite_path[1:]
    elif sqlite_path.startswith("/"):
        # sqlite:///rel/path -> rel/path
        sqlite_path = sqlite_path[1:]
    if sqlite_path in ("/:memory:", ":memory:"):
        sqlite_path = ":memory:"
    if not sqlite_path:
        raise StorageBackendError("parse_storage_uri", f"Invalid sqlite URI: {storage_uri}")
    if db_path is not None and os.path.abspath(db_path) != os.path.abspath(sqlite_path):
        raise StorageBackendError(
            "parse_storage_uri",
            f"Conflicting db_path '{db_path}' and storage_uri '{storage_uri}'",
        )
    return StorageTarget(backend="sqlite", uri=storage_uri, db_path=sqlite_path)


class Repository:
    """SQLite-backed persistence for the attribute catalog and value table.

    The connection runs in autocommit mode; :meth:`transaction` opens an
    explicit transaction, or a savepoint when one is already open, so that
    service-level operations compose without committing early.
    """

    driver = "sqlite"

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._depth = 0
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS attributes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                label TEXT NOT NULL,
                type TEXT NOT NULL,
                required INTEGER NOT NULL DEFAULT 0,
                options_json TEXT,
                rules_json TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS attribute_values (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_id NOT NULL,
                entity_type TEXT NOT NULL,
                attribute_id INTEGER NOT NULL,
                attribute_name TEXT NOT NULL,
                string_value TEXT,
                number_value REAL,
                date_value TEXT,
                boolean_value INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (entity_id, entity_type, attribute_id),
                FOREIGN KEY (attribute_id) REFERENCES attributes(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_attribute_values_entity
                ON attribute_values(entity_id, entity_type);
            CREATE INDEX IF NOT EXISTS idx_attribute_values_string
                ON attribute_values(entity_type, attribute_name, string_value);
            CREATE INDEX IF NOT EXISTS idx_attribute_values_number
                ON attribute_values(entity_type, attribute_name, number_value);
            CREATE INDEX IF NOT EXISTS idx_attribute_values_date
                ON attribute_values(entity_type, attribute_name, date_value);
            CREATE INDEX IF NOT EXISTS idx_attribute_values_boolean
                ON attribute_values(entity_type, attribute_name, boolean_value);

            CREATE TABLE IF NOT EXISTS cache_bindings (
                entity_type TEXT PRIMARY KEY,
                table_name TEXT NOT NULL,
                id_column TEXT NOT NULL,
                cache_column TEXT NOT NULL
            );
        """)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the block atomically; nested calls become savepoints."""
        savepoint = f"sp_{self._depth}"
        if self._depth == 0:
            self._conn.execute("BEGIN IMMEDIATE")
        else:
            self._conn.execute(f"SAVEPOINT {savepoint}")
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._conn.execute("ROLLBACK")
            else:
                self._conn.execute(f"ROLLBACK TO {savepoint}")
                self._conn.execute(f"RELEASE {savepoint}")
            raise
        self._depth -= 1
        if self._depth == 0:
            self._conn.execute("COMMIT")
        else:
            self._conn.execute(f"RELEASE {savepoint}")

    def execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        return self._conn.execute(sql, tuple(params))

    # --- Attribute definitions ---

    @staticmethod
    def _row_to_definition(row: sqlite3.Row) -> AttributeDefinition:
        return AttributeDefinition(
            id=row["id"],
            name=row["name"],
            label=row["label"],
            type=row["type"],
            required=bool(row["required"]),
            options=json.loads(row["options_json"]) if row["options_json"] else [],
            rules=json.loads(row["rules_json"]) if row["rules_json"] else {},
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def insert_attribute(
        self,
        name: str,
        label: str,
        type: str,
        required: bool,
        options: list[str],
        rules: dict[str, Any],
    ) -> AttributeDefinition:
        now = _now()
        cursor = self._conn.execute(
            "INSERT INTO attributes "
            "(name, label, type, required, options_json, rules_json, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                name,
                label,
                type,
                int(required),
                json.dumps(options) if options else None,
                json.dumps(rules) if rules else None,
                now,
                now,
            ),
        )
        definition = self.get_attribute_by_id(cursor.lastrowid)  # type: ignore[arg-type]
        assert definition is not None
        return definition

    def update_attribute(
        self,
        attribute_id: int,
        *,
        label: str,
        required: bool,
        options: list[str],
        rules: dict[str, Any],
    ) -> None:
        self._conn.execute(
            "UPDATE attributes SET label = ?, required = ?, options_json = ?, "
            "rules_json = ?, updated_at = ? WHERE id = ?",
            (
                label,
                int(required),
                json.dumps(options) if options else None,
                json.dumps(rules) if rules else None,
                _now(),
                attribute_id,
            ),
        )

    def get_attribute(self, name: str) -> AttributeDefinition | None:
        row = self._conn.execute("SELECT * FROM attributes WHERE name = ?", (name,)).fetchone()
        return self._row_to_definition(row) if row else None

    def get_attribute_by_id(self, attribute_id: int) -> AttributeDefinition | None:
        row = self._conn.execute(
            "SELECT * FROM attributes WHERE id = ?", (attribute_id,)
        ).fetchone()
        return self._row_to_definition(row) if row else None

    def list_attributes(
        self,
        type: str | None = None,
        required_only: bool = False,
    ) -> list[AttributeDefinition]:
        clauses: list[str] = []
        params: list[Any] = []
        if type is not None:
            clauses.append("type = ?")
            params.append(type)
        if required_only:
            clauses.append("required = 1")
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._conn.execute(
            f"SELECT * FROM attributes{where} ORDER BY name", params
        ).fetchall()
        return [self._row_to_definition(r) for r in rows]

    def delete_attribute(self, attribute_id: int) -> int:
        """Delete a definition; its values go with it. Returns the value count removed."""
        removed = self.count_values(attribute_id)
        self._conn.execute("DELETE FROM attributes WHERE id = ?", (attribute_id,))
        return removed

    def entities_for_attribute(self, attribute_id: int) -> list[tuple[Any, str]]:
        rows = self._conn.execute(
            "SELECT entity_id, entity_type FROM attribute_values WHERE attribute_id = ?",
            (attribute_id,),
        ).fetchall()
        return [(r[0], r[1]) for r in rows]

    def count_values(self, attribute_id: int) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM attribute_values WHERE attribute_id = ?", (attribute_id,)
        ).fetchone()
        return row[0]

    # --- Values ---

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ValueRecord:
        return ValueRecord(
            entity_id=row["entity_id"],
            entity_type=row["entity_type"],
            attribute_id=row["attribute_id"],
            attribute_name=row["attribute_name"],
            string_value=row["string_value"],
            number_value=row["number_value"],
            date_value=row["date_value"],
            boolean_value=row["boolean_value"],
        )

    def upsert_value(
        self,
        entity_id: int | str,
        entity_type: str,
        definition: AttributeDefinition,
        slots: dict[str, Any],
    ) -> None:
        now = _now()
        self._conn.execute(
            f"INSERT INTO attribute_values ({_VALUE_COLUMNS}, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (entity_id, entity_type, attribute_id) DO UPDATE SET "
            "attribute_name = excluded.attribute_name, "
            "string_value = excluded.string_value, "
            "number_value = excluded.number_value, "
            "date_value = excluded.date_value, "
            "boolean_value = excluded.boolean_value, "
            "updated_at = excluded.updated_at",
            (
                entity_id,
                entity_type,
                definition.id,
                definition.name,
                *(slots.get(slot) for slot in VALUE_SLOTS),
                now,
                now,
            ),
        )

    def delete_value(self, entity_id: int | str, entity_type: str, attribute_id: int) -> bool:
        cursor = self._conn.execute(
            "DELETE FROM attribute_values "
            "WHERE entity_id = ? AND entity_type = ? AND attribute_id = ?",
            (entity_id, entity_type, attribute_id),
        )
        return cursor.rowcount > 0

    def fetch_values(self, entity_id: int | str, entity_type: str) -> list[ValueRecord]:
        rows = self._conn.execute(
            f"SELECT {_VALUE_COLUMNS} FROM attribute_values "
            "WHERE entity_id = ? AND entity_type = ? ORDER BY attribute_name",
            (entity_id, entity_type),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def fetch_value(
        self, entity_id: int | str, entity_type: str, attribute_name: str
    ) -> ValueRecord | None:
        row = self._conn.execute(
            f"SELECT {_VALUE_COLUMNS} FROM attribute_values "
            "WHERE entity_id = ? AND entity_type = ? AND attribute_name = ?",
            (entity_id, entity_type, attribute_name),
        ).fetchone()
        return self._row_to_record(row) if row else None

    def entity_ids(self, entity_type: str) -> set[Any]:
        """Every entity id of the type holding at least one stored value."""
        rows = self._conn.execute(
            "SELECT DISTINCT entity_id FROM attribute_values WHERE entity_type = ?",
            (entity_type,),
        ).fetchall()
        return {r[0] for r in rows}

    def entity_id_page(self, entity_type: str, limit: int, offset: int) -> list[Any]:
        rows = self._conn.execute(
            "SELECT DISTINCT entity_id FROM attribute_values WHERE entity_type = ? "
            "ORDER BY entity_id LIMIT ? OFFSET ?",
            (entity_type, limit, offset),
        ).fetchall()
        return [r[0] for r in rows]

    def entity_types(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT DISTINCT entity_type FROM attribute_values ORDER BY entity_type"
        ).fetchall()
        return [r[0] for r in rows]

    def matching_ids(self, entity_type: str, attribute_name: str, fragment: Fragment) -> set[Any]:
        """Entity ids whose value row for ``attribute_name`` satisfies ``fragment``."""
        rows = self._conn.execute(
            "SELECT DISTINCT entity_id FROM attribute_values "
            f"WHERE entity_type = ? AND attribute_name = ? AND {fragment.sql}",
            (entity_type, attribute_name, *fragment.params),
        ).fetchall()
        return {r[0] for r in rows}

    def ids_with_any(self, entity_type: str, attribute_names: list[str]) -> set[Any]:
        marks = ", ".join("?" for _ in attribute_names)
        rows = self._conn.execute(
            "SELECT DISTINCT entity_id FROM attribute_values "
            f"WHERE entity_type = ? AND attribute_name IN ({marks})",
            (entity_type, *attribute_names),
        ).fetchall()
        return {r[0] for r in rows}

    def ordered_ids(
        self,
        entity_type: str,
        attribute_name: str,
        slot: str,
        descending: bool = False,
    ) -> list[Any]:
        """Entity ids with a non-null ``slot`` for the attribute, ordered by it."""
        if slot not in VALUE_SLOTS:
            raise ValueError(f"Unknown value slot: {slot}")
        direction = "DESC" if descending else "ASC"
        rows = self._conn.execute(
            "SELECT entity_id FROM attribute_values "
            f"WHERE entity_type = ? AND attribute_name = ? AND {slot} IS NOT NULL "
            f"ORDER BY {slot} {direction}, entity_id",
            (entity_type, attribute_name),
        ).fetchall()
        return [r[0] for r in rows]

    # --- Host bindings ---

    def save_binding(self, binding: HostBinding) -> None:
        self._conn.execute(
            "INSERT INTO cache_bindings (entity_type, table_name, id_column, cache_column) "
            "VALUES (?, ?, ?, ?) ON CONFLICT (entity_type) DO UPDATE SET "
            "table_name = excluded.table_name, id_column = excluded.id_column, "
            "cache_column = excluded.cache_column",
            (binding.entity_type, binding.table, binding.id_column, binding.cache_column),
        )

    def delete_binding(self, entity_type: str) -> bool:
        cursor = self._conn.execute(
            "DELETE FROM cache_bindings WHERE entity_type = ?", (entity_type,)
        )
        return cursor.rowcount > 0

    def get_binding(self, entity_type: str) -> HostBinding | None:
        row = self._conn.execute(
            "SELECT * FROM cache_bindings WHERE entity_type = ?", (entity_type,)
        ).fetchone()
        if row is None:
            return None
        return HostBinding(
            entity_type=row["entity_type"],
            table=row["table_name"],
            id_column=row["id_column"],
            cache_column=row["cache_column"],
        )

    def list_bindings(self) -> list[HostBinding]:
        rows = self._conn.execute(
            "SELECT entity_type FROM cache_bindings ORDER BY entity_type"
        ).fetchall()
        return [b for b in (self.get_binding(r[0]) for r in rows) if b is not None]

    def host_table_exists(self, binding: HostBinding) -> bool:
        cols = {
            row[1]
            for row in self._conn.execute(f"PRAGMA table_info({binding.table})").fetchall()
        }
        return binding.id_column in cols and binding.cache_column in cols

    def write_cache_document(
        self,
        binding: HostBinding,
        entity_id: int | str,
        document: str,
        as_json: bool = False,
    ) -> int:
        """Overwrite the cache column of one host row; returns rows updated."""
        value_sql = "json(?)" if as_json else "?"
        cursor = self._conn.execute(
            f"UPDATE {binding.table} SET {binding.cache_column} = {value_sql} "
            f"WHERE {binding.id_column} = ?",
            (document, entity_id),
        )
        return cursor.rowcount

    def read_cache_document(self, binding: HostBinding, entity_id: int | str) -> str | None:
        row = self._conn.execute(
            f"SELECT {binding.cache_column} FROM {binding.table} "
            f"WHERE {binding.id_column} = ?",
            (entity_id,),
        ).fetchone()
        return row[0] if row else None

    # --- Operator helpers ---

    def storage_info(self) -> dict[str, Any]:
        """Return backend info for operator commands."""
        return {
            "backend": "sqlite",
            "db_path": self.db_path,
            "sqlite_version": sqlite3.sqlite_version,
        }


def open_repository(
    db_path: str | None = None,
    *,
    storage_uri: str | None = None,
) -> Repository:
    """Open a repository from a path or a ``sqlite://`` URI."""
    target = parse_storage_target(db_path=db_path, storage_uri=storage_uri)
    return Repository(target.db_path)
