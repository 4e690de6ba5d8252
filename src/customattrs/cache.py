"""Per-entity cache documents kept on host tables."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date
from typing import Any

from customattrs.backends import Dialect
from customattrs.catalog import AttributeCatalog
from customattrs.config import CustomAttrsConfig
from customattrs.errors import StorageError
from customattrs.storage import Repository, storage_errors
from customattrs.types import AttributeType, EntityRef, HostBinding

logger = logging.getLogger(__name__)


def _to_json(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


class CacheSynchronizer:
    """Rewrites and reads the denormalized attribute document of host records.

    A document is a flat ``{attribute_name: value}`` JSON object stored in the
    bound column of the host row. It is never merged: each refresh rebuilds it
    from the value table. Only entity types with a :class:`HostBinding`
    carry one.
    """

    def __init__(
        self,
        repo: Repository,
        catalog: AttributeCatalog,
        dialect: Dialect,
        config: CustomAttrsConfig | None = None,
    ) -> None:
        self._repo = repo
        self._catalog = catalog
        self._dialect = dialect
        self._config = config or CustomAttrsConfig()
        self._bindings: dict[str, HostBinding | None] = {}

    # --- Bindings ---

    def bind(self, binding: HostBinding) -> HostBinding:
        """Register the host table and column carrying documents for an entity type."""
        if not self._repo.host_table_exists(binding):
            raise ValueError(
                f"Host table '{binding.table}' with columns "
                f"'{binding.id_column}' and '{binding.cache_column}' not found"
            )
        with storage_errors("binding", entity_type=binding.entity_type):
            with self._repo.transaction():
                self._repo.save_binding(binding)
        self._bindings.pop(binding.entity_type, None)
        logger.info(
            "Bound cache document",
            extra={"entity_type": binding.entity_type, "table": binding.table},
        )
        return binding

    def unbind(self, entity_type: str) -> bool:
        with storage_errors("binding", entity_type=entity_type):
            with self._repo.transaction():
                removed = self._repo.delete_binding(entity_type)
        self._bindings.pop(entity_type, None)
        return removed

    def binding_for(self, entity_type: str) -> HostBinding | None:
        if entity_type not in self._bindings:
            self._bindings[entity_type] = self._repo.get_binding(entity_type)
        return self._bindings[entity_type]

    def bindings(self) -> list[HostBinding]:
        return self._repo.list_bindings()

    def carries_cache(self, entity_type: str) -> bool:
        return self._config.enable_cache and self.binding_for(entity_type) is not None

    # --- Documents ---

    def build_document(self, ref: EntityRef) -> dict[str, Any]:
        """The complete current value set of an entity, straight from the value table."""
        return {rec.attribute_name: rec.value for rec in self._repo.fetch_values(ref.id, ref.type)}

    def _write(self, binding: HostBinding, ref: EntityRef) -> int:
        document = {name: _to_json(v) for name, v in self.build_document(ref).items()}
        payload = json.dumps(document, sort_keys=True)
        return self._repo.write_cache_document(
            binding,
            ref.id,
            payload,
            as_json=self._dialect.supports("json_functions"),
        )

    def refresh(self, ref: EntityRef) -> bool:
        """Overwrite the entity's document; False when the type carries none.

        Joins the caller's transaction when one is open.
        """
        if not self._config.enable_cache or ref.id is None:
            return False
        binding = self.binding_for(ref.type)
        if binding is None:
            return False
        with storage_errors("cache refresh", entity=str(ref)):
            updated = self._write(binding, ref)
        if not updated:
            logger.debug("No host row for cache document", extra={"entity": str(ref)})
        return updated > 0

    def read(self, ref: EntityRef) -> dict[str, Any] | None:
        """Decode the stored document, or None when there is none to read."""
        if not self._config.enable_cache or ref.id is None:
            return None
        binding = self.binding_for(ref.type)
        if binding is None:
            return None
        with storage_errors("cache read", entity=str(ref)):
            raw = self._repo.read_cache_document(binding, ref.id)
        if not raw:
            return None
        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Unreadable cache document", extra={"entity": str(ref)})
            return None
        if not isinstance(document, dict):
            return None
        return {name: self._decode(name, value) for name, value in document.items()}

    def _decode(self, name: str, value: Any) -> Any:
        if value is None:
            return None
        definition = self._catalog.lookup(name)
        if definition is None:
            return value
        if definition.type is AttributeType.DATE and isinstance(value, str):
            return date.fromisoformat(value[:10])
        if definition.type is AttributeType.NUMBER:
            return float(value)
        if definition.type is AttributeType.BOOLEAN:
            return bool(value)
        return value

    # --- Bulk ---

    def pending(self, entity_type: str) -> int:
        """Number of entities a resync of the type would visit."""
        return len(self._repo.entity_ids(entity_type))

    def resync(self, entity_type: str, batch_size: int | None = None) -> int:
        """Rebuild every document of a type in independently committed batches.

        Returns the number of host rows rewritten. A failing batch rolls back
        alone and raises :class:`StorageError`; earlier batches stay committed.
        """
        size = batch_size if batch_size is not None else self._config.batch_size
        if size < 1:
            raise ValueError("batch_size must be at least 1")
        if not self._config.enable_cache:
            logger.info("Cache disabled; nothing to resync", extra={"entity_type": entity_type})
            return 0
        binding = self.binding_for(entity_type)
        if binding is None:
            logger.info("No cache binding; nothing to resync", extra={"entity_type": entity_type})
            return 0

        processed = 0
        offset = 0
        batch = 0
        while True:
            ids = self._repo.entity_id_page(entity_type, size, offset)
            if not ids:
                break
            batch += 1
            try:
                with self._repo.transaction():
                    rewritten = sum(
                        self._write(binding, EntityRef(entity_id, entity_type)) for entity_id in ids
                    )
            except sqlite3.Error as exc:
                logger.warning(
                    "Cache resync batch failed",
                    extra={
                        "entity_type": entity_type,
                        "batch": batch,
                        "processed": processed,
                        "error": str(exc),
                    },
                )
                raise StorageError(
                    "cache resync",
                    context={
                        "entity_type": entity_type,
                        "batch": batch,
                        "processed": processed,
                        "original_error": str(exc),
                    },
                ) from exc
            processed += rewritten
            offset += size
            logger.info(
                "Cache resync batch committed",
                extra={"entity_type": entity_type, "batch": batch, "processed": processed},
            )
        return processed

    def resync_all(self, batch_size: int | None = None) -> dict[str, int]:
        return {b.entity_type: self.resync(b.entity_type, batch_size) for b in self.bindings()}
