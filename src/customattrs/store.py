"""Typed value store: validated writes and cache-aware reads of attribute values."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from customattrs.cache import CacheSynchronizer
from customattrs.catalog import AttributeCatalog
from customattrs.errors import (
    AttributeFailure,
    EntityNotPersistedError,
    ValidationError,
)
from customattrs.storage import Repository, storage_errors
from customattrs.types import AttributeDefinition, EntityRef
from customattrs.validation import Validator

logger = logging.getLogger(__name__)


class ValueStore:
    """Reads and writes attribute values for host entities.

    Every write validates and casts first, then upserts the value row and
    refreshes the entity's cache document inside one transaction.
    """

    def __init__(
        self,
        repo: Repository,
        catalog: AttributeCatalog,
        validator: Validator,
        cache: CacheSynchronizer,
    ) -> None:
        self._repo = repo
        self._catalog = catalog
        self._validator = validator
        self._cache = cache

    @staticmethod
    def _require_persisted(ref: EntityRef, operation: str) -> None:
        if not ref.persisted:
            raise EntityNotPersistedError(operation, ref.type, {"entity": str(ref)})

    # --- Writes ---

    def set_one(self, ref: EntityRef, name: str, raw: Any) -> Any:
        """Validate, cast and store one value. Returns the stored (cast) value."""
        self._require_persisted(ref, "update")
        definition = self._catalog.get(name)
        self._validator.validate(definition, raw)
        value = self._validator.cast(definition, raw)

        with storage_errors("update", entity=str(ref), attribute_names=[name]):
            with self._repo.transaction():
                self._repo.upsert_value(ref.id, ref.type, definition, definition.slot_values(value))
                self._cache.refresh(ref)
        return value

    def prepare(self, values: Mapping[str, Any]) -> list[tuple[AttributeDefinition, Any]]:
        """Validate and cast a whole batch without touching storage.

        Raises one :class:`ValidationError` carrying every failing entry,
        unknown attribute names included.
        """
        prepared: list[tuple[AttributeDefinition, Any]] = []
        failures: list[AttributeFailure] = []
        for name, raw in values.items():
            definition = self._catalog.lookup(name)
            if definition is None:
                failures.append(
                    AttributeFailure(
                        attribute_name=name,
                        messages=[f"The attribute '{name}' does not exist."],
                        value=raw,
                    )
                )
                continue
            failure = self._validator.failure_for(definition, raw)
            if failure is not None:
                failures.append(failure)
                continue
            prepared.append((definition, self._validator.cast(definition, raw)))
        if failures:
            raise ValidationError(failures)
        return prepared

    def set_many(self, ref: EntityRef, values: Mapping[str, Any]) -> dict[str, Any]:
        """All-or-nothing batch write with a single cache refresh."""
        if not values:
            return {}
        self._require_persisted(ref, "update")
        prepared = self.prepare(values)

        names = [definition.name for definition, _ in prepared]
        with storage_errors("update", entity=str(ref), attribute_names=names):
            with self._repo.transaction():
                for definition, value in prepared:
                    self._repo.upsert_value(
                        ref.id, ref.type, definition, definition.slot_values(value)
                    )
                self._cache.refresh(ref)
        logger.debug("Stored attribute batch", extra={"entity": str(ref), "count": len(names)})
        return {definition.name: value for definition, value in prepared}

    def remove(self, ref: EntityRef, name: str) -> bool:
        """Delete one value; returns whether a row existed."""
        self._require_persisted(ref, "removal")
        definition = self._catalog.get(name)
        assert definition.id is not None
        with storage_errors("removal", entity=str(ref), attribute_names=[name]):
            with self._repo.transaction():
                deleted = self._repo.delete_value(ref.id, ref.type, definition.id)
                self._cache.refresh(ref)
        return deleted

    # --- Reads ---

    def get_all(self, ref: EntityRef) -> dict[str, Any]:
        if ref.id is None:
            return {}
        document = self._cache.read(ref)
        if document:
            return document
        with storage_errors("read", entity=str(ref)):
            records = self._repo.fetch_values(ref.id, ref.type)
        return {rec.attribute_name: rec.value for rec in records}

    def get_one(self, ref: EntityRef, name: str) -> Any:
        if ref.id is None:
            return None
        document = self._cache.read(ref)
        if document:
            return document.get(name)
        with storage_errors("read", entity=str(ref), attribute_names=[name]):
            record = self._repo.fetch_value(ref.id, ref.type, name)
        return record.value if record is not None else None
