"""The attribute catalog: define, look up, update and delete attribute definitions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from customattrs.config import CustomAttrsConfig
from customattrs.errors import AttributeNotFoundError, DefinitionError, DuplicateAttributeError
from customattrs.storage import Repository, storage_errors
from customattrs.types import AttributeDefinition, AttributeType, EntityRef
from customattrs.validation import definition_violations

logger = logging.getLogger(__name__)


class AttributeCatalog:
    """Authoritative registry of attribute definitions.

    Lookups are memoized per process when ``config.cache_definitions`` is on;
    every mutation through the catalog drops the memo.
    """

    def __init__(self, repo: Repository, config: CustomAttrsConfig | None = None) -> None:
        self._repo = repo
        self._config = config or CustomAttrsConfig()
        self._definitions: dict[str, AttributeDefinition] = {}
        self._delete_hooks: list[Callable[[EntityRef], Any]] = []

    def on_delete(self, hook: Callable[[EntityRef], Any]) -> None:
        """Call ``hook`` for every entity that lost a value, inside the deleting transaction."""
        self._delete_hooks.append(hook)

    def define(
        self,
        name: str,
        label: str,
        type: AttributeType | str,
        required: bool = False,
        options: list[str] | None = None,
        rules: dict[str, Any] | None = None,
    ) -> AttributeDefinition:
        """Create a definition, reporting every violated constraint at once."""
        type_value = type.value if isinstance(type, AttributeType) else type
        violations = definition_violations(
            name=name,
            label=label,
            type=type_value,
            required=required,
            options=options,
            rules=rules,
        )
        if violations:
            raise DefinitionError(violations, {"attribute_name": name})

        with storage_errors("definition", attribute_name=name):
            with self._repo.transaction():
                if self._repo.get_attribute(name) is not None:
                    raise DuplicateAttributeError(name)
                definition = self._repo.insert_attribute(
                    name,
                    label.strip(),
                    type_value,
                    required,
                    list(options or []),
                    dict(rules or {}),
                )
        self.clear_cache()
        logger.info("Defined attribute", extra={"attribute": name, "type": type_value})
        return definition

    def lookup(self, name: str) -> AttributeDefinition | None:
        if self._config.cache_definitions and name in self._definitions:
            return self._definitions[name]
        definition = self._repo.get_attribute(name)
        if definition is not None and self._config.cache_definitions:
            self._definitions[name] = definition
        return definition

    def get(self, name: str) -> AttributeDefinition:
        definition = self.lookup(name)
        if definition is None:
            raise AttributeNotFoundError(name)
        return definition

    def update(
        self,
        name: str,
        *,
        label: str | None = None,
        required: bool | None = None,
        options: list[str] | None = None,
        rules: dict[str, Any] | None = None,
    ) -> AttributeDefinition:
        """Change the mutable parts of a definition. ``None`` leaves a field as is.

        Name and type are immutable. Stored values are not re-validated.
        """
        current = self.get(name)
        merged_label = current.label if label is None else label
        merged_required = current.required if required is None else required
        merged_options = current.options if options is None else options
        merged_rules = current.rules if rules is None else rules
        violations = definition_violations(
            name=current.name,
            label=merged_label,
            type=current.type.value,
            required=merged_required,
            options=merged_options,
            rules=merged_rules,
        )
        if violations:
            raise DefinitionError(violations, {"attribute_name": name})

        assert current.id is not None
        with storage_errors("update", attribute_name=name):
            with self._repo.transaction():
                self._repo.update_attribute(
                    current.id,
                    label=merged_label.strip(),
                    required=merged_required,
                    options=list(merged_options),
                    rules=dict(merged_rules),
                )
        self.clear_cache()
        return self.get(name)

    def delete(self, name: str) -> int:
        """Delete a definition and every value stored for it. Returns the value count removed."""
        definition = self.get(name)
        assert definition.id is not None
        with storage_errors("deletion", attribute_name=name):
            with self._repo.transaction():
                affected = set(self._repo.entities_for_attribute(definition.id))
                removed = self._repo.delete_attribute(definition.id)
                for entity_id, entity_type in sorted(affected, key=str):
                    for hook in self._delete_hooks:
                        hook(EntityRef(entity_id, entity_type))
        self.clear_cache()
        logger.info("Deleted attribute", extra={"attribute": name, "values_removed": removed})
        return removed

    def list(
        self,
        type: AttributeType | str | None = None,
        required_only: bool = False,
    ) -> list[AttributeDefinition]:
        type_value = type.value if isinstance(type, AttributeType) else type
        if type_value is not None and type_value not in AttributeType.values():
            raise ValueError(f"Unknown attribute type: {type_value}")
        return self._repo.list_attributes(type=type_value, required_only=required_only)

    def count_values(self, name: str) -> int:
        definition = self.get(name)
        assert definition.id is not None
        return self._repo.count_values(definition.id)

    def clear_cache(self) -> None:
        self._definitions.clear()
