"""Search compiler: attribute criteria to entity-id sets."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from customattrs.backends import Dialect, Fragment
from customattrs.catalog import AttributeCatalog
from customattrs.config import CustomAttrsConfig
from customattrs.errors import FilterError
from customattrs.filters import Criterion, parse_filters
from customattrs.storage import VALUE_TABLE, Repository, storage_errors
from customattrs.types import AttributeDefinition, AttributeType
from customattrs.validation import Validator, is_empty

logger = logging.getLogger(__name__)

_LIKE_TYPES = frozenset({AttributeType.TEXT, AttributeType.SELECT})


class SearchCompiler:
    """Finds entities of one type whose attribute values satisfy criteria.

    Each criterion compiles to one dialect fragment over the typed slot of its
    attribute; the per-criterion id sets are then combined in memory.

    The universe of an entity type is every entity holding at least one stored
    value. Entities with no values at all are invisible, even to ``NULL``
    filters, since the value table cannot tell them apart from entities that
    do not exist.
    """

    def __init__(
        self,
        repo: Repository,
        catalog: AttributeCatalog,
        validator: Validator,
        dialect: Dialect,
        config: CustomAttrsConfig | None = None,
    ) -> None:
        self._repo = repo
        self._catalog = catalog
        self._validator = validator
        self._dialect = dialect
        self._config = config or CustomAttrsConfig()

    # --- Compilation ---

    def _cast(self, definition: AttributeDefinition, raw: Any) -> Any:
        try:
            value = self._validator.cast(definition, raw)
        except ValueError as exc:
            raise FilterError(
                definition.name, f"{raw!r} is not a valid {definition.type.value} value"
            ) from exc
        if value is None:
            raise FilterError(
                definition.name, f"{raw!r} is not a valid {definition.type.value} value"
            )
        return value

    def compile(self, criterion: Criterion) -> Fragment:
        """Fragment matching value rows that satisfy a criterion."""
        definition = self._catalog.get(criterion.attribute_name)
        column = definition.slot
        op = criterion.operator
        dialect = self._dialect

        if op == "NULL":
            return dialect.null_fragment(column)
        if op == "NOT NULL":
            return dialect.null_fragment(column, negate=True)
        if op == "LIKE":
            if definition.type not in _LIKE_TYPES:
                raise FilterError(
                    definition.name, "LIKE is only supported for text and select attributes"
                )
            if criterion.full_text:
                return dialect.fulltext_fragment(column, criterion.value, table=VALUE_TABLE)
            return dialect.like_fragment(column, criterion.value, criterion.case_sensitive)
        if op == "IN":
            # Null members never equal a stored value.
            values = [self._cast(definition, v) for v in criterion.value if not is_empty(v)]
            return dialect.in_fragment(definition.type, column, values)
        if op == "BETWEEN":
            return dialect.between_fragment(
                definition.type,
                column,
                self._cast(definition, criterion.low),
                self._cast(definition, criterion.high),
            )
        return dialect.comparison_fragment(
            definition.type, column, self._cast(definition, criterion.value), op
        )

    def _matching(self, entity_type: str, criterion: Criterion, universe: set[Any]) -> set[Any]:
        fragment = self.compile(criterion)
        logger.debug(
            "Compiled search fragment",
            extra={"attribute": criterion.attribute_name, "sql": fragment.sql},
        )
        ids = self._repo.matching_ids(entity_type, criterion.attribute_name, fragment)
        if criterion.operator != "NULL":
            return ids
        # Entities lacking a row for the attribute count as null too.
        not_null = self._repo.matching_ids(
            entity_type,
            criterion.attribute_name,
            self._dialect.null_fragment(self._catalog.get(criterion.attribute_name).slot, True),
        )
        return ids | (universe - not_null)

    def _parse(self, filters: Mapping[str, Any]) -> list[Criterion]:
        criteria = parse_filters(filters, case_sensitive_like=self._config.case_sensitive_like)
        for criterion in criteria:
            self._catalog.get(criterion.attribute_name)
        return criteria

    # --- Searches ---

    def search(self, entity_type: str, filters: Mapping[str, Any]) -> set[Any]:
        """Entity ids matching every filter (AND). An empty filter map matches nothing."""
        if not filters:
            return set()
        criteria = self._parse(filters)
        regular = [c for c in criteria if not c.is_null_check]
        null_checks = [c for c in criteria if c.is_null_check]

        with storage_errors("search", entity_type=entity_type):
            universe = self._repo.entity_ids(entity_type)
            result = set(universe)
            for criterion in regular + null_checks:
                if not result:
                    break
                result &= self._matching(entity_type, criterion, universe)
        return result

    def advanced_search(
        self,
        entity_type: str,
        filters: Mapping[str, Any],
        logic: str = "AND",
    ) -> set[Any]:
        """Like :meth:`search`, with ``logic="OR"`` taking the union instead."""
        mode = logic.strip().upper()
        if mode == "AND":
            return self.search(entity_type, filters)
        if mode != "OR":
            raise ValueError(f"Unknown search logic '{logic}': expected AND or OR")
        if not filters:
            return set()
        criteria = self._parse(filters)
        result: set[Any] = set()
        with storage_errors("search", entity_type=entity_type):
            universe = self._repo.entity_ids(entity_type)
            for criterion in criteria:
                result |= self._matching(entity_type, criterion, universe)
        return result

    def sort(
        self,
        entity_type: str,
        entity_ids: Iterable[Any],
        attribute_name: str,
        descending: bool = False,
    ) -> list[Any]:
        """Order ids by an attribute's typed value; ids without a value go last."""
        definition = self._catalog.get(attribute_name)
        wanted = list(dict.fromkeys(entity_ids))
        wanted_set = set(wanted)
        with storage_errors("search", entity_type=entity_type):
            ordered = self._repo.ordered_ids(entity_type, attribute_name, definition.slot, descending)
        ranked = [i for i in ordered if i in wanted_set]
        ranked_set = set(ranked)
        return ranked + [i for i in wanted if i not in ranked_set]

    # --- Typed shortcuts ---

    def _typed(self, name: str, attr_type: AttributeType) -> AttributeDefinition | None:
        definition = self._catalog.lookup(name)
        if definition is None or definition.type is not attr_type:
            return None
        return definition

    def _ids_for(self, entity_type: str, criterion: Criterion) -> set[Any]:
        with storage_errors("search", entity_type=entity_type):
            return self._repo.matching_ids(
                entity_type, criterion.attribute_name, self.compile(criterion)
            )

    def search_text(
        self,
        entity_type: str,
        attribute_name: str,
        term: str,
        *,
        case_sensitive: bool = False,
        full_text: bool = False,
    ) -> set[Any]:
        if self._typed(attribute_name, AttributeType.TEXT) is None:
            return set()
        criterion = Criterion(
            attribute_name,
            "LIKE",
            value=term,
            case_sensitive=case_sensitive,
            full_text=full_text,
        )
        return self._ids_for(entity_type, criterion)

    def search_number_range(
        self, entity_type: str, attribute_name: str, low: float, high: float
    ) -> set[Any]:
        if self._typed(attribute_name, AttributeType.NUMBER) is None:
            return set()
        return self._ids_for(entity_type, Criterion(attribute_name, "BETWEEN", low=low, high=high))

    def search_date_range(
        self, entity_type: str, attribute_name: str, start: date | str, end: date | str
    ) -> set[Any]:
        if self._typed(attribute_name, AttributeType.DATE) is None:
            return set()
        return self._ids_for(
            entity_type, Criterion(attribute_name, "BETWEEN", low=start, high=end)
        )

    def search_boolean(self, entity_type: str, attribute_name: str, value: bool) -> set[Any]:
        if self._typed(attribute_name, AttributeType.BOOLEAN) is None:
            return set()
        return self._ids_for(entity_type, Criterion(attribute_name, "=", value=bool(value)))

    def with_any_attribute(self, entity_type: str, attribute_names: Iterable[str]) -> set[Any]:
        """Entities holding a stored value for at least one of the attributes."""
        names = list(attribute_names)
        if not names:
            return set()
        with storage_errors("search", entity_type=entity_type):
            return self._repo.ids_with_any(entity_type, names)

    def with_all_attributes(self, entity_type: str, attribute_names: Iterable[str]) -> set[Any]:
        """Entities holding a stored value for every one of the attributes."""
        names = list(dict.fromkeys(attribute_names))
        if not names:
            return set()
        result: set[Any] | None = None
        with storage_errors("search", entity_type=entity_type):
            for name in names:
                ids = self._repo.ids_with_any(entity_type, [name])
                result = ids if result is None else result & ids
                if not result:
                    break
        return result or set()
