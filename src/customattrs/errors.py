"""Structured error types for customattrs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class CustomAttrsError(Exception):
    """Base error for all customattrs errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = dict(context or {})

    def user_message(self) -> str:
        """Message safe to show to an end user."""
        return str(self)

    def to_dict(self) -> dict[str, Any]:
        """Error payload for API responses."""
        return {
            "error": type(self).__name__,
            "message": self.user_message(),
            "context": self.context,
        }


class DefinitionError(CustomAttrsError):
    """Raised when an attribute definition violates one or more constraints.

    ``violations`` maps the offending field (``name``, ``options``,
    ``rules.min``...) to every message collected for it.
    """

    def __init__(
        self,
        violations: dict[str, list[str]],
        context: dict[str, Any] | None = None,
    ) -> None:
        self.violations = violations
        details = "; ".join(
            f"{key}: {', '.join(messages)}" for key, messages in violations.items()
        )
        super().__init__(
            f"Invalid attribute definition: {details}",
            {"violations": violations, **(context or {})},
        )

    def messages(self) -> list[str]:
        return [m for msgs in self.violations.values() for m in msgs]


class DuplicateAttributeError(DefinitionError):
    """Raised when defining an attribute whose name already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            {"name": [f"An attribute named '{name}' already exists."]},
            {"duplicate_name": name},
        )


class AttributeNotFoundError(CustomAttrsError):
    """Raised when an unknown attribute name is referenced."""

    def __init__(self, name: str, context: dict[str, Any] | None = None) -> None:
        self.name = name
        super().__init__(
            f"Attribute '{name}' does not exist.",
            {"attribute_name": name, **(context or {})},
        )

    def user_message(self) -> str:
        return (
            f"The attribute '{self.name}' does not exist. "
            "Please check the attribute name and try again."
        )


@dataclass
class AttributeFailure:
    """Every validation message for one attribute, plus what was submitted."""

    attribute_name: str
    messages: list[str]
    value: Any = None
    label: str | None = None
    attribute_type: str | None = None

    def user_message(self) -> str:
        return " ".join(self.messages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attribute_name": self.attribute_name,
            "user_message": self.user_message(),
            "machine_context": {
                "value": self.value,
                "label": self.label,
                "attribute_type": self.attribute_type,
                "messages": list(self.messages),
            },
        }


class ValidationError(CustomAttrsError):
    """Raised when one or more submitted values fail validation."""

    def __init__(
        self,
        failures: list[AttributeFailure],
        context: dict[str, Any] | None = None,
    ) -> None:
        self.failures = failures
        names = [f.attribute_name for f in failures]
        detail = "; ".join(f"{f.attribute_name}: {f.user_message()}" for f in failures)
        super().__init__(
            f"Validation failed for {names}: {detail}",
            {"failed_attributes": names, **(context or {})},
        )

    @property
    def messages(self) -> dict[str, list[str]]:
        return {f.attribute_name: list(f.messages) for f in self.failures}

    def failure_for(self, attribute_name: str) -> AttributeFailure | None:
        for failure in self.failures:
            if failure.attribute_name == attribute_name:
                return failure
        return None

    def user_message(self) -> str:
        parts = []
        for f in self.failures:
            subject = f.label or f.attribute_name
            parts.append(f"{subject}: {f.user_message()}")
        return "Validation failed. " + " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["failures"] = [f.to_dict() for f in self.failures]
        return payload


class FilterError(CustomAttrsError, ValueError):
    """Raised when search criteria are malformed."""

    def __init__(self, attribute_name: str, detail: str) -> None:
        self.attribute_name = attribute_name
        self.detail = detail
        super().__init__(
            f"Invalid filter for '{attribute_name}': {detail}",
            {"attribute_name": attribute_name},
        )


class StorageError(CustomAttrsError):
    """Raised when a persistence operation fails unexpectedly.

    The message is sanitized: the underlying driver error is kept on
    ``__cause__`` and in ``context['original_error']`` for operators.
    """

    def __init__(
        self,
        operation: str,
        reason: str = "An unexpected error occurred",
        context: dict[str, Any] | None = None,
    ) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Attribute operation '{operation}' failed: {reason}",
            {"operation": operation, "reason": reason, **(context or {})},
        )

    def user_message(self) -> str:
        return f"The attribute {self.operation} could not be completed. Please try again later."

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["context"] = {k: v for k, v in self.context.items() if k != "original_error"}
        return payload


class EntityNotPersistedError(StorageError):
    """Raised when writing attributes for a host record that has no id yet."""

    def __init__(self, operation: str, entity_type: str, context: dict[str, Any] | None = None):
        self.entity_type = entity_type
        super().__init__(
            operation,
            "Entity must be saved before its attributes can be written",
            {"entity_type": entity_type, **(context or {})},
        )


class StorageBackendError(CustomAttrsError):
    """Raised when a storage target cannot be resolved or opened."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage backend error during {operation}: {detail}")
