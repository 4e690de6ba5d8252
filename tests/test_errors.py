"""Tests for the error taxonomy and its API payloads."""

from __future__ import annotations

import sqlite3

import pytest

from customattrs.errors import (
    AttributeFailure,
    AttributeNotFoundError,
    CustomAttrsError,
    DefinitionError,
    DuplicateAttributeError,
    EntityNotPersistedError,
    FilterError,
    StorageError,
    ValidationError,
)


class TestBaseError:
    def test_to_dict(self):
        err = CustomAttrsError("boom", {"k": "v"})
        assert err.to_dict() == {
            "error": "CustomAttrsError",
            "message": "boom",
            "context": {"k": "v"},
        }

    def test_context_is_copied(self):
        ctx = {"a": 1}
        err = CustomAttrsError("x", ctx)
        ctx["a"] = 2
        assert err.context == {"a": 1}


class TestDefinitionError:
    def test_enumerates_violations(self):
        err = DefinitionError({"name": ["bad"], "rules.min": ["worse", "worst"]})
        assert err.messages() == ["bad", "worse", "worst"]
        assert "name: bad" in str(err)
        assert err.context["violations"]["rules.min"] == ["worse", "worst"]

    def test_duplicate_is_a_definition_error(self):
        err = DuplicateAttributeError("age")
        assert isinstance(err, DefinitionError)
        assert err.name == "age"
        assert "already exists" in err.messages()[0]


class TestAttributeNotFound:
    def test_user_message_names_attribute(self):
        err = AttributeNotFoundError("ghost")
        assert "'ghost'" in err.user_message()
        assert err.context["attribute_name"] == "ghost"


class TestValidationError:
    def _error(self):
        return ValidationError(
            [
                AttributeFailure(
                    attribute_name="age",
                    messages=["The Age must be a number."],
                    value="abc",
                    label="Age",
                    attribute_type="number",
                ),
                AttributeFailure(
                    attribute_name="nickname",
                    messages=["The attribute 'nickname' does not exist."],
                    value="x",
                ),
            ]
        )

    def test_messages_by_attribute(self):
        err = self._error()
        assert err.messages == {
            "age": ["The Age must be a number."],
            "nickname": ["The attribute 'nickname' does not exist."],
        }
        assert err.context["failed_attributes"] == ["age", "nickname"]

    def test_failure_for(self):
        err = self._error()
        assert err.failure_for("age").value == "abc"
        assert err.failure_for("missing") is None

    def test_user_message_uses_label(self):
        msg = self._error().user_message()
        assert msg.startswith("Validation failed.")
        assert "Age: The Age must be a number." in msg

    def test_failure_payload_shape(self):
        payload = self._error().to_dict()
        first = payload["failures"][0]
        assert first["attribute_name"] == "age"
        assert first["user_message"] == "The Age must be a number."
        assert first["machine_context"] == {
            "value": "abc",
            "label": "Age",
            "attribute_type": "number",
            "messages": ["The Age must be a number."],
        }


class TestStorageErrors:
    def test_user_message_is_sanitized(self):
        try:
            raise sqlite3.OperationalError("no such table: secret_internal")
        except sqlite3.Error as exc:
            err = StorageError("update", context={"original_error": str(exc)})
        assert "secret_internal" not in err.user_message()
        assert "secret_internal" not in str(err.to_dict())
        assert err.context["original_error"].startswith("no such table")

    def test_entity_not_persisted(self):
        err = EntityNotPersistedError("update", "user")
        assert isinstance(err, StorageError)
        assert err.entity_type == "user"
        assert "saved" in err.reason


def test_filter_error_is_value_error():
    with pytest.raises(ValueError):
        raise FilterError("age", "BETWEEN requires both 'min' and 'max'")
