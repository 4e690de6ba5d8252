"""customattrs: schema-defined custom attributes for arbitrary host records."""

import logging

__version__ = "0.1.0"

from customattrs.backends import FeatureCache, Fragment
from customattrs.config import CustomAttrsConfig
from customattrs.engine import AttributeEngine
from customattrs.errors import (
    AttributeFailure,
    AttributeNotFoundError,
    CustomAttrsError,
    DefinitionError,
    DuplicateAttributeError,
    EntityNotPersistedError,
    FilterError,
    StorageBackendError,
    StorageError,
    ValidationError,
)
from customattrs.types import AttributeDefinition, AttributeType, EntityRef, HostBinding

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "AttributeEngine",
    "AttributeDefinition",
    "AttributeType",
    "EntityRef",
    "HostBinding",
    "CustomAttrsConfig",
    "FeatureCache",
    "Fragment",
    "CustomAttrsError",
    "DefinitionError",
    "DuplicateAttributeError",
    "AttributeNotFoundError",
    "AttributeFailure",
    "ValidationError",
    "FilterError",
    "StorageError",
    "EntityNotPersistedError",
    "StorageBackendError",
]
