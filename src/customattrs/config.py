"""Configuration for the customattrs engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_STRINGS = {"1", "true", "yes", "on"}


@dataclass
class CustomAttrsConfig:
    """Configuration for the attribute engine."""

    batch_size: int = 100
    enable_cache: bool = True
    cache_definitions: bool = True
    default_cache_column: str = "custom_attributes"
    case_sensitive_like: bool = False

    @classmethod
    def from_env(cls, prefix: str = "CUSTOMATTRS_") -> CustomAttrsConfig:
        """Build a config from ``CUSTOMATTRS_*`` environment variables."""
        defaults = cls()

        def _flag(name: str, default: bool) -> bool:
            raw = os.getenv(prefix + name)
            if raw is None:
                return default
            return raw.strip().lower() in _TRUE_STRINGS

        batch_raw = os.getenv(prefix + "BATCH_SIZE")
        return cls(
            batch_size=int(batch_raw) if batch_raw else defaults.batch_size,
            enable_cache=_flag("CACHE", defaults.enable_cache),
            cache_definitions=_flag("CACHE_DEFINITIONS", defaults.cache_definitions),
            default_cache_column=os.getenv(
                prefix + "CACHE_COLUMN", defaults.default_cache_column
            ),
            case_sensitive_like=_flag("CASE_SENSITIVE_LIKE", defaults.case_sensitive_like),
        )
