"""CLI helpers for opening the attribute engine from global CLI state."""

from __future__ import annotations

from customattrs.config import CustomAttrsConfig
from customattrs.engine import AttributeEngine


def resolve_storage_binding() -> tuple[str | None, str | None]:
    """Return (db_path, storage_uri) from CLI state."""
    from customattrs.cli import state

    if state.storage_uri:
        return None, state.storage_uri
    return state.db, None


def open_engine(config: CustomAttrsConfig | None = None) -> AttributeEngine:
    """Open the engine using the global CLI storage selection and env config."""
    db_path, storage_uri = resolve_storage_binding()
    return AttributeEngine.open(
        db_path,
        storage_uri=storage_uri,
        config=config or CustomAttrsConfig.from_env(),
    )
