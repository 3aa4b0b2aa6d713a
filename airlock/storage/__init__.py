"""Storage adapters.

``StorageAdapter`` is the contract; ``MemoryAdapter`` and ``SQLiteAdapter``
are the bundled backends.  ``build_adapter`` picks one from settings.
"""

from __future__ import annotations

from airlock.config import AirlockSettings
from airlock.storage.base import HISTORY_LIMIT, AssetReader, StorageAdapter
from airlock.storage.memory import MemoryAdapter
from airlock.storage.sqlite import SQLiteAdapter


def build_adapter(settings: AirlockSettings) -> StorageAdapter:
    """Construct the backend named by ``settings.storage_backend``."""
    if settings.storage_backend == "sqlite":
        return SQLiteAdapter(
            settings.database_path,
            settings.asset_dir,
            asset_base_url=settings.asset_base_url,
            history_limit=settings.history_limit,
        )
    return MemoryAdapter(
        asset_base_url=settings.asset_base_url,
        history_limit=settings.history_limit,
    )


__all__ = [
    "HISTORY_LIMIT",
    "AssetReader",
    "MemoryAdapter",
    "SQLiteAdapter",
    "StorageAdapter",
    "build_adapter",
]
