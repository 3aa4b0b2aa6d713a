"""Airlock: self-hosted over-the-air update server.

Resolves client manifest requests against published update history,
partitions rollouts deterministically per device, signs manifests with
Ed25519, and exposes an admin API to publish, promote, roll out and
roll back updates across channels.
"""

__version__ = "0.1.0"
__description__ = "Over-the-air update server with deterministic rollouts"

from airlock.engine.resolver import ResolutionEngine
from airlock.server.app import create_app
from airlock.storage import MemoryAdapter, SQLiteAdapter, StorageAdapter

__all__ = [
    "MemoryAdapter",
    "ResolutionEngine",
    "SQLiteAdapter",
    "StorageAdapter",
    "create_app",
    "__version__",
]
