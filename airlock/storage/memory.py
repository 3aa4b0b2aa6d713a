"""In-memory storage adapter — the reference backend for tests and development.

History per key is a newest-first list.  Every mutation of a key runs
under that key's ``asyncio.Lock``, so publishes, rollout changes and
rollbacks on one key never interleave.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from airlock.models.updates import (
    DeploymentKey,
    RollbackResult,
    StoredAsset,
    StoredUpdate,
)
from airlock.storage.base import HISTORY_LIMIT

logger = logging.getLogger(__name__)


class MemoryAdapter:
    """Dict-backed ``StorageAdapter``.  Nothing survives the process.

    Parameters
    ----------
    asset_base_url:
        Prefix for URLs returned by ``resolve_asset_url``.  The default
        points at the server's own ``/blobs`` route.
    history_limit:
        Maximum history entries retained per key.
    """

    def __init__(
        self, asset_base_url: str = "/blobs", history_limit: int = HISTORY_LIMIT
    ) -> None:
        self._asset_base_url = asset_base_url.rstrip("/")
        self._history_limit = history_limit
        self._updates: dict[str, list[StoredUpdate]] = {}
        self._keys: dict[str, DeploymentKey] = {}
        self._assets: dict[str, StoredAsset] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    async def get_latest(self, key: DeploymentKey) -> StoredUpdate | None:
        entries = self._updates.get(key.storage_key)
        return entries[0] if entries else None

    async def publish(self, key: DeploymentKey, update: StoredUpdate) -> None:
        async with self._locks[key.storage_key]:
            self._publish_locked(key, update)

    def _publish_locked(self, key: DeploymentKey, update: StoredUpdate) -> None:
        entries = [update, *self._updates.get(key.storage_key, [])]
        self._updates[key.storage_key] = entries[: self._history_limit]
        self._keys[key.storage_key] = key
        logger.debug("Published %s to %s", update.update_id, key.storage_key)

    async def set_rollout(
        self, key: DeploymentKey, update_id: str, percentage: int
    ) -> bool:
        async with self._locks[key.storage_key]:
            entries = self._updates.get(key.storage_key)
            if not entries or entries[0].update_id != update_id:
                return False
            entries[0] = entries[0].with_rollout(percentage)
            return True

    async def promote(
        self, from_key: DeploymentKey, to_key: DeploymentKey
    ) -> StoredUpdate | None:
        source = await self.get_latest(from_key)
        if source is None:
            return None
        promoted = source.with_rollout(100)
        async with self._locks[to_key.storage_key]:
            self._publish_locked(to_key, promoted)
        return promoted

    async def rollback(self, key: DeploymentKey) -> RollbackResult | None:
        async with self._locks[key.storage_key]:
            entries = self._updates.get(key.storage_key, [])
            if len(entries) < 2:
                return None
            removed = entries.pop(0)
            return RollbackResult(removed=removed, active=entries[0])

    async def history(self, key: DeploymentKey, limit: int = 20) -> list[StoredUpdate]:
        return list(self._updates.get(key.storage_key, [])[: max(limit, 0)])

    async def list_all(self) -> list[tuple[DeploymentKey, StoredUpdate]]:
        return [
            (self._keys[storage_key], entries[0])
            for storage_key, entries in sorted(self._updates.items())
            if entries
        ]

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    async def store_asset(self, hash: str, data: bytes, content_type: str) -> None:
        self._assets[hash] = StoredAsset(hash=hash, data=data, content_type=content_type)

    async def resolve_asset_url(self, hash: str) -> str | None:
        if hash not in self._assets:
            return None
        return f"{self._asset_base_url}/{hash}"

    async def get_asset(self, hash: str) -> StoredAsset | None:
        return self._assets.get(hash)
