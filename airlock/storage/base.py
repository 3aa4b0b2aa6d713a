"""Storage adapter contract.

Every backend exposes the same async operation set.  The resolution
engine and the admin API depend only on ``StorageAdapter``; any object
with these methods is substitutable.

Per-key guarantees every implementation must keep:

- ``publish`` makes the update the new head and truncates history to
  ``HISTORY_LIMIT`` entries.  Concurrent publishes to one key are
  serialized; two never both become head.
- ``set_rollout`` changes the percentage only when the id names the
  current head.  Anything else is a no-op, not an error.
- ``rollback`` removes nothing when fewer than two entries exist.  The
  removed head and the new head are read in the same locked step as the
  removal, so concurrent rollbacks each report a distinct removed entry.
- History order is insertion order, newest first.  It is never re-sorted.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from airlock.models.updates import (
    DeploymentKey,
    RollbackResult,
    StoredAsset,
    StoredUpdate,
)

HISTORY_LIMIT = 50


@runtime_checkable
class StorageAdapter(Protocol):
    """Durable keyed storage for update history and content-addressed assets."""

    async def get_latest(self, key: DeploymentKey) -> StoredUpdate | None:
        """Current update for *key*, or ``None``.  Never raises for a missing key."""
        ...

    async def publish(self, key: DeploymentKey, update: StoredUpdate) -> None:
        """Push *update* as the new head of *key*'s history."""
        ...

    async def set_rollout(
        self, key: DeploymentKey, update_id: str, percentage: int
    ) -> bool:
        """Set the head's percentage if its id is *update_id*.  Returns whether it applied."""
        ...

    async def promote(
        self, from_key: DeploymentKey, to_key: DeploymentKey
    ) -> StoredUpdate | None:
        """Copy *from_key*'s current update into *to_key* at 100%.

        Returns the copy that was published, or ``None`` (and writes
        nothing) when *from_key* has no current update.
        """
        ...

    async def rollback(self, key: DeploymentKey) -> RollbackResult | None:
        """Drop the head; return it with the new head, or ``None`` if fewer than two exist."""
        ...

    async def history(self, key: DeploymentKey, limit: int = 20) -> list[StoredUpdate]:
        """Newest-first slice of at most *limit* entries."""
        ...

    async def list_all(self) -> list[tuple[DeploymentKey, StoredUpdate]]:
        """One ``(key, current)`` pair per key with a non-empty history."""
        ...

    async def store_asset(self, hash: str, data: bytes, content_type: str) -> None:
        """Store asset bytes under *hash*.  Re-storing overwrites."""
        ...

    async def resolve_asset_url(self, hash: str) -> str | None:
        """Fetchable URL for *hash*, or ``None`` if it was never stored."""
        ...


@runtime_checkable
class AssetReader(Protocol):
    """Optional capability: backends that hold asset bytes themselves."""

    async def get_asset(self, hash: str) -> StoredAsset | None:
        ...
