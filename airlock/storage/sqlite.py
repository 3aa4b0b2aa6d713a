"""SQLite storage adapter — durable history plus a sharded asset directory.

Design:
- ``update_history`` holds one row per published update; the row id is
  the insertion order, so "newest first" is ``ORDER BY id DESC``.
- Every mutation runs inside ``BEGIN IMMEDIATE`` under a process-wide
  write lock, which serializes writers per key (and across keys).
- WAL journal mode for concurrent readers.
- Asset bytes live on disk at ``{asset_dir}/{hash[0:2]}/{hash[2:4]}/{hash}.dat``;
  their content type is recorded in the ``assets`` table.

Blocking SQLite and file calls run in a worker thread via
``asyncio.to_thread``.  ``sqlite3.Error`` and ``OSError`` surface as
``AdapterError``.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from airlock.core.errors import AdapterError, ValidationError
from airlock.core.hasher import canonical_json_bytes
from airlock.models.updates import (
    DeploymentKey,
    Platform,
    RollbackResult,
    StoredAsset,
    StoredUpdate,
    utc_now_iso,
)
from airlock.storage.base import HISTORY_LIMIT

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_HISTORY = """
CREATE TABLE IF NOT EXISTS update_history (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    channel          TEXT NOT NULL,
    runtime_version  TEXT NOT NULL,
    platform         TEXT NOT NULL,
    update_id        TEXT NOT NULL,
    payload_json     TEXT NOT NULL,
    created_at       TEXT NOT NULL
);
"""

_CREATE_IDX_KEY = """
CREATE INDEX IF NOT EXISTS idx_history_key
    ON update_history(channel, runtime_version, platform, id);
"""

_CREATE_ASSETS = """
CREATE TABLE IF NOT EXISTS assets (
    hash          TEXT PRIMARY KEY,
    content_type  TEXT NOT NULL,
    size_bytes    INTEGER NOT NULL,
    stored_at     TEXT NOT NULL
);
"""

_KEY_CLAUSE = "channel = ? AND runtime_version = ? AND platform = ?"

# Asset hashes are hex or base64url digests
_SAFE_HASH = re.compile(r"[A-Za-z0-9_\-]+")


def _key_params(key: DeploymentKey) -> tuple[str, str, str]:
    return (key.channel, key.runtime_version, key.platform.value)


def _wrap_backend_errors(fn: Callable[..., T]) -> Callable[..., T]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except (sqlite3.Error, OSError) as exc:
            logger.error("SQLite adapter %s failed: %s", fn.__name__, exc)
            raise AdapterError(f"Storage backend failure in {fn.__name__}: {exc}") from exc

    return wrapper


class SQLiteAdapter:
    """``StorageAdapter`` backed by SQLite and the local filesystem.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Created if it does not exist.
    asset_dir:
        Root directory for asset bytes.
    asset_base_url:
        Prefix for URLs returned by ``resolve_asset_url``.
    history_limit:
        Maximum history entries retained per key.
    """

    def __init__(
        self,
        db_path: Path,
        asset_dir: Path,
        asset_base_url: str = "/blobs",
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._asset_dir = Path(asset_dir)
        self._asset_dir.mkdir(parents=True, exist_ok=True)
        self._asset_base_url = asset_base_url.rstrip("/")
        self._history_limit = history_limit
        self._write_lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False, isolation_level=None
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute(_CREATE_HISTORY)
            conn.execute(_CREATE_IDX_KEY)
            conn.execute(_CREATE_ASSETS)
        finally:
            conn.close()

    def _write(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run *fn* in a ``BEGIN IMMEDIATE`` transaction under the write lock."""
        with self._write_lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    result = fn(conn)
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
                return result
            finally:
                conn.close()

    def _read(self, sql: str, params: tuple[Any, ...]) -> list[tuple[Any, ...]]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    @staticmethod
    def _encode(update: StoredUpdate) -> str:
        return canonical_json_bytes(update.to_wire()).decode("utf-8")

    @staticmethod
    def _decode(payload_json: str) -> StoredUpdate:
        return StoredUpdate.model_validate(json.loads(payload_json))

    # ------------------------------------------------------------------
    # Synchronous implementations (run in a worker thread)
    # ------------------------------------------------------------------

    def _insert(self, conn: sqlite3.Connection, key: DeploymentKey, update: StoredUpdate) -> None:
        conn.execute(
            """
            INSERT INTO update_history
                (channel, runtime_version, platform, update_id, payload_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (*_key_params(key), update.update_id, self._encode(update), utc_now_iso()),
        )
        # Keep only the newest history_limit rows for this key
        conn.execute(
            f"""
            DELETE FROM update_history
            WHERE {_KEY_CLAUSE} AND id NOT IN (
                SELECT id FROM update_history WHERE {_KEY_CLAUSE}
                ORDER BY id DESC LIMIT ?
            )
            """,
            (*_key_params(key), *_key_params(key), self._history_limit),
        )

    @_wrap_backend_errors
    def _get_latest_sync(self, key: DeploymentKey) -> StoredUpdate | None:
        rows = self._read(
            f"SELECT payload_json FROM update_history WHERE {_KEY_CLAUSE} "
            "ORDER BY id DESC LIMIT 1",
            _key_params(key),
        )
        return self._decode(rows[0][0]) if rows else None

    @_wrap_backend_errors
    def _publish_sync(self, key: DeploymentKey, update: StoredUpdate) -> None:
        self._write(lambda conn: self._insert(conn, key, update))
        logger.debug("Published %s to %s", update.update_id, key.storage_key)

    @_wrap_backend_errors
    def _set_rollout_sync(self, key: DeploymentKey, update_id: str, percentage: int) -> bool:
        def _apply(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                f"SELECT id, update_id, payload_json FROM update_history "
                f"WHERE {_KEY_CLAUSE} ORDER BY id DESC LIMIT 1",
                _key_params(key),
            ).fetchone()
            if row is None or row[1] != update_id:
                return False
            updated = self._decode(row[2]).with_rollout(percentage)
            conn.execute(
                "UPDATE update_history SET payload_json = ? WHERE id = ?",
                (self._encode(updated), row[0]),
            )
            return True

        return self._write(_apply)

    @_wrap_backend_errors
    def _promote_sync(self, from_key: DeploymentKey, to_key: DeploymentKey) -> StoredUpdate | None:
        def _apply(conn: sqlite3.Connection) -> StoredUpdate | None:
            row = conn.execute(
                f"SELECT payload_json FROM update_history WHERE {_KEY_CLAUSE} "
                "ORDER BY id DESC LIMIT 1",
                _key_params(from_key),
            ).fetchone()
            if row is None:
                return None
            promoted = self._decode(row[0]).with_rollout(100)
            self._insert(conn, to_key, promoted)
            return promoted

        return self._write(_apply)

    @_wrap_backend_errors
    def _rollback_sync(self, key: DeploymentKey) -> RollbackResult | None:
        def _apply(conn: sqlite3.Connection) -> RollbackResult | None:
            rows = conn.execute(
                f"SELECT id, payload_json FROM update_history WHERE {_KEY_CLAUSE} "
                "ORDER BY id DESC LIMIT 2",
                _key_params(key),
            ).fetchall()
            if len(rows) < 2:
                return None
            conn.execute("DELETE FROM update_history WHERE id = ?", (rows[0][0],))
            return RollbackResult(
                removed=self._decode(rows[0][1]), active=self._decode(rows[1][1])
            )

        return self._write(_apply)

    @_wrap_backend_errors
    def _history_sync(self, key: DeploymentKey, limit: int) -> list[StoredUpdate]:
        rows = self._read(
            f"SELECT payload_json FROM update_history WHERE {_KEY_CLAUSE} "
            "ORDER BY id DESC LIMIT ?",
            (*_key_params(key), max(limit, 0)),
        )
        return [self._decode(row[0]) for row in rows]

    @_wrap_backend_errors
    def _list_all_sync(self) -> list[tuple[DeploymentKey, StoredUpdate]]:
        rows = self._read(
            """
            SELECT h.channel, h.runtime_version, h.platform, h.payload_json
            FROM update_history h
            JOIN (
                SELECT MAX(id) AS head_id FROM update_history
                GROUP BY channel, runtime_version, platform
            ) heads ON h.id = heads.head_id
            ORDER BY h.channel, h.runtime_version, h.platform
            """,
            (),
        )
        return [
            (
                DeploymentKey(
                    channel=channel,
                    runtime_version=runtime_version,
                    platform=Platform(platform),
                ),
                self._decode(payload_json),
            )
            for channel, runtime_version, platform, payload_json in rows
        ]

    def _asset_path(self, hash: str) -> Path:
        """Layout: {asset_dir}/{hash[0:2]}/{hash[2:4]}/{hash}.dat"""
        if not _SAFE_HASH.fullmatch(hash):
            raise ValidationError(f"Asset hash contains unsupported characters: {hash!r}")
        return self._asset_dir / hash[:2] / hash[2:4] / f"{hash}.dat"

    @_wrap_backend_errors
    def _store_asset_sync(self, hash: str, data: bytes, content_type: str) -> None:
        path = self._asset_path(hash)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        self._write(
            lambda conn: conn.execute(
                """
                INSERT INTO assets (hash, content_type, size_bytes, stored_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(hash) DO UPDATE SET
                    content_type = excluded.content_type,
                    size_bytes = excluded.size_bytes,
                    stored_at = excluded.stored_at
                """,
                (hash, content_type, len(data), utc_now_iso()),
            )
        )

    @_wrap_backend_errors
    def _asset_content_type_sync(self, hash: str) -> str | None:
        rows = self._read("SELECT content_type FROM assets WHERE hash = ?", (hash,))
        return rows[0][0] if rows else None

    @_wrap_backend_errors
    def _get_asset_sync(self, hash: str) -> StoredAsset | None:
        # Nothing with such a name was ever stored
        if not _SAFE_HASH.fullmatch(hash):
            return None
        content_type = self._asset_content_type_sync(hash)
        if content_type is None:
            return None
        path = self._asset_path(hash)
        if not path.exists():
            return None
        return StoredAsset(hash=hash, data=path.read_bytes(), content_type=content_type)

    # ------------------------------------------------------------------
    # StorageAdapter
    # ------------------------------------------------------------------

    async def get_latest(self, key: DeploymentKey) -> StoredUpdate | None:
        return await asyncio.to_thread(self._get_latest_sync, key)

    async def publish(self, key: DeploymentKey, update: StoredUpdate) -> None:
        await asyncio.to_thread(self._publish_sync, key, update)

    async def set_rollout(
        self, key: DeploymentKey, update_id: str, percentage: int
    ) -> bool:
        return await asyncio.to_thread(self._set_rollout_sync, key, update_id, percentage)

    async def promote(
        self, from_key: DeploymentKey, to_key: DeploymentKey
    ) -> StoredUpdate | None:
        return await asyncio.to_thread(self._promote_sync, from_key, to_key)

    async def rollback(self, key: DeploymentKey) -> RollbackResult | None:
        return await asyncio.to_thread(self._rollback_sync, key)

    async def history(self, key: DeploymentKey, limit: int = 20) -> list[StoredUpdate]:
        return await asyncio.to_thread(self._history_sync, key, limit)

    async def list_all(self) -> list[tuple[DeploymentKey, StoredUpdate]]:
        return await asyncio.to_thread(self._list_all_sync)

    async def store_asset(self, hash: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(self._store_asset_sync, hash, data, content_type)

    async def resolve_asset_url(self, hash: str) -> str | None:
        content_type = await asyncio.to_thread(self._asset_content_type_sync, hash)
        if content_type is None:
            return None
        return f"{self._asset_base_url}/{hash}"

    async def get_asset(self, hash: str) -> StoredAsset | None:
        return await asyncio.to_thread(self._get_asset_sync, hash)
