"""Contract tests run against every bundled storage backend."""

from __future__ import annotations

import pytest

from airlock.models.updates import DeploymentKey, Platform
from airlock.storage.base import HISTORY_LIMIT, AssetReader, StorageAdapter


class TestContract:
    def test_satisfies_protocol(self, adapter):
        assert isinstance(adapter, StorageAdapter)
        assert isinstance(adapter, AssetReader)


class TestLatestAndPublish:
    async def test_missing_key_returns_none(self, adapter, ios_key):
        assert await adapter.get_latest(ios_key) is None

    async def test_publish_sets_head(self, adapter, ios_key, make_update):
        await adapter.publish(ios_key, make_update("update-1"))
        await adapter.publish(ios_key, make_update("update-2"))
        latest = await adapter.get_latest(ios_key)
        assert latest is not None
        assert latest.update_id == "update-2"

    async def test_keys_are_isolated(self, adapter, ios_key, make_update):
        android = DeploymentKey(runtime_version="1.0.0", platform=Platform.ANDROID)
        other_runtime = DeploymentKey(runtime_version="2.0.0", platform=Platform.IOS)
        await adapter.publish(ios_key, make_update("ios-update"))
        assert await adapter.get_latest(android) is None
        assert await adapter.get_latest(other_runtime) is None

    async def test_round_trips_optional_fields(self, adapter, ios_key, make_update):
        await adapter.publish(
            ios_key, make_update("u", message="hotfix", critical=True, rollout_percentage=25)
        )
        latest = await adapter.get_latest(ios_key)
        assert latest.message == "hotfix"
        assert latest.critical is True
        assert latest.rollout_percentage == 25

    async def test_history_capped_at_limit(self, adapter, ios_key, make_update):
        for i in range(HISTORY_LIMIT + 1):
            await adapter.publish(ios_key, make_update(f"update-{i}"))
        history = await adapter.history(ios_key, limit=100)
        assert len(history) == HISTORY_LIMIT
        assert history[0].update_id == f"update-{HISTORY_LIMIT}"
        assert history[-1].update_id == "update-1"
        assert "update-0" not in {u.update_id for u in history}


class TestHistory:
    async def test_newest_first_and_limited(self, adapter, ios_key, make_update):
        for i in range(5):
            await adapter.publish(ios_key, make_update(f"update-{i}"))
        history = await adapter.history(ios_key, limit=3)
        assert [u.update_id for u in history] == ["update-4", "update-3", "update-2"]

    async def test_limit_beyond_length(self, adapter, ios_key, make_update):
        await adapter.publish(ios_key, make_update("only"))
        assert len(await adapter.history(ios_key, limit=20)) == 1

    async def test_empty_history(self, adapter, ios_key):
        assert await adapter.history(ios_key, limit=20) == []


class TestSetRollout:
    async def test_updates_head(self, adapter, ios_key, make_update):
        await adapter.publish(ios_key, make_update("update-1"))
        assert await adapter.set_rollout(ios_key, "update-1", 30) is True
        latest = await adapter.get_latest(ios_key)
        assert latest.rollout_percentage == 30
        assert latest.updated_at != "2025-01-01T00:00:00Z"

    async def test_non_head_id_is_noop(self, adapter, ios_key, make_update):
        await adapter.publish(ios_key, make_update("update-1", rollout_percentage=80))
        await adapter.publish(ios_key, make_update("update-2", rollout_percentage=40))
        assert await adapter.set_rollout(ios_key, "update-1", 10) is False
        history = await adapter.history(ios_key, limit=10)
        assert [u.rollout_percentage for u in history] == [40, 80]

    async def test_missing_key_is_noop(self, adapter, ios_key):
        assert await adapter.set_rollout(ios_key, "nope", 10) is False
        assert await adapter.get_latest(ios_key) is None


class TestPromote:
    async def test_copies_at_full_rollout(self, adapter, make_update):
        staging = DeploymentKey(channel="staging", runtime_version="1.0.0", platform=Platform.IOS)
        production = staging.with_channel("production")
        await adapter.publish(staging, make_update("update-1", rollout_percentage=20))

        promoted = await adapter.promote(staging, production)
        assert promoted is not None
        assert promoted.update_id == "update-1"

        target = await adapter.get_latest(production)
        assert target.update_id == "update-1"
        assert target.rollout_percentage == 100
        assert target.updated_at != "2025-01-01T00:00:00Z"
        # Source untouched
        assert (await adapter.get_latest(staging)).rollout_percentage == 20

    async def test_empty_source_writes_nothing(self, adapter):
        staging = DeploymentKey(channel="staging", runtime_version="1.0.0", platform=Platform.IOS)
        production = staging.with_channel("production")
        assert await adapter.promote(staging, production) is None
        assert await adapter.history(production, limit=10) == []


class TestRollback:
    async def test_single_entry_is_refused(self, adapter, ios_key, make_update):
        await adapter.publish(ios_key, make_update("update-1"))
        assert await adapter.rollback(ios_key) is None
        assert (await adapter.get_latest(ios_key)).update_id == "update-1"

    async def test_empty_is_refused(self, adapter, ios_key):
        assert await adapter.rollback(ios_key) is None

    async def test_pops_head(self, adapter, ios_key, make_update):
        await adapter.publish(ios_key, make_update("update-1", rollout_percentage=60))
        await adapter.publish(ios_key, make_update("update-2"))
        result = await adapter.rollback(ios_key)
        assert result.removed.update_id == "update-2"
        assert result.active.update_id == "update-1"
        latest = await adapter.get_latest(ios_key)
        assert latest.update_id == "update-1"
        # Restored update keeps its own stored percentage
        assert latest.rollout_percentage == 60
        assert len(await adapter.history(ios_key, limit=10)) == 1


class TestListAll:
    async def test_one_entry_per_key(self, adapter, ios_key, make_update):
        android = DeploymentKey(runtime_version="1.0.0", platform=Platform.ANDROID)
        await adapter.publish(ios_key, make_update("ios-1"))
        await adapter.publish(ios_key, make_update("ios-2"))
        await adapter.publish(android, make_update("android-1"))

        entries = await adapter.list_all()
        current = {key.storage_key: update.update_id for key, update in entries}
        assert current == {
            "default/1.0.0/ios": "ios-2",
            "default/1.0.0/android": "android-1",
        }

    async def test_empty(self, adapter):
        assert await adapter.list_all() == []


class TestAssets:
    async def test_unknown_hash(self, adapter):
        assert await adapter.resolve_asset_url("missing") is None
        assert await adapter.get_asset("missing") is None

    async def test_store_and_resolve(self, adapter):
        await adapter.store_asset("abc123", b"\x01\x02\x03", "application/javascript")
        assert await adapter.resolve_asset_url("abc123") == "/blobs/abc123"
        stored = await adapter.get_asset("abc123")
        assert stored.data == b"\x01\x02\x03"
        assert stored.content_type == "application/javascript"

    async def test_restore_overwrites(self, adapter):
        await adapter.store_asset("abc123", b"one", "text/plain")
        await adapter.store_asset("abc123", b"one", "application/octet-stream")
        stored = await adapter.get_asset("abc123")
        assert stored.content_type == "application/octet-stream"


@pytest.mark.parametrize("base_url", ["https://cdn.example.com/blobs", "https://cdn.example.com/blobs/"])
async def test_memory_asset_base_url(base_url: str):
    from airlock.storage.memory import MemoryAdapter

    adapter = MemoryAdapter(asset_base_url=base_url)
    await adapter.store_asset("h1", b"x", "text/plain")
    assert await adapter.resolve_asset_url("h1") == "https://cdn.example.com/blobs/h1"
