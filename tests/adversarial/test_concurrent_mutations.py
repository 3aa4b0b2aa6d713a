"""Adversarial tests for concurrent mutations on one deployment key.

Interleaved publishes, rollout changes and rollbacks must leave every
backend with a consistent, capped, newest-first history.
"""

from __future__ import annotations

import asyncio

from airlock.engine.admin import AdminService, RollbackRequest
from airlock.models.events import EventKind
from airlock.storage.base import HISTORY_LIMIT


class TestConcurrentPublishes:
    async def test_history_stays_capped(self, adapter, ios_key, make_update):
        updates = [make_update(f"update-{i:03d}") for i in range(HISTORY_LIMIT + 10)]
        await asyncio.gather(*(adapter.publish(ios_key, u) for u in updates))

        history = await adapter.history(ios_key, limit=HISTORY_LIMIT * 2)
        assert len(history) == HISTORY_LIMIT
        ids = [u.update_id for u in history]
        assert len(set(ids)) == HISTORY_LIMIT
        assert (await adapter.get_latest(ios_key)).update_id == ids[0]

    async def test_distinct_keys_do_not_interfere(self, adapter, ios_key, make_update):
        keys = [ios_key.with_channel(f"channel-{i}") for i in range(8)]
        await asyncio.gather(
            *(adapter.publish(key, make_update(f"u-{key.channel}")) for key in keys)
        )
        for key in keys:
            assert (await adapter.get_latest(key)).update_id == f"u-{key.channel}"


class TestInterleavedMutations:
    async def test_rollbacks_never_empty_history(self, adapter, ios_key, make_update):
        for i in range(5):
            await adapter.publish(ios_key, make_update(f"update-{i}"))

        results = await asyncio.gather(*(adapter.rollback(ios_key) for _ in range(10)))
        assert sum(r is not None for r in results) == 4
        history = await adapter.history(ios_key, limit=10)
        assert [u.update_id for u in history] == ["update-0"]

    async def test_rollout_races_publish(self, adapter, ios_key, make_update):
        await adapter.publish(ios_key, make_update("update-1"))
        await asyncio.gather(
            adapter.set_rollout(ios_key, "update-1", 10),
            adapter.publish(ios_key, make_update("update-2")),
        )
        history = await adapter.history(ios_key, limit=10)
        assert [u.update_id for u in history] == ["update-2", "update-1"]
        # Whichever ran first, the new head is untouched by the rollout call
        assert history[0].rollout_percentage == 100

    async def test_concurrent_rollbacks_report_distinct_removed_ids(
        self, adapter, dispatcher, recording_sink, ios_key, make_update
    ):
        for i in range(3):
            await adapter.publish(ios_key, make_update(f"update-{i}"))
        service = AdminService(adapter, dispatcher)
        request = RollbackRequest.model_validate({"runtimeVersion": "1.0.0", "platform": "ios"})

        active = await asyncio.gather(service.rollback(request), service.rollback(request))
        await dispatcher.drain()

        assert sorted(active) == ["update-0", "update-1"]
        events = recording_sink.of_type(EventKind.UPDATE_ROLLED_BACK.value)
        removed = [e.rolled_back_id for e in events]
        assert sorted(removed) == ["update-1", "update-2"]
        assert (await adapter.get_latest(ios_key)).update_id == "update-0"
