"""Deterministic rollout partitioning.

A device is in an update's rollout when the bucket derived from
SHA-256(device_id + update_id) falls below the rollout percentage.
No per-device state is stored; the same inputs always give the same
answer, and a new update id reshuffles which devices are included.
"""

from __future__ import annotations

from airlock.core.hasher import sha256_digest

ANONYMOUS_DEVICE_ID = "anonymous"


def rollout_bucket(device_id: str, update_id: str) -> int:
    """Bucket in ``[0, 100)``: last 4 digest bytes, big-endian, modulo 100."""
    digest = sha256_digest((device_id + update_id).encode("utf-8"))
    return int.from_bytes(digest[-4:], "big") % 100


def is_in_rollout(device_id: str, update_id: str, percentage: float) -> bool:
    """Return True if *device_id* should receive *update_id*.

    The bounds short-circuit before any hashing.
    """
    if percentage >= 100:
        return True
    if percentage <= 0:
        return False
    return rollout_bucket(device_id, update_id) < percentage
