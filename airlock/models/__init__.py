"""Airlock data models — all Pydantic v2, all frozen (immutable)."""

from airlock.models.context import UpdateContext
from airlock.models.events import (
    AirlockEvent,
    AssetRequestEvent,
    EventBase,
    EventKind,
    ManifestRequestEvent,
    RolloutChangedEvent,
    UpdatePromotedEvent,
    UpdatePublishedEvent,
    UpdateRolledBackEvent,
)
from airlock.models.resolution import Block, Keep, OverrideHook, Resolution
from airlock.models.updates import (
    DEFAULT_CHANNEL,
    DeploymentKey,
    Manifest,
    ManifestAsset,
    Platform,
    RollbackResult,
    StoredAsset,
    StoredUpdate,
    utc_now_iso,
)

__all__ = [
    # updates
    "DEFAULT_CHANNEL",
    "DeploymentKey",
    "Manifest",
    "ManifestAsset",
    "Platform",
    "RollbackResult",
    "StoredAsset",
    "StoredUpdate",
    "utc_now_iso",
    # context
    "UpdateContext",
    # resolution
    "Keep",
    "Block",
    "Resolution",
    "OverrideHook",
    # events
    "EventKind",
    "EventBase",
    "AirlockEvent",
    "ManifestRequestEvent",
    "AssetRequestEvent",
    "UpdatePublishedEvent",
    "UpdatePromotedEvent",
    "RolloutChangedEvent",
    "UpdateRolledBackEvent",
]
