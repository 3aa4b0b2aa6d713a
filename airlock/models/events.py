"""Engine and admin outcome events — one frozen model per kind.

Events are tagged on ``type`` and carry only the fields relevant to their
kind.  They are handed to the event dispatcher and never retried.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from airlock.models.context import UpdateContext
from airlock.models.updates import Platform


class EventKind(str, Enum):
    """The six event kinds."""

    MANIFEST_REQUEST = "manifest_request"
    ASSET_REQUEST = "asset_request"
    UPDATE_PUBLISHED = "update_published"
    UPDATE_PROMOTED = "update_promoted"
    ROLLOUT_CHANGED = "rollout_changed"
    UPDATE_ROLLED_BACK = "update_rolled_back"


class EventBase(BaseModel):
    """Fields shared by every event."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class ManifestRequestEvent(EventBase):
    type: Literal[EventKind.MANIFEST_REQUEST] = EventKind.MANIFEST_REQUEST
    context: UpdateContext
    served: bool
    update_id: str | None = None


class AssetRequestEvent(EventBase):
    type: Literal[EventKind.ASSET_REQUEST] = EventKind.ASSET_REQUEST
    hash: str
    found: bool


class UpdatePublishedEvent(EventBase):
    type: Literal[EventKind.UPDATE_PUBLISHED] = EventKind.UPDATE_PUBLISHED
    update_id: str
    channel: str
    runtime_version: str
    platform: Platform


class UpdatePromotedEvent(EventBase):
    type: Literal[EventKind.UPDATE_PROMOTED] = EventKind.UPDATE_PROMOTED
    update_id: str
    from_channel: str
    to_channel: str


class RolloutChangedEvent(EventBase):
    type: Literal[EventKind.ROLLOUT_CHANGED] = EventKind.ROLLOUT_CHANGED
    update_id: str
    percentage: int


class UpdateRolledBackEvent(EventBase):
    type: Literal[EventKind.UPDATE_ROLLED_BACK] = EventKind.UPDATE_ROLLED_BACK
    channel: str
    rolled_back_id: str


AirlockEvent = Annotated[
    Union[
        ManifestRequestEvent,
        AssetRequestEvent,
        UpdatePublishedEvent,
        UpdatePromotedEvent,
        RolloutChangedEvent,
        UpdateRolledBackEvent,
    ],
    Field(discriminator="type"),
]
