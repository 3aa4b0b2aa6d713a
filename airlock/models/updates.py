"""Update, manifest, and deployment-key models.

A ``StoredUpdate`` is one published release for a ``DeploymentKey``.  Its
manifest id is immutable once published; the only field that changes
afterwards is the rollout percentage (and the ``updatedAt`` stamp that
records that change).  All models are frozen — mutations produce copies.

Wire names are camelCase (``rolloutPercentage``, ``launchAsset``) to match
the manifest protocol; Python attributes are snake_case.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CHANNEL = "default"


def utc_now_iso() -> str:
    """ISO 8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class Platform(str, Enum):
    """Client platforms the protocol distinguishes between."""

    IOS = "ios"
    ANDROID = "android"


class DeploymentKey(BaseModel):
    """(channel, runtime version, platform) — the scope of every storage call."""

    model_config = ConfigDict(frozen=True)

    channel: str = DEFAULT_CHANNEL
    runtime_version: str
    platform: Platform

    @property
    def storage_key(self) -> str:
        return f"{self.channel}/{self.runtime_version}/{self.platform.value}"

    def with_channel(self, channel: str) -> DeploymentKey:
        return self.model_copy(update={"channel": channel})


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase names, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ManifestAsset(_WireModel):
    """One asset descriptor inside a manifest."""

    hash: str
    key: str
    content_type: str = Field(alias="contentType")
    file_extension: str | None = Field(default=None, alias="fileExtension")
    url: str


class Manifest(_WireModel):
    """The manifest body served to clients.

    Top-level fields beyond the known ones are kept and served unchanged.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str = Field(min_length=1)
    created_at: str = Field(alias="createdAt")
    runtime_version: str = Field(alias="runtimeVersion")
    launch_asset: ManifestAsset = Field(alias="launchAsset")
    assets: list[ManifestAsset] = []
    metadata: dict[str, Any] = {}
    extra: dict[str, Any] = {}


class StoredUpdate(_WireModel):
    """A published update plus its rollout state."""

    manifest: Manifest
    rollout_percentage: int = Field(default=100, ge=0, le=100, alias="rolloutPercentage")
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=utc_now_iso, alias="updatedAt")
    message: str | None = None
    critical: bool | None = None

    @property
    def update_id(self) -> str:
        return self.manifest.id

    def with_rollout(self, percentage: int) -> StoredUpdate:
        """Copy with a new rollout percentage and a refreshed ``updatedAt``."""
        return self.model_copy(
            update={"rollout_percentage": percentage, "updated_at": utc_now_iso()}
        )

    def with_critical_marker(self) -> StoredUpdate:
        """Copy whose manifest ``extra`` carries ``critical: true``.

        Stored state is never touched; the marker exists only on the copy
        that is rendered for the client.
        """
        extra = {**self.manifest.extra, "critical": True}
        manifest = self.manifest.model_copy(update={"extra": extra})
        return self.model_copy(update={"manifest": manifest})


class StoredAsset(BaseModel):
    """Asset bytes held by a backend that can serve them directly."""

    model_config = ConfigDict(frozen=True)

    hash: str
    data: bytes
    content_type: str


class RollbackResult(BaseModel):
    """Outcome of a rollback: the head that was dropped and the one now active.

    Both are read in the same locked step that removes the head.
    """

    model_config = ConfigDict(frozen=True)

    removed: StoredUpdate
    active: StoredUpdate
