"""Per-request context handed to override hooks and carried on events."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from airlock.models.updates import DeploymentKey, Platform


class UpdateContext(BaseModel):
    """What the engine knows about one incoming manifest request.

    Never persisted.  ``headers`` holds the raw request headers with
    lower-cased names.
    """

    model_config = ConfigDict(frozen=True)

    channel: str
    runtime_version: str
    platform: Platform
    headers: dict[str, str] = {}
    current_update_id: str | None = None

    @property
    def key(self) -> DeploymentKey:
        return DeploymentKey(
            channel=self.channel,
            runtime_version=self.runtime_version,
            platform=self.platform,
        )
