"""Admin mutation API — publish, promote, rollout, rollback, list.

Each operation is one storage call guarded by the bearer-token check.
The matching event is emitted only after that call returns; when it
raises, nothing is emitted.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging

from pydantic import BaseModel, ConfigDict, Field

from airlock.core.errors import AuthError, NotFoundError, ValidationError
from airlock.events.dispatcher import EventDispatcher
from airlock.models.events import (
    RolloutChangedEvent,
    UpdatePromotedEvent,
    UpdatePublishedEvent,
    UpdateRolledBackEvent,
)
from airlock.models.updates import (
    DEFAULT_CHANNEL,
    DeploymentKey,
    Manifest,
    Platform,
    StoredUpdate,
    utc_now_iso,
)
from airlock.storage.base import StorageAdapter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request bodies (camelCase on the wire)
# ---------------------------------------------------------------------------


class _AdminRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class InlineAsset(_AdminRequest):
    hash: str = Field(min_length=1)
    base64: str
    content_type: str = Field(alias="contentType")

    def decode(self) -> bytes:
        try:
            return base64.b64decode(self.base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError(f"Asset {self.hash} is not valid base64") from exc


class PublishRequest(_AdminRequest):
    manifest: Manifest
    runtime_version: str = Field(alias="runtimeVersion", min_length=1)
    platform: Platform
    channel: str = DEFAULT_CHANNEL
    rollout_percentage: int = Field(default=100, ge=0, le=100, alias="rolloutPercentage")
    message: str | None = None
    critical: bool | None = None
    assets: list[InlineAsset] = []

    @property
    def key(self) -> DeploymentKey:
        return DeploymentKey(
            channel=self.channel, runtime_version=self.runtime_version, platform=self.platform
        )


class PromoteRequest(_AdminRequest):
    from_channel: str = Field(alias="fromChannel", min_length=1)
    to_channel: str = Field(alias="toChannel", min_length=1)
    runtime_version: str = Field(alias="runtimeVersion", min_length=1)
    platform: Platform


class RolloutRequest(_AdminRequest):
    update_id: str = Field(alias="updateId", min_length=1)
    percentage: int
    runtime_version: str = Field(alias="runtimeVersion", min_length=1)
    platform: Platform
    channel: str = DEFAULT_CHANNEL

    @property
    def key(self) -> DeploymentKey:
        return DeploymentKey(
            channel=self.channel, runtime_version=self.runtime_version, platform=self.platform
        )


class RollbackRequest(_AdminRequest):
    runtime_version: str = Field(alias="runtimeVersion", min_length=1)
    platform: Platform
    channel: str = DEFAULT_CHANNEL

    @property
    def key(self) -> DeploymentKey:
        return DeploymentKey(
            channel=self.channel, runtime_version=self.runtime_version, platform=self.platform
        )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AdminService:
    """Admin operations over a ``StorageAdapter``.

    Parameters
    ----------
    adapter:
        Any ``StorageAdapter``.
    dispatcher:
        Receives one event per successful mutation.
    admin_token:
        Expected bearer token.  Empty or ``None`` leaves admin open —
        the development default, refused in production by the guard.
    default_list_limit:
        History slice length when the caller gives none.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        dispatcher: EventDispatcher,
        *,
        admin_token: str | None = None,
        default_list_limit: int = 20,
    ) -> None:
        self._adapter = adapter
        self._dispatcher = dispatcher
        self._admin_token = admin_token or None
        self.default_list_limit = default_list_limit
        if self._admin_token is None:
            logger.warning("No admin token configured — /admin routes are open.")

    def authorize(self, authorization: str | None) -> None:
        """Check an ``Authorization`` header value.

        Raises
        ------
        AuthError
            A token is configured and the header is not exactly
            ``Bearer <token>``.
        """
        if self._admin_token is None:
            return
        expected = f"Bearer {self._admin_token}".encode("utf-8")
        supplied = (authorization or "").encode("utf-8")
        if not hmac.compare_digest(supplied, expected):
            raise AuthError("Unauthorized")

    async def publish(self, request: PublishRequest) -> str:
        """Store inline assets, then publish the update as the new head."""
        for asset in request.assets:
            await self._adapter.store_asset(asset.hash, asset.decode(), asset.content_type)

        now = utc_now_iso()
        update = StoredUpdate(
            manifest=request.manifest,
            rollout_percentage=request.rollout_percentage,
            message=request.message,
            critical=request.critical,
            created_at=now,
            updated_at=now,
        )
        await self._adapter.publish(request.key, update)
        logger.info(
            "Published %s to %s at %d%%",
            update.update_id,
            request.key.storage_key,
            update.rollout_percentage,
        )
        self._dispatcher.emit(
            UpdatePublishedEvent(
                update_id=update.update_id,
                channel=request.channel,
                runtime_version=request.runtime_version,
                platform=request.platform,
            )
        )
        return update.update_id

    async def promote(self, request: PromoteRequest) -> str:
        """Copy the source channel's current update into the target channel.

        Raises
        ------
        NotFoundError
            The source channel has no current update.  Nothing is written.
        """
        from_key = DeploymentKey(
            channel=request.from_channel,
            runtime_version=request.runtime_version,
            platform=request.platform,
        )
        to_key = from_key.with_channel(request.to_channel)
        promoted = await self._adapter.promote(from_key, to_key)
        if promoted is None:
            raise NotFoundError("No update found in source channel")
        logger.info(
            "Promoted %s from %s to %s",
            promoted.update_id,
            from_key.storage_key,
            to_key.storage_key,
        )
        self._dispatcher.emit(
            UpdatePromotedEvent(
                update_id=promoted.update_id,
                from_channel=request.from_channel,
                to_channel=request.to_channel,
            )
        )
        return promoted.update_id

    async def set_rollout(self, request: RolloutRequest) -> bool:
        """Change the head's rollout percentage; no-op for a non-head id.

        Raises
        ------
        ValidationError
            Percentage outside 0..100.
        """
        if not 0 <= request.percentage <= 100:
            raise ValidationError(
                f"percentage must be between 0 and 100, got {request.percentage}"
            )
        applied = await self._adapter.set_rollout(
            request.key, request.update_id, request.percentage
        )
        if applied:
            logger.info(
                "Rollout for %s on %s set to %d%%",
                request.update_id,
                request.key.storage_key,
                request.percentage,
            )
        else:
            logger.info(
                "Rollout unchanged: %s is not the current update of %s",
                request.update_id,
                request.key.storage_key,
            )
        self._dispatcher.emit(
            RolloutChangedEvent(update_id=request.update_id, percentage=request.percentage)
        )
        return applied

    async def rollback(self, request: RollbackRequest) -> str:
        """Drop the current update; the previous one becomes active.

        Raises
        ------
        NotFoundError
            Fewer than two history entries.  Nothing is removed.
        """
        result = await self._adapter.rollback(request.key)
        if result is None:
            raise NotFoundError("No previous update to roll back to")
        logger.info(
            "Rolled back %s on %s; %s is active",
            result.removed.update_id,
            request.key.storage_key,
            result.active.update_id,
        )
        self._dispatcher.emit(
            UpdateRolledBackEvent(
                channel=request.channel, rolled_back_id=result.removed.update_id
            )
        )
        return result.active.update_id

    async def list_updates(
        self,
        *,
        runtime_version: str | None,
        platform: str | None,
        channel: str | None = None,
        limit: int | None = None,
    ) -> list[StoredUpdate]:
        """Newest-first history slice for one key.

        Raises
        ------
        ValidationError
            Runtime version or platform missing, or platform unknown.
        """
        if not runtime_version or not platform:
            raise ValidationError("Missing runtimeVersion or platform query param")
        try:
            parsed = Platform(platform.lower())
        except ValueError:
            raise ValidationError(f"Unsupported platform {platform!r}") from None
        key = DeploymentKey(
            channel=channel or DEFAULT_CHANNEL,
            runtime_version=runtime_version,
            platform=parsed,
        )
        return await self._adapter.history(
            key, self.default_list_limit if limit is None else limit
        )

    async def list_channels(self) -> list[tuple[DeploymentKey, StoredUpdate]]:
        """Every deployment key with its current update."""
        return await self._adapter.list_all()
