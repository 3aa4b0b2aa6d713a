"""Manifest resolution — turns one client request into 204 or a signed 200.

Decision order for ``resolve_manifest``:

1. platform and runtime version present, else ``ValidationError`` (400).
   Storage is not touched.
2. no current update for (channel, runtime, platform) -> no update.
3. client already runs the current update -> no update.
4. rollout below 100% and the device falls outside it -> no update.
5. override hook answers ``Block`` -> no update; ``Keep`` may substitute.
6. critical updates get ``extra.critical = true`` on a derived copy.
7. with a signer configured, the manifest bytes are signed.
8. the protocol encoder renders the 200 response.

Each of the 204/200 outcomes emits exactly one ``manifest_request`` event.
"""

from __future__ import annotations

import inspect
import logging
from typing import Mapping

from pydantic import BaseModel, ConfigDict

from airlock.core.errors import ValidationError
from airlock.core.rollout import ANONYMOUS_DEVICE_ID, is_in_rollout
from airlock.core.signing import ManifestSigner
from airlock.events.dispatcher import EventDispatcher
from airlock.models.context import UpdateContext
from airlock.models.events import AssetRequestEvent, ManifestRequestEvent
from airlock.models.resolution import Block, Keep, OverrideHook
from airlock.models.updates import DEFAULT_CHANNEL, Platform, StoredUpdate
from airlock.protocol.encoder import (
    Directive,
    EncodedResponse,
    directive_bytes,
    encode_directive,
    encode_manifest,
    encode_no_update,
    manifest_bytes,
)
from airlock.storage.base import StorageAdapter

logger = logging.getLogger(__name__)

# Header names, checked in order; the query parameter is the fallback.
PLATFORM_HEADER = "expo-platform"
RUNTIME_VERSION_HEADER = "expo-runtime-version"
CHANNEL_HEADER = "expo-channel-name"
CURRENT_UPDATE_HEADER = "expo-current-update-id"
DEVICE_ID_HEADERS = ("expo-eas-client-id", "eas-client-id")


class ManifestRequest(BaseModel):
    """The fields of an incoming manifest request the engine acts on."""

    model_config = ConfigDict(frozen=True)

    platform: str | None = None
    runtime_version: str | None = None
    channel: str = DEFAULT_CHANNEL
    current_update_id: str | None = None
    device_id: str = ANONYMOUS_DEVICE_ID
    headers: dict[str, str] = {}

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        query: Mapping[str, str] | None = None,
    ) -> ManifestRequest:
        """Build a request from HTTP headers, falling back to query parameters."""
        lowered = {k.lower(): v for k, v in headers.items()}
        query = query or {}
        device_id = next(
            (lowered[h] for h in DEVICE_ID_HEADERS if lowered.get(h)),
            ANONYMOUS_DEVICE_ID,
        )
        return cls(
            platform=lowered.get(PLATFORM_HEADER) or query.get("platform"),
            runtime_version=lowered.get(RUNTIME_VERSION_HEADER)
            or query.get("runtimeVersion"),
            channel=lowered.get(CHANNEL_HEADER) or query.get("channel") or DEFAULT_CHANNEL,
            current_update_id=lowered.get(CURRENT_UPDATE_HEADER) or None,
            device_id=device_id,
            headers=lowered,
        )

    def to_context(self) -> UpdateContext:
        """Validate the identity fields and build the request context."""
        if not self.platform or not self.runtime_version:
            raise ValidationError(
                f"Missing {PLATFORM_HEADER} or {RUNTIME_VERSION_HEADER}"
            )
        try:
            platform = Platform(self.platform.lower())
        except ValueError:
            raise ValidationError(
                f"Unsupported platform {self.platform!r}; expected 'ios' or 'android'"
            ) from None
        return UpdateContext(
            channel=self.channel,
            runtime_version=self.runtime_version,
            platform=platform,
            headers=self.headers,
            current_update_id=self.current_update_id,
        )


class ResolutionEngine:
    """Stateless per request; safe to share across concurrent requests.

    Parameters
    ----------
    adapter:
        Any ``StorageAdapter``.
    dispatcher:
        Receives one event per resolved request.
    hook:
        Optional override hook returning ``Keep`` or ``Block``.
    signer:
        When set, every served manifest and directive is signed.
    certificate_chain:
        PEM text served as a ``certificate_chain`` part.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        dispatcher: EventDispatcher,
        *,
        hook: OverrideHook | None = None,
        signer: ManifestSigner | None = None,
        certificate_chain: str | None = None,
    ) -> None:
        self._adapter = adapter
        self._dispatcher = dispatcher
        self._hook = hook
        self._signer = signer
        self._certificate_chain = certificate_chain

    async def resolve_manifest(self, request: ManifestRequest) -> EncodedResponse:
        """Resolve *request* to a 204 or 200 response.

        Raises
        ------
        ValidationError
            Platform or runtime version missing or unsupported.
        SigningError
            A signer is configured and signing failed.
        AdapterError
            The storage backend failed.
        """
        ctx = request.to_context()

        update = await self._adapter.get_latest(ctx.key)
        if update is None:
            return self._not_served(ctx, "no update published")

        if ctx.current_update_id and ctx.current_update_id == update.update_id:
            return self._not_served(ctx, "client already current")

        if update.rollout_percentage < 100 and not is_in_rollout(
            request.device_id, update.update_id, update.rollout_percentage
        ):
            return self._not_served(ctx, "device outside rollout")

        resolved = await self._apply_hook(update, ctx)
        if resolved is None:
            return self._not_served(ctx, "blocked by override hook")

        if resolved.critical:
            resolved = resolved.with_critical_marker()

        signature = None
        if self._signer is not None:
            signature = self._signer.signature_header(manifest_bytes(resolved.manifest))

        response = encode_manifest(
            resolved.manifest,
            signature=signature,
            certificate_chain=self._certificate_chain,
        )
        logger.debug("Serving %s to %s", resolved.update_id, ctx.key.storage_key)
        self._dispatcher.emit(
            ManifestRequestEvent(context=ctx, served=True, update_id=resolved.update_id)
        )
        return response

    async def _apply_hook(
        self, update: StoredUpdate, ctx: UpdateContext
    ) -> StoredUpdate | None:
        if self._hook is None:
            return update
        result = self._hook(update, ctx)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Block):
            if result.reason:
                logger.debug("Override hook blocked %s: %s", update.update_id, result.reason)
            return None
        if isinstance(result, Keep):
            return result.update
        raise TypeError(
            f"Override hook must return Keep or Block, got {type(result).__name__}"
        )

    def _not_served(self, ctx: UpdateContext, reason: str) -> EncodedResponse:
        logger.debug("No update for %s: %s", ctx.key.storage_key, reason)
        self._dispatcher.emit(ManifestRequestEvent(context=ctx, served=False))
        return encode_no_update()

    def render_directive(self, directive: Directive) -> EncodedResponse:
        """Render an operator-forced directive, signed when a signer is set."""
        signature = None
        if self._signer is not None:
            signature = self._signer.signature_header(directive_bytes(directive))
        return encode_directive(directive, signature=signature)

    async def resolve_asset(self, hash: str) -> str | None:
        """Location of asset *hash*, or ``None``.  Emits one ``asset_request`` event."""
        url = await self._adapter.resolve_asset_url(hash)
        self._dispatcher.emit(AssetRequestEvent(hash=hash, found=url is not None))
        return url
