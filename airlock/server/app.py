"""FastAPI application — the HTTP surface over the engine and admin API.

Public routes:
- GET /manifest              -> 400 / 204 / 200 multipart manifest
- GET /assets/{hash}         -> 302 to the asset location, or 404
- GET /blobs/{hash}          -> asset bytes held by the storage backend
- GET /directives/{kind}     -> operator-forced directive response
- GET /health

Admin routes (bearer token when configured):
- POST /admin/publish, /admin/promote, /admin/rollout, /admin/rollback
- GET  /admin/updates, /admin/channels

Usage:
    uvicorn airlock.server.app:create_app --factory
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse, Response

from airlock import __version__
from airlock.config import AirlockSettings
from airlock.core.errors import AirlockError
from airlock.core.production_guard import enforce_production_constraints
from airlock.core.signing import ManifestSigner
from airlock.engine.admin import (
    AdminService,
    PromoteRequest,
    PublishRequest,
    RollbackRequest,
    RolloutRequest,
)
from airlock.engine.resolver import ManifestRequest, ResolutionEngine
from airlock.events.dispatcher import EventDispatcher
from airlock.events.sinks import CallbackSink, JsonlFileSink, LoggingSink
from airlock.models.events import AirlockEvent
from airlock.models.resolution import OverrideHook
from airlock.protocol.encoder import (
    EncodedResponse,
    NoUpdateAvailableDirective,
    RollBackToEmbeddedDirective,
)
from airlock.storage import AssetReader, StorageAdapter, build_adapter

logger = logging.getLogger(__name__)

EventCallback = Callable[[AirlockEvent], Union[None, Awaitable[None]]]


def _to_response(encoded: EncodedResponse) -> Response:
    return Response(
        content=encoded.body,
        status_code=encoded.status,
        headers=encoded.headers,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def build_dispatcher(
    settings: AirlockSettings, on_event: EventCallback | None = None
) -> EventDispatcher:
    """Dispatcher with the sinks the settings ask for."""
    dispatcher = EventDispatcher()
    dispatcher.register_sink(LoggingSink(level=logging.DEBUG))
    if settings.event_log_path is not None:
        dispatcher.register_sink(JsonlFileSink(settings.event_log_path))
    if on_event is not None:
        dispatcher.register_sink(CallbackSink(on_event, name="on_event"))
    return dispatcher


def create_app(
    settings: AirlockSettings | None = None,
    *,
    adapter: StorageAdapter | None = None,
    dispatcher: EventDispatcher | None = None,
    hook: OverrideHook | None = None,
    on_event: EventCallback | None = None,
) -> FastAPI:
    """Build the application.

    Parameters
    ----------
    settings:
        Defaults to ``AirlockSettings()`` (environment + .env).
    adapter:
        Storage backend; built from *settings* when omitted.
    dispatcher:
        Event dispatcher; built from *settings* when omitted.
    hook:
        Optional override hook consulted before serving a manifest.
    on_event:
        Optional callback registered as an extra event sink.

    Raises
    ------
    ProductionConfigError
        Production mode with an unsafe configuration.
    SigningError
        A signing key is configured but cannot be loaded.
    """
    settings = settings or AirlockSettings()
    enforce_production_constraints(settings)

    adapter = adapter if adapter is not None else build_adapter(settings)
    if dispatcher is None:
        dispatcher = build_dispatcher(settings, on_event)
    elif on_event is not None:
        dispatcher.register_sink(CallbackSink(on_event, name="on_event"))

    signer = (
        ManifestSigner(settings.signing_key, key_id=settings.signing_key_id)
        if settings.signing_key
        else None
    )
    engine = ResolutionEngine(
        adapter,
        dispatcher,
        hook=hook,
        signer=signer,
        certificate_chain=settings.load_certificate_chain(),
    )
    admin = AdminService(
        adapter,
        dispatcher,
        admin_token=settings.admin_token,
        default_list_limit=settings.default_list_limit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Airlock %s starting (environment=%s, storage=%s, signing=%s)",
            __version__,
            settings.environment,
            type(adapter).__name__,
            "on" if signer else "off",
        )
        yield
        await dispatcher.drain()

    app = FastAPI(
        title="Airlock",
        version=__version__,
        description="Over-the-air update server",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.adapter = adapter
    app.state.dispatcher = dispatcher
    app.state.engine = engine
    app.state.admin = admin

    @app.exception_handler(AirlockError)
    async def _airlock_error(request: Request, exc: AirlockError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error(exc.status_code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error(400, f"Invalid request: {details}")

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    @app.get("/manifest")
    async def manifest(request: Request) -> Response:
        manifest_request = ManifestRequest.from_headers(
            request.headers, request.query_params
        )
        return _to_response(await engine.resolve_manifest(manifest_request))

    @app.get("/assets/{hash}")
    async def asset(hash: str) -> Response:
        url = await engine.resolve_asset(hash)
        if url is None:
            return _error(404, "Asset not found")
        return RedirectResponse(url, status_code=302)

    @app.get("/blobs/{hash}")
    async def blob(hash: str) -> Response:
        stored = None
        if isinstance(adapter, AssetReader):
            stored = await adapter.get_asset(hash)
        if stored is None:
            return _error(404, "Asset not found")
        return Response(
            content=stored.data,
            media_type=stored.content_type,
            headers={"cache-control": "public, max-age=31536000, immutable"},
        )

    @app.get("/directives/{kind}")
    async def directive(kind: str) -> Response:
        if kind == "rollBackToEmbedded":
            return _to_response(engine.render_directive(RollBackToEmbeddedDirective()))
        if kind == "noUpdateAvailable":
            return _to_response(engine.render_directive(NoUpdateAvailableDirective()))
        return _error(404, f"Unknown directive {kind!r}")

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
        admin.authorize(authorization)

    router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])

    @router.post("/publish")
    async def publish(body: PublishRequest) -> dict[str, Any]:
        update_id = await admin.publish(body)
        return {"ok": True, "updateId": update_id}

    @router.post("/promote")
    async def promote(body: PromoteRequest) -> dict[str, Any]:
        update_id = await admin.promote(body)
        return {"ok": True, "updateId": update_id}

    @router.post("/rollout")
    async def rollout(body: RolloutRequest) -> dict[str, Any]:
        await admin.set_rollout(body)
        return {"ok": True}

    @router.post("/rollback")
    async def rollback(body: RollbackRequest) -> dict[str, Any]:
        active_id = await admin.rollback(body)
        return {"ok": True, "activeUpdateId": active_id}

    @router.get("/updates")
    async def updates(
        runtimeVersion: Optional[str] = None,
        platform: Optional[str] = None,
        channel: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> dict[str, Any]:
        history = await admin.list_updates(
            runtime_version=runtimeVersion,
            platform=platform,
            channel=channel,
            limit=limit,
        )
        return {"updates": [u.to_wire() for u in history]}

    @router.get("/channels")
    async def channels() -> dict[str, Any]:
        entries = await admin.list_channels()
        return {
            "channels": [
                {
                    "channel": key.channel,
                    "runtimeVersion": key.runtime_version,
                    "platform": key.platform.value,
                    "update": update.to_wire(),
                }
                for key, update in entries
            ]
        }

    app.include_router(router)
    return app
