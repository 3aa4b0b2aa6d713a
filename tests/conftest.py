"""Shared test fixtures for Airlock."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from airlock.config import AirlockSettings
from airlock.events.dispatcher import EventDispatcher
from airlock.models.events import AirlockEvent
from airlock.models.updates import DeploymentKey, Manifest, Platform, StoredUpdate
from airlock.server.app import create_app
from airlock.storage.memory import MemoryAdapter
from airlock.storage.sqlite import SQLiteAdapter


class RecordingSink:
    """A sink that keeps every event it receives."""

    def __init__(self, name: str = "recording") -> None:
        self._name = name
        self.received: list[AirlockEvent] = []

    @property
    def sink_name(self) -> str:
        return self._name

    def accept(self, event: AirlockEvent) -> None:
        self.received.append(event)

    def of_type(self, kind: str) -> list[AirlockEvent]:
        return [e for e in self.received if e.type.value == kind]


@pytest.fixture
def ios_key() -> DeploymentKey:
    """The (default, 1.0.0, ios) deployment key."""
    return DeploymentKey(channel="default", runtime_version="1.0.0", platform=Platform.IOS)


@pytest.fixture
def make_manifest() -> Callable[..., Manifest]:
    """Factory fixture: build a Manifest with sensible defaults."""

    def _factory(update_id: str = "update-1", **overrides: Any) -> Manifest:
        defaults: dict[str, Any] = {
            "id": update_id,
            "createdAt": "2025-01-01T00:00:00Z",
            "runtimeVersion": "1.0.0",
            "launchAsset": {
                "hash": "abc123",
                "key": "bundle",
                "contentType": "application/javascript",
                "fileExtension": ".js",
                "url": "https://cdn.example.com/bundle.js",
            },
            "assets": [],
            "metadata": {},
            "extra": {},
        }
        defaults.update(overrides)
        return Manifest.model_validate(defaults)

    return _factory


@pytest.fixture
def make_update(make_manifest: Callable[..., Manifest]) -> Callable[..., StoredUpdate]:
    """Factory fixture: build a StoredUpdate with sensible defaults."""

    def _factory(update_id: str = "update-1", **overrides: Any) -> StoredUpdate:
        defaults: dict[str, Any] = {
            "manifest": make_manifest(update_id),
            "rollout_percentage": 100,
            "created_at": "2025-01-01T00:00:00Z",
            "updated_at": "2025-01-01T00:00:00Z",
        }
        defaults.update(overrides)
        return StoredUpdate(**defaults)

    return _factory


@pytest.fixture
def memory_adapter() -> MemoryAdapter:
    """Provide a fresh in-memory adapter."""
    return MemoryAdapter()


@pytest.fixture
def sqlite_adapter(tmp_path: Path) -> SQLiteAdapter:
    """Provide a fresh SQLiteAdapter in a temp directory."""
    return SQLiteAdapter(tmp_path / "updates.db", tmp_path / "assets")


@pytest.fixture(params=["memory", "sqlite"])
def adapter(request: pytest.FixtureRequest, tmp_path: Path) -> Any:
    """Each storage backend in turn — contract tests run against both."""
    if request.param == "memory":
        return MemoryAdapter()
    return SQLiteAdapter(tmp_path / "updates.db", tmp_path / "assets")


@pytest.fixture
def make_recording_sink() -> Callable[..., RecordingSink]:
    """Factory fixture: independent RecordingSink instances."""
    return RecordingSink


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def dispatcher(recording_sink: RecordingSink) -> EventDispatcher:
    """An EventDispatcher with a RecordingSink registered."""
    d = EventDispatcher()
    d.register_sink(recording_sink)
    return d


@pytest.fixture
def settings() -> AirlockSettings:
    """Development settings that ignore any local .env file."""
    return AirlockSettings(_env_file=None)


@pytest.fixture
def make_client(
    settings: AirlockSettings, memory_adapter: MemoryAdapter
) -> Callable[..., TestClient]:
    """Factory fixture: a TestClient over ``create_app`` with overrides."""

    def _factory(**kwargs: Any) -> TestClient:
        app_settings = kwargs.pop("settings", settings)
        kwargs.setdefault("adapter", memory_adapter)
        return TestClient(create_app(app_settings, **kwargs))

    return _factory


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    """A TestClient over an open-admin app backed by ``memory_adapter``."""
    return make_client()
