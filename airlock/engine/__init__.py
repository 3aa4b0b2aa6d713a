"""Request handling: manifest/asset resolution and admin mutations."""

from airlock.engine.admin import (
    AdminService,
    InlineAsset,
    PromoteRequest,
    PublishRequest,
    RollbackRequest,
    RolloutRequest,
)
from airlock.engine.resolver import ManifestRequest, ResolutionEngine

__all__ = [
    "AdminService",
    "InlineAsset",
    "ManifestRequest",
    "PromoteRequest",
    "PublishRequest",
    "ResolutionEngine",
    "RollbackRequest",
    "RolloutRequest",
]
