"""HTTP surface (FastAPI)."""

from airlock.server.app import build_dispatcher, create_app

__all__ = ["build_dispatcher", "create_app"]
