"""Server configuration — env-driven via pydantic-settings.

Reads from a .env file and AIRLOCK_* environment variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class AirlockSettings(BaseSettings):
    """Server configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export AIRLOCK_ADMIN_TOKEN=s3cret
        export AIRLOCK_STORAGE_BACKEND=sqlite
        export AIRLOCK_SIGNING_KEY=<64 hex chars>

    Or via .env file::

        AIRLOCK_ENVIRONMENT=production
        AIRLOCK_PUBLIC_URL=https://updates.example.com

    Leaving ``admin_token`` empty leaves the ``/admin`` routes open.  That
    is the development default; the production guard refuses it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AIRLOCK_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # HTTP
    host: str = "0.0.0.0"
    port: int = 8787
    public_url: str = ""  # prefix for asset URLs, e.g. https://updates.example.com

    # Storage
    storage_backend: Literal["memory", "sqlite"] = "memory"
    database_path: Path = Path(".airlock/updates.db")
    asset_dir: Path = Path(".airlock/assets")
    history_limit: int = 50
    default_list_limit: int = 20

    # Admin
    admin_token: str = ""

    # Code signing
    signing_key: str = ""  # hex Ed25519 seed
    signing_key_id: str = "main"
    certificate_chain_path: Path | None = None

    # Observability
    event_log_path: Path | None = None  # JSONL event log, disabled when unset

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"

    @property
    def asset_base_url(self) -> str:
        """Base URL under which stored asset bytes are served."""
        return f"{self.public_url.rstrip('/')}/blobs"

    def load_certificate_chain(self) -> str | None:
        """Read the PEM certificate chain, if one is configured."""
        if self.certificate_chain_path is None:
            return None
        return self.certificate_chain_path.read_text(encoding="utf-8")
