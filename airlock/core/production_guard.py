"""Production configuration guard — enforces hard constraints in production.

The guard runs once at application construction and fails hard (raises
``ProductionConfigError``) if the configuration is unsafe to serve real
clients.  Outside production it does nothing, so the open-admin
development default keeps working.
"""

from __future__ import annotations

import logging

from airlock.config import AirlockSettings

logger = logging.getLogger(__name__)


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The process should exit; this is not an error to catch and ignore.
    """


def enforce_production_constraints(settings: AirlockSettings) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. An admin token must be configured (no open ``/admin`` routes).
    3. The storage backend must be durable (not ``memory``).

    Raises
    ------
    ProductionConfigError
        Listing every violated constraint at once.
    """
    if not settings.is_production:
        return

    violations: list[str] = []

    if settings.debug:
        violations.append(
            "debug=True is not allowed in production. Set AIRLOCK_DEBUG=false."
        )

    if not settings.admin_token:
        violations.append(
            "An admin token is required in production. Set AIRLOCK_ADMIN_TOKEN."
        )

    if settings.storage_backend == "memory":
        violations.append(
            "The memory storage backend loses all updates on restart. "
            "Set AIRLOCK_STORAGE_BACKEND=sqlite."
        )

    if violations:
        msg = "Production configuration guard failed.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")
