"""Error taxonomy.

Each error carries the HTTP status the server maps it to.  None of them
is retried; each is fatal for the request that raised it only.
"""

from __future__ import annotations


class AirlockError(RuntimeError):
    """Base class for every error the engine or admin API raises."""

    status_code: int = 500


class ValidationError(AirlockError):
    """Missing or malformed request fields.  Raised before storage is touched."""

    status_code = 400


class AuthError(AirlockError):
    """Missing or incorrect admin bearer token."""

    status_code = 401


class NotFoundError(AirlockError):
    """A promote/rollback precondition is unmet.  Nothing was written."""

    status_code = 404


class AdapterError(AirlockError):
    """The storage backend failed."""

    status_code = 502


class SigningError(AirlockError):
    """Signing was requested but the key is unusable or the signing call failed.

    A response that required a signature is never served unsigned.
    """

    status_code = 500
