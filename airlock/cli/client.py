"""Thin httpx client for the admin API, used by the CLI commands.

Server URL and token come from ``AIRLOCK_SERVER`` / ``AIRLOCK_TOKEN`` or
the matching command-line options.
"""

from __future__ import annotations

from typing import Any

import httpx


class AdminClientError(RuntimeError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code


class AdminClient:
    """Calls ``/admin/*`` on a running Airlock server.

    Parameters
    ----------
    server:
        Base URL, e.g. ``https://updates.example.com``.
    token:
        Bearer token; omitted from requests when empty.
    http:
        Pre-built ``httpx.Client`` to send through (tests pass a
        ``TestClient``); *server* is ignored when given.
    """

    def __init__(
        self,
        server: str,
        token: str = "",
        *,
        http: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = http is None
        self._client = http or httpx.Client(base_url=server.rstrip("/"), timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> AdminClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = self._client.request(
            method, path, json=json, params=params, headers=self._headers
        )
        if response.is_error:
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            raise AdminClientError(response.status_code, message)
        return response.json()

    def publish(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/admin/publish", json=body)

    def promote(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/admin/promote", json=body)

    def rollout(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/admin/rollout", json=body)

    def rollback(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/admin/rollback", json=body)

    def updates(
        self, *, runtime_version: str, platform: str, channel: str, limit: int
    ) -> list[dict[str, Any]]:
        params = {
            "runtimeVersion": runtime_version,
            "platform": platform,
            "channel": channel,
            "limit": limit,
        }
        return self._request("GET", "/admin/updates", params=params)["updates"]

    def channels(self) -> list[dict[str, Any]]:
        return self._request("GET", "/admin/channels")["channels"]
