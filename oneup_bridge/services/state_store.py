"""State store client for the auth API.

The auth API exposes REST services (``user``, ``status``, ...) with
find/create/patch semantics.  This bridge persists its 1up tokens on the
owner ``user`` record and publishes progress to ``status``.

Usage::

    store = StateStoreClient(settings.auth_api_url)
    await store.authenticate(settings.auth_api_username, settings.auth_api_password)
    owners = await store.find("user", {"role": "owner"})
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from oneup_bridge.oneup.base import StateStoreError

logger = logging.getLogger("oneup_bridge.state_store")


def record_id_of(record: dict) -> str:
    """Primary key of a stored record (SQL-backed services use ``id``, Mongo ``_id``)."""
    record_id = record.get("id", record.get("_id"))
    if record_id is None:
        raise KeyError("record has no id")
    return str(record_id)


class StateStoreClient:
    """Authenticated REST client for the auth API."""

    def __init__(self, base_url: str, http_client: httpx.AsyncClient | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client or httpx.AsyncClient()
        self._access_token: str | None = None

    async def close(self) -> None:
        await self._http_client.aclose()

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    async def authenticate(self, username: str, password: str) -> None:
        """Log in with the local strategy and keep the returned JWT."""
        data = await self._request(
            "POST",
            "authentication",
            json={"strategy": "local", "username": username, "password": password},
        )
        token = data.get("accessToken") if isinstance(data, dict) else None
        if not token:
            raise StateStoreError("Auth API login response did not contain an accessToken")
        self._access_token = token
        logger.info("Authenticated against auth API as %s", username)

    async def find(self, service: str, query: dict[str, Any] | None = None) -> list[dict]:
        """Return every record of ``service`` matching ``query``.

        Handles both paginated (``{"data": [...]}``) and plain list responses.
        """
        data = await self._request("GET", service, params=query or {})
        if isinstance(data, dict):
            data = data.get("data", [])
        if not isinstance(data, list):
            raise StateStoreError(f"Unexpected find response from '{service}'")
        return data

    async def create(self, service: str, record: dict[str, Any]) -> dict:
        return await self._request("POST", service, json=record)

    async def patch(
        self,
        service: str,
        fields: dict[str, Any],
        record_id: str | None = None,
        query: dict[str, Any] | None = None,
    ) -> Any:
        """Patch one record by id, or every record matching ``query``."""
        path = f"{service}/{record_id}" if record_id is not None else service
        return await self._request("PATCH", path, json=fields, params=query or {})

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        url = f"{self._base_url}/{path}"
        try:
            response = await self._http_client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise StateStoreError(
                f"{method} {url} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise StateStoreError(f"{method} {url} failed: {exc}") from exc
