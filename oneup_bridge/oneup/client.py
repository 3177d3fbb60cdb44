"""HTTP client for the 1up Health API and the destination FHIR store.

Endpoints used (1up):
    POST /user-management/v1/user           - create app user, returns auth code
    POST /user-management/v1/user/auth-code - auth code for an existing user
    POST /fhir/oauth2/token                 - authorization_code / refresh_token grants
    GET  /fhir/dstu2/{resourceType}         - first page of a resource bundle
    GET  {entry.fullUrl}                    - full resource

Endpoints used (destination):
    PUT  {FHIR_SERVER_BASE_URL}/{resourceType}/{id}

All httpx failures are converted into ``AuthError``, ``FetchError`` or
``WriteError`` at this boundary.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from oneup_bridge.oneup.base import AuthError, FetchError, OAuthTokens, WriteError

logger = logging.getLogger("oneup_bridge.oneup.client")


def _status_of(exc: httpx.HTTPError) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


class ResourceClient:
    """Thin async wrapper over the source aggregator and destination store.

    The client owns one ``httpx.AsyncClient`` unless one is injected (tests
    pass one backed by ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        destination_url: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.destination_url = destination_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._http_client = http_client or httpx.AsyncClient()

    async def close(self) -> None:
        await self._http_client.aclose()

    # ------------------------------------------------------------------
    # User management / OAuth2
    # ------------------------------------------------------------------

    def _client_body(self, **extra: Any) -> dict:
        return {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            **extra,
        }

    async def create_user(self, app_user_id: str) -> str | None:
        """Create the 1up user for ``app_user_id``.

        Returns:
            The authorization code, or None if the user could not be
            created (typically because it already exists).
        """
        try:
            response = await self._http_client.post(
                f"{self.base_url}/user-management/v1/user",
                json=self._client_body(app_user_id=app_user_id),
            )
            data = response.json() if response.is_success else {}
        except (httpx.HTTPError, ValueError) as exc:
            raise AuthError(f"1up user creation failed: {exc}") from exc

        if data.get("success") and data.get("code"):
            return data["code"]
        logger.debug(
            "1up user %s not created (HTTP %s), requesting auth code instead",
            app_user_id,
            response.status_code,
        )
        return None

    async def request_auth_code(self, app_user_id: str) -> str:
        """Request a fresh authorization code for an existing 1up user."""
        data = await self._post_auth(
            f"{self.base_url}/user-management/v1/user/auth-code",
            self._client_body(app_user_id=app_user_id),
            "auth code request",
        )
        code = data.get("code")
        if not code:
            raise AuthError("1up auth code response did not contain a code")
        return code

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for an access/refresh pair."""
        data = await self._post_auth(
            f"{self.base_url}/fhir/oauth2/token",
            self._client_body(grant_type="authorization_code", code=code),
            "authorization code exchange",
        )
        return self._tokens_from(data)

    async def refresh_tokens(self, refresh_token: str) -> OAuthTokens:
        """Exchange a refresh token for a new access/refresh pair."""
        data = await self._post_auth(
            f"{self.base_url}/fhir/oauth2/token",
            self._client_body(grant_type="refresh_token", refresh_token=refresh_token),
            "token refresh",
        )
        return self._tokens_from(data, fallback_refresh=refresh_token)

    async def _post_auth(self, url: str, body: dict, action: str) -> dict:
        try:
            response = await self._http_client.post(url, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise AuthError(
                f"1up {action} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise AuthError(f"1up {action} failed: {exc}") from exc

    @staticmethod
    def _tokens_from(data: dict, fallback_refresh: str | None = None) -> OAuthTokens:
        access_token = data.get("access_token")
        if not access_token:
            raise AuthError("1up token response did not contain an access_token")
        return OAuthTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or fallback_refresh or "",
        )

    # ------------------------------------------------------------------
    # FHIR reads (source)
    # ------------------------------------------------------------------

    def first_page_url(self, resource_type: str) -> str:
        return f"{self.base_url}/fhir/dstu2/{resource_type}"

    def resolve(self, url: str) -> str:
        """Resolve a possibly relative link against the 1up base URL."""
        return str(httpx.URL(f"{self.base_url}/").join(url))

    async def get_bundle(self, url: str, access_token: str) -> dict:
        """Fetch one page of a search bundle."""
        return await self._get(url, access_token)

    async def get_resource(self, url: str, access_token: str) -> dict:
        """Fetch a single full resource by its ``fullUrl``."""
        return await self._get(url, access_token)

    async def _get(self, url: str, access_token: str) -> dict:
        try:
            response = await self._http_client.get(
                url, headers={"Authorization": f"Bearer {access_token}"}
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise FetchError(
                f"GET {url} failed: {exc}", status_code=_status_of(exc)
            ) from exc
        except ValueError as exc:
            raise FetchError(f"GET {url} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise FetchError(f"GET {url} returned a non-object body")
        return data

    # ------------------------------------------------------------------
    # FHIR writes (destination)
    # ------------------------------------------------------------------

    async def put_resource(self, resource_type: str, resource_id: str, body: dict) -> None:
        """Write a resource to the destination store under its own id."""
        url = f"{self.destination_url}/{resource_type}/{resource_id}"
        try:
            response = await self._http_client.put(url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise WriteError(
                f"PUT {url} failed: {exc}", status_code=_status_of(exc)
            ) from exc
