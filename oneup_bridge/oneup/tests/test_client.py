"""Tests for the 1up / destination HTTP client (httpx MockTransport)."""

from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from oneup_bridge.oneup.base import AuthError, FetchError, WriteError
from oneup_bridge.oneup.client import ResourceClient
from oneup_bridge.oneup.tests.conftest import BASE_URL, DESTINATION_URL


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> ResourceClient:
    return ResourceClient(
        base_url=BASE_URL,
        client_id="client-1",
        client_secret="secret-1",
        destination_url=DESTINATION_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestUserManagement:
    @pytest.mark.asyncio
    async def test_create_user_returns_code(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True, "code": "code-1"})

        code = await _client(handler).create_user("owner-1")

        assert code == "code-1"
        assert str(requests[0].url) == f"{BASE_URL}/user-management/v1/user"
        assert json.loads(requests[0].content) == {
            "client_id": "client-1",
            "client_secret": "secret-1",
            "app_user_id": "owner-1",
        }

    @pytest.mark.asyncio
    async def test_create_existing_user_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"success": False, "error": "this user already exists"})

        assert await _client(handler).create_user("owner-1") is None

    @pytest.mark.asyncio
    async def test_request_auth_code(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/user-management/v1/user/auth-code"
            return httpx.Response(200, json={"success": True, "code": "code-2"})

        assert await _client(handler).request_auth_code("owner-1") == "code-2"

    @pytest.mark.asyncio
    async def test_request_auth_code_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid client"})

        with pytest.raises(AuthError) as excinfo:
            await _client(handler).request_auth_code("owner-1")
        assert excinfo.value.status_code == 401


class TestTokenEndpoint:
    @pytest.mark.asyncio
    async def test_exchange_code(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"access_token": "a1", "refresh_token": "r1"})

        tokens = await _client(handler).exchange_code("code-1")

        assert tokens.access_token == "a1"
        assert tokens.refresh_token == "r1"
        assert bodies[0]["grant_type"] == "authorization_code"
        assert bodies[0]["code"] == "code-1"

    @pytest.mark.asyncio
    async def test_refresh_keeps_old_refresh_token_when_not_rotated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["grant_type"] == "refresh_token"
            assert body["refresh_token"] == "r1"
            return httpx.Response(200, json={"access_token": "a2"})

        tokens = await _client(handler).refresh_tokens("r1")

        assert tokens.access_token == "a2"
        assert tokens.refresh_token == "r1"

    @pytest.mark.asyncio
    async def test_refresh_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(AuthError, match="HTTP 400"):
            await _client(handler).refresh_tokens("r1")

    @pytest.mark.asyncio
    async def test_token_response_without_access_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"refresh_token": "r1"})

        with pytest.raises(AuthError, match="access_token"):
            await _client(handler).exchange_code("code-1")

    @pytest.mark.asyncio
    async def test_transport_error_is_auth_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AuthError):
            await _client(handler).exchange_code("code-1")


class TestFhirReads:
    @pytest.mark.asyncio
    async def test_get_bundle_sends_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"resourceType": "Bundle", "entry": []})

        client = _client(handler)
        bundle = await client.get_bundle(client.first_page_url("Patient"), "a1")

        assert bundle == {"resourceType": "Bundle", "entry": []}
        assert str(seen[0].url) == f"{BASE_URL}/fhir/dstu2/Patient"
        assert seen[0].headers["Authorization"] == "Bearer a1"

    @pytest.mark.asyncio
    async def test_get_resource_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        with pytest.raises(FetchError) as excinfo:
            await _client(handler).get_resource(f"{BASE_URL}/fhir/dstu2/Patient/p1", "a1")
        assert excinfo.value.status_code == 503

    @pytest.mark.asyncio
    async def test_get_invalid_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(FetchError, match="invalid JSON"):
            await _client(handler).get_bundle(f"{BASE_URL}/fhir/dstu2/Patient", "a1")

    def test_resolve_relative_and_absolute_links(self) -> None:
        client = _client(lambda request: httpx.Response(200))
        assert client.resolve("/fhir/dstu2/Patient?page=2") == f"{BASE_URL}/fhir/dstu2/Patient?page=2"
        assert client.resolve("https://other.test/next") == "https://other.test/next"


class TestDestinationWrites:
    @pytest.mark.asyncio
    async def test_put_resource(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        body = {"resourceType": "Patient", "id": "p1"}
        await _client(handler).put_resource("Patient", "p1", body)

        assert seen[0].method == "PUT"
        assert str(seen[0].url) == f"{DESTINATION_URL}/Patient/p1"
        assert json.loads(seen[0].content) == body

    @pytest.mark.asyncio
    async def test_put_resource_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"resourceType": "OperationOutcome"})

        with pytest.raises(WriteError) as excinfo:
            await _client(handler).put_resource("Patient", "p1", {})
        assert excinfo.value.status_code == 422
