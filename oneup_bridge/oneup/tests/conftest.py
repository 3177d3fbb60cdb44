"""Shared fixtures and fake collaborators for the 1up bridge tests."""

from __future__ import annotations

import itertools
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from oneup_bridge.oneup.base import OAuthTokens, StateStoreError, TokenSnapshot

BASE_URL = "https://api.1up.test"
DESTINATION_URL = "http://fhir.test/baseDstu2"


# ---------------------------------------------------------------------------
# Bundle builders
# ---------------------------------------------------------------------------


def make_bundle(
    resource_type: str, ids: list[str], next_url: str | None = None
) -> dict:
    """A DSTU2 searchset bundle with one entry per id."""
    bundle: dict[str, Any] = {
        "resourceType": "Bundle",
        "type": "searchset",
        "entry": [
            {
                "fullUrl": f"{BASE_URL}/fhir/dstu2/{resource_type}/{rid}",
                "resource": {"resourceType": resource_type, "id": rid},
            }
            for rid in ids
        ],
        "link": [{"relation": "self", "url": f"{BASE_URL}/fhir/dstu2/{resource_type}"}],
    }
    if next_url:
        bundle["link"].append({"relation": "next", "url": next_url})
    return bundle


def first_page(resource_type: str) -> str:
    return f"{BASE_URL}/fhir/dstu2/{resource_type}"


def resource_from_url(url: str, access_token: str) -> dict:
    resource_type, rid = url.rstrip("/").split("/")[-2:]
    return {"resourceType": resource_type, "id": rid, "meta": {"source": "1up"}}


# ---------------------------------------------------------------------------
# In-memory state store
# ---------------------------------------------------------------------------


class FakeStateStore:
    """Dict-backed stand-in for StateStoreClient with the same find/create/patch surface."""

    def __init__(self) -> None:
        self.records: dict[str, list[dict]] = {}
        self._ids = itertools.count(1)
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise StateStoreError("state store unavailable", status_code=503)

    @staticmethod
    def _matches(record: dict, query: dict | None) -> bool:
        return all(record.get(k) == v for k, v in (query or {}).items())

    async def find(self, service: str, query: dict | None = None) -> list[dict]:
        self._check()
        return [dict(r) for r in self.records.get(service, []) if self._matches(r, query)]

    async def create(self, service: str, record: dict) -> dict:
        self._check()
        stored = {"id": str(next(self._ids)), **record}
        self.records.setdefault(service, []).append(stored)
        return dict(stored)

    async def patch(
        self,
        service: str,
        fields: dict,
        record_id: str | None = None,
        query: dict | None = None,
    ) -> list[dict]:
        self._check()
        patched = []
        for record in self.records.get(service, []):
            if record_id is not None and record["id"] != record_id:
                continue
            if self._matches(record, query):
                record.update(fields)
                patched.append(dict(record))
        return patched


@pytest.fixture
def state_store() -> FakeStateStore:
    store = FakeStateStore()
    store.records["user"] = [{"id": "owner-1", "role": "owner"}]
    return store


# ---------------------------------------------------------------------------
# Mock collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def tokens() -> OAuthTokens:
    return OAuthTokens(access_token="access-1", refresh_token="refresh-1")


@pytest.fixture
def mock_client(tokens: OAuthTokens) -> MagicMock:
    """Mock ResourceClient; URL helpers behave like the real ones."""
    client = MagicMock()
    client.base_url = BASE_URL
    client.first_page_url = MagicMock(side_effect=first_page)
    client.resolve = MagicMock(side_effect=lambda url: url)
    client.create_user = AsyncMock(return_value="code-1")
    client.request_auth_code = AsyncMock(return_value="code-existing")
    client.exchange_code = AsyncMock(return_value=tokens)
    client.refresh_tokens = AsyncMock()
    client.get_bundle = AsyncMock()
    client.get_resource = AsyncMock(side_effect=resource_from_url)
    client.put_resource = AsyncMock(return_value=None)
    return client


@pytest.fixture
def mock_credentials() -> MagicMock:
    credentials = MagicMock()
    credentials.current_token = AsyncMock(
        return_value=TokenSnapshot(base_url=BASE_URL, access_token="access-1", version=1)
    )
    return credentials


@pytest.fixture
def mock_notifier() -> MagicMock:
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    return notifier
