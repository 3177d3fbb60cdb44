"""Shared types for the 1up Health bridge.

Credentials, status records, sync bookkeeping and the error hierarchy used
by the credential manager, status notifier and sync engine.  These types
are the only values that cross component boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class BridgeError(Exception):
    """Base class for every failure raised by the bridge.

    Attributes:
        status_code: HTTP status of the failed call, if there was a response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(BridgeError):
    """OAuth2 handshake, refresh or token acquisition failed."""


class FetchError(BridgeError):
    """A GET against the source aggregator failed."""


class WriteError(BridgeError):
    """A PUT against the destination FHIR store failed."""


class StateStoreError(BridgeError):
    """A find/create/patch against the state store failed."""


class NotifyError(StateStoreError):
    """Publishing a status record failed."""


# ---------------------------------------------------------------------------
# OAuth / credentials
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OAuthTokens:
    """Token pair returned by the 1up token endpoint.

    Attributes:
        access_token:  Bearer token for API calls.
        refresh_token: Token used to obtain the next pair.
    """

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenSnapshot:
    """Read-only view of the live credential handed to consumers."""

    base_url: str
    access_token: str
    version: int = 0


@dataclass
class Credential:
    """The single live 1up credential.

    Owned by ``CredentialManager``.  ``access_token`` and ``refresh_token``
    are replaced together on every install and ``version`` is bumped, so
    a reader never sees a half-updated pair.

    Attributes:
        base_url:      1up API base URL.
        client_id:     OAuth2 client ID.
        client_secret: OAuth2 client secret.
        access_token:  Current bearer token, None until the handshake completes.
        refresh_token: Current refresh token.
        version:       Number of token pairs installed so far.
    """

    base_url: str
    client_id: str
    client_secret: str = field(repr=False)
    access_token: str | None = field(default=None, repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    version: int = 0

    @property
    def is_ready(self) -> bool:
        return bool(self.access_token)

    def snapshot(self) -> TokenSnapshot:
        if not self.access_token:
            raise AuthError("No access token has been obtained yet")
        return TokenSnapshot(
            base_url=self.base_url,
            access_token=self.access_token,
            version=self.version,
        )


# ---------------------------------------------------------------------------
# Status records
# ---------------------------------------------------------------------------


class SyncStatus(str, Enum):
    AVAILABLE = "Available"
    IN_PROGRESS = "InProgress"
    COMPLETE = "Complete"
    INCOMPLETE = "Incomplete"


@dataclass
class StatusRecord:
    """Health/progress record, unique per (service, dependency).

    Attributes:
        service:     Name of the reporting service.
        dependency:  External system whose state is being reported.
        status:      Current status.
        description: Human-readable progress message.
        error:       Error message, empty when healthy.
    """

    service: str
    dependency: str
    status: SyncStatus
    description: str = ""
    error: str = ""

    def fields(self) -> dict:
        """Mutable fields written on update."""
        return {
            "status": self.status.value,
            "description": self.description,
            "error": self.error,
        }

    def to_json(self) -> dict:
        return {"service": self.service, "dependency": self.dependency, **self.fields()}


# ---------------------------------------------------------------------------
# Sync bookkeeping
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncJob:
    """Bookkeeping for one sync run.  Discarded when the run finishes.

    Attributes:
        resource_counts: resourceType → number of bundle entries seen.
        failed_entries:  Number of entries skipped because fetch/write failed.
        started_at:      UTC start timestamp.
        finished_at:     UTC end timestamp, None while running.
    """

    resource_counts: dict[str, int] = field(default_factory=dict)
    failed_entries: int = 0
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    def add_entries(self, resource_type: str, count: int) -> None:
        self.resource_counts[resource_type] = (
            self.resource_counts.get(resource_type, 0) + count
        )

    @property
    def total(self) -> int:
        return sum(self.resource_counts.values())

    def finish(self) -> None:
        self.finished_at = _utcnow()

    def summary(self) -> str:
        """Description used for the Complete status."""
        breakdown = ", ".join(
            f"{resource_type}: {count}"
            for resource_type, count in self.resource_counts.items()
        )
        text = f"Data sync complete. {self.total} records synced"
        if breakdown:
            text += f" ({breakdown})"
        if self.failed_entries:
            text += f"; {self.failed_entries} records skipped"
        return text
