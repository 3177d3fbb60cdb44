"""1up Health integration.

Subpackages:
    sync/ - Paginated sync engine

Core modules:
    base        - Credentials, status records, sync bookkeeping, errors
    client      - HTTP client for 1up and the destination FHIR store
    credentials - OAuth2 handshake, refresh loop, token accessor
    status      - Status record upserts
"""

from oneup_bridge.oneup.base import (
    AuthError,
    BridgeError,
    Credential,
    FetchError,
    NotifyError,
    OAuthTokens,
    StateStoreError,
    StatusRecord,
    SyncJob,
    SyncStatus,
    TokenSnapshot,
    WriteError,
)

__all__ = [
    "AuthError",
    "BridgeError",
    "Credential",
    "FetchError",
    "NotifyError",
    "OAuthTokens",
    "StateStoreError",
    "StatusRecord",
    "SyncJob",
    "SyncStatus",
    "TokenSnapshot",
    "WriteError",
]
