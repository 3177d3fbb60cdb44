"""1up credential lifecycle.

Owns the single live ``Credential``:

1. ``bootstrap()`` finds the owner record, runs the OAuth2 handshake and
   starts the background refresh loop.
2. ``refresh_loop()`` sleeps for the configured token lifespan, then swaps
   the refresh token for a new pair, forever.  Failures are logged and the
   previous refresh token is reused on the next tick.
3. ``current_token()`` suspends callers until the first token is installed.

All writes to the credential go through ``_install()`` under a lock, so a
consumer always reads a consistent (access_token, version) pair.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from oneup_bridge.oneup.base import AuthError, Credential, OAuthTokens, TokenSnapshot
from oneup_bridge.oneup.client import ResourceClient
from oneup_bridge.services.state_store import StateStoreClient, record_id_of

logger = logging.getLogger("oneup_bridge.credentials")

USER_SERVICE = "user"
OWNER_QUERY = {"role": "owner"}


class CredentialManager:
    """Handshake, refresh and hand out the 1up access token.

    Usage::

        manager = CredentialManager(client, store, refresh_interval=7000)
        await manager.bootstrap()
        token = await manager.current_token()
    """

    def __init__(
        self,
        client: ResourceClient,
        store: StateStoreClient,
        refresh_interval: float,
        client_id: str = "",
        client_secret: str = "",
    ) -> None:
        """Initialize the manager.

        Args:
            client:           Resource client used for the OAuth2 calls.
            store:            State store where the owner's tokens are persisted.
            refresh_interval: Seconds between proactive refreshes.
            client_id:        OAuth2 client ID, stored alongside the tokens.
            client_secret:    OAuth2 client secret.
        """
        self._client = client
        self._store = store
        self._refresh_interval = refresh_interval
        self._credential = Credential(
            base_url=client.base_url,
            client_id=client_id,
            client_secret=client_secret,
        )
        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._refresh_task: asyncio.Task | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def version(self) -> int:
        return self._credential.version

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def bootstrap(self) -> Credential:
        """Handshake on behalf of the owner record and start refreshing."""
        owners = await self._store.find(USER_SERVICE, OWNER_QUERY)
        if not owners:
            raise AuthError("No owner user record found in the state store")
        credential = await self.handshake(record_id_of(owners[0]))
        self.start_refresh_loop(credential.refresh_token or "")
        return credential

    async def handshake(self, owner_id: str) -> Credential:
        """Exchange the owner's app user id for a token pair and persist it.

        Raises:
            AuthError: if either HTTP exchange fails.
        """
        logger.info("1up: starting handshake for owner %s", owner_id)
        code = await self._client.create_user(owner_id)
        if code is None:
            code = await self._client.request_auth_code(owner_id)

        tokens = await self._client.exchange_code(code)
        await self._install(tokens)
        await self._persist(tokens)
        logger.info("1up: handshake complete (credential v%d)", self.version)

        async with self._lock:
            return replace(self._credential)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def start_refresh_loop(self, refresh_token: str) -> asyncio.Task:
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(
                self.refresh_loop(refresh_token), name="oneup-token-refresh"
            )
        return self._refresh_task

    async def stop(self) -> None:
        """Cancel the refresh loop.  Only called at process shutdown."""
        if self._refresh_task is None:
            return
        self._refresh_task.cancel()
        try:
            await self._refresh_task
        except asyncio.CancelledError:
            pass
        self._refresh_task = None

    async def refresh_loop(self, refresh_token: str) -> None:
        """Refresh the token pair every ``refresh_interval`` seconds, forever."""
        while True:
            await asyncio.sleep(self._refresh_interval)
            try:
                refresh_token = await self.refresh(refresh_token)
            except Exception as exc:
                logger.error("Error refreshing 1up tokens: %s", exc)

    async def refresh(self, refresh_token: str) -> str:
        """Run one refresh and return the refresh token to use next time.

        The new pair is installed before it is persisted, so a state store
        failure still leaves the process on the new (valid) refresh token.
        """
        started_from = self.version
        tokens = await self._client.refresh_tokens(refresh_token)
        installed = await self._install(tokens, expected_version=started_from)
        if not installed:
            return refresh_token
        try:
            await self._persist(tokens)
        except Exception as exc:
            logger.error("Refreshed 1up tokens could not be persisted: %s", exc)
        logger.info("1up: tokens refreshed (credential v%d)", self.version)
        return tokens.refresh_token

    # ------------------------------------------------------------------
    # Accessor
    # ------------------------------------------------------------------

    async def current_token(self, timeout: float | None = None) -> TokenSnapshot:
        """Return a snapshot of the live token, waiting for the handshake.

        Args:
            timeout: Give up after this many seconds (None waits forever).

        Raises:
            AuthError: if ``timeout`` elapses before a token is available.
        """
        if not self._ready.is_set():
            logger.debug("Waiting for 1up credential")
            try:
                await asyncio.wait_for(self._ready.wait(), timeout)
            except asyncio.TimeoutError as exc:
                raise AuthError("Timed out waiting for a 1up access token") from exc

        async with self._lock:
            return self._credential.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _install(
        self, tokens: OAuthTokens, expected_version: int | None = None
    ) -> bool:
        async with self._lock:
            if expected_version is not None and expected_version != self._credential.version:
                logger.warning(
                    "Discarding stale 1up token refresh (started at v%d, now v%d)",
                    expected_version,
                    self._credential.version,
                )
                return False
            self._credential.access_token = tokens.access_token
            self._credential.refresh_token = tokens.refresh_token
            self._credential.version += 1
        self._ready.set()
        return True

    async def _persist(self, tokens: OAuthTokens) -> None:
        await self._store.patch(
            USER_SERVICE,
            {
                "oneUpAccessToken": tokens.access_token,
                "oneUpRefreshToken": tokens.refresh_token,
                "oneUpClientId": self._credential.client_id,
            },
            query=OWNER_QUERY,
        )
