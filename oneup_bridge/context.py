"""Process-wide component graph for the bridge.

``BridgeContext`` is built once from ``Settings`` and owns every component.
Start-up order is fixed: state store login → credential bootstrap (handshake
and refresh loop) → Available status → optional sync-on-startup.  The sync
engine is only usable once ``startup()`` has returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from oneup_bridge.config import Settings
from oneup_bridge.oneup.base import SyncStatus
from oneup_bridge.oneup.client import ResourceClient
from oneup_bridge.oneup.credentials import CredentialManager
from oneup_bridge.oneup.status import StatusNotifier
from oneup_bridge.oneup.sync.engine import SyncEngine
from oneup_bridge.services.state_store import StateStoreClient

logger = logging.getLogger("oneup_bridge.context")


@dataclass
class BridgeContext:
    settings: Settings
    store: StateStoreClient
    client: ResourceClient
    credentials: CredentialManager
    notifier: StatusNotifier
    engine: SyncEngine

    @classmethod
    def from_settings(cls, settings: Settings) -> "BridgeContext":
        store = StateStoreClient(settings.auth_api_url)
        client = ResourceClient(
            base_url=settings.one_up_api_url,
            client_id=settings.one_up_client_id,
            client_secret=settings.one_up_client_secret,
            destination_url=settings.fhir_server_base_url,
        )
        credentials = CredentialManager(
            client,
            store,
            refresh_interval=settings.refresh_interval_seconds,
            client_id=settings.one_up_client_id,
            client_secret=settings.one_up_client_secret,
        )
        notifier = StatusNotifier(
            store,
            service=settings.status_service_name,
            dependency=settings.status_dependency,
        )
        engine = SyncEngine(
            credentials,
            client,
            notifier,
            resource_types=settings.sync_resource_types,
            max_concurrent=settings.entry_concurrency,
        )
        return cls(
            settings=settings,
            store=store,
            client=client,
            credentials=credentials,
            notifier=notifier,
            engine=engine,
        )

    async def startup(self) -> None:
        """Bring the bridge up.  Any failure here aborts process start."""
        await self.store.authenticate(
            self.settings.auth_api_username, self.settings.auth_api_password
        )
        await self.credentials.bootstrap()
        await self.notifier.notify(SyncStatus.AVAILABLE, "1up connection established")

        if self.settings.one_up_sync_on_startup:
            logger.info("Sync on startup enabled, starting initial sync")
            self.engine.trigger()

    async def shutdown(self) -> None:
        await self.engine.cancel()
        await self.credentials.stop()
        await self.client.close()
        await self.store.close()
