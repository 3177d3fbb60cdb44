"""Status notifier: one upserted status record per (service, dependency)."""

from __future__ import annotations

import logging

from oneup_bridge.oneup.base import NotifyError, StateStoreError, StatusRecord, SyncStatus
from oneup_bridge.services.state_store import StateStoreClient, record_id_of

logger = logging.getLogger("oneup_bridge.status")

STATUS_SERVICE = "status"


class StatusNotifier:
    """Publish progress to the state store's ``status`` service.

    Each call looks the record up by (service, dependency) and patches it in
    place, creating it only when absent.  Failures are raised as
    ``NotifyError``; there is no retry.
    """

    def __init__(
        self,
        store: StateStoreClient,
        service: str,
        dependency: str,
    ) -> None:
        self._store = store
        self.service = service
        self.dependency = dependency

    async def notify(
        self,
        status: SyncStatus,
        description: str = "",
        error: str = "",
        dependency: str | None = None,
        service: str | None = None,
    ) -> StatusRecord:
        record = StatusRecord(
            service=service or self.service,
            dependency=dependency or self.dependency,
            status=status,
            description=description,
            error=error,
        )
        logger.info(
            "Status %s/%s → %s: %s",
            record.service,
            record.dependency,
            record.status.value,
            record.error or record.description,
        )

        try:
            existing = await self._store.find(
                STATUS_SERVICE,
                {"service": record.service, "dependency": record.dependency},
            )
            if existing:
                await self._store.patch(
                    STATUS_SERVICE, record.fields(), record_id=record_id_of(existing[0])
                )
            else:
                await self._store.create(STATUS_SERVICE, record.to_json())
        except (StateStoreError, KeyError) as exc:
            raise NotifyError(f"Could not publish status {record.status.value}: {exc}") from exc

        return record
