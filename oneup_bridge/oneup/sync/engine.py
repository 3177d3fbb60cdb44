"""Paginated sync engine: mirror every configured resource type into the FHIR store.

Sync workflow for one run:
1. Publish InProgress ("Data sync started")
2. Wait for a valid 1up access token
3. For each resource type, strictly one after another:
   a. Publish InProgress ("Syncing <type> resource")
   b. Follow the bundle's "next" links page by page
   c. For each entry, GET its fullUrl and PUT it to the destination store
4. Publish Complete with the record totals

A failure on a single entry is logged and skipped.  Anything else that
escapes (page fetch, token wait, status publish) turns into an Incomplete
status and ends the run.
"""

from __future__ import annotations

import asyncio
import logging

from oneup_bridge.oneup.base import (
    FetchError,
    SyncJob,
    SyncStatus,
    TokenSnapshot,
    WriteError,
)
from oneup_bridge.oneup.client import ResourceClient
from oneup_bridge.oneup.credentials import CredentialManager
from oneup_bridge.oneup.status import StatusNotifier

logger = logging.getLogger("oneup_bridge.sync")


def next_page_url(bundle: dict) -> str | None:
    """Return the bundle's "next" link, or None on the last page.

    A missing or malformed ``link`` array means there is no next page.
    """
    links = bundle.get("link")
    if not isinstance(links, list):
        return None
    for link in links:
        if not isinstance(link, dict):
            continue
        if link.get("relation") == "next":
            url = link.get("url")
            if isinstance(url, str) and url.strip():
                return url.strip()
            return None
    return None


def bundle_entries(bundle: dict) -> list:
    """Return the bundle's raw ``entry`` array.  Malformed items are kept so
    they count toward the page total; mirroring skips them."""
    entries = bundle.get("entry")
    if not isinstance(entries, list):
        return []
    return entries


def _log_run_outcome(task: asyncio.Task) -> None:
    """Retrieve the result of a run nobody awaited so its failure is logged here."""
    if task.cancelled():
        logger.info("Sync run cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Sync run ended with an unreported failure: %r", exc)


class SyncEngine:
    """Run 1up → FHIR store sync passes.

    At most one run is in flight at a time: ``trigger()`` hands back the
    running task instead of starting a second one.

    Usage::

        engine = SyncEngine(credentials, client, notifier, ["Patient"])
        await engine.trigger()
    """

    def __init__(
        self,
        credentials: CredentialManager,
        client: ResourceClient,
        notifier: StatusNotifier,
        resource_types: list[str],
        max_concurrent: int = 5,
        token_timeout: float | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            credentials:    Source of the 1up access token.
            client:         Resource client for source reads and destination writes.
            notifier:       Status publisher.
            resource_types: Resource types to sync, in order.
            max_concurrent: Maximum entry fetch/write pairs in flight per page.
            token_timeout:  Seconds to wait for a token (None waits forever).
        """
        self._credentials = credentials
        self._client = client
        self._notifier = notifier
        self._resource_types = list(resource_types)
        self._max_concurrent = max(1, max_concurrent)
        self._token_timeout = token_timeout
        self._task: asyncio.Task | None = None
        self.last_job: SyncJob | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> asyncio.Task:
        """Start a run, or return the one already in flight."""
        if self.is_running:
            logger.info("Sync already in progress, joining the current run")
            return self._task
        self._task = asyncio.create_task(self.run(), name="oneup-sync")
        self._task.add_done_callback(_log_run_outcome)
        return self._task

    async def cancel(self) -> None:
        if not self.is_running:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def run(self) -> None:
        """Execute one full sync pass.  Failures end up in the status record."""
        job = SyncJob()
        try:
            await self._notifier.notify(SyncStatus.IN_PROGRESS, "Data sync started")
            token = await self._credentials.current_token(timeout=self._token_timeout)

            for resource_type in self._resource_types:
                await self._notifier.notify(
                    SyncStatus.IN_PROGRESS, f"Syncing {resource_type} resource"
                )
                await self._sync_resource_type(job, resource_type, token)

            job.finish()
            logger.info(
                "Sync complete: %d records across %d resource types (%d skipped)",
                job.total,
                len(job.resource_counts),
                job.failed_entries,
            )
            await self._notifier.notify(SyncStatus.COMPLETE, job.summary())
        except Exception as exc:
            job.finish()
            logger.error("Sync failed after %d records: %s", job.total, exc)
            await self._notifier.notify(
                SyncStatus.INCOMPLETE, "Data sync failed", error=str(exc) or repr(exc)
            )
        finally:
            self.last_job = job

    async def _sync_resource_type(
        self, job: SyncJob, resource_type: str, token: TokenSnapshot
    ) -> None:
        url: str | None = self._client.first_page_url(resource_type)
        page = 0
        while url:
            page += 1
            bundle = await self._client.get_bundle(url, token.access_token)
            entries = bundle_entries(bundle)
            job.add_entries(resource_type, len(entries))
            logger.debug(
                "%s page %d: %d entries", resource_type, page, len(entries)
            )

            semaphore = asyncio.Semaphore(self._max_concurrent)
            results = await asyncio.gather(
                *(
                    self._mirror_entry(resource_type, entry, token, semaphore)
                    for entry in entries
                ),
                return_exceptions=True,
            )
            for r in results:
                if isinstance(r, Exception):
                    logger.warning("Skipping %s entry: %r", resource_type, r)
            job.failed_entries += sum(1 for r in results if r is not True)

            next_url = next_page_url(bundle)
            url = self._client.resolve(next_url) if next_url else None

    async def _mirror_entry(
        self,
        resource_type: str,
        entry: object,
        token: TokenSnapshot,
        semaphore: asyncio.Semaphore,
    ) -> bool:
        """Copy one bundle entry to the destination.  Returns False if skipped."""
        async with semaphore:
            try:
                if not isinstance(entry, dict):
                    raise FetchError(f"{resource_type} entry is not an object")
                full_url = entry.get("fullUrl")
                if not isinstance(full_url, str) or not full_url:
                    raise FetchError(f"{resource_type} entry has no usable fullUrl")
                resource = await self._client.get_resource(full_url, token.access_token)

                inline = entry.get("resource")
                resource_id = resource.get("id") or (
                    inline.get("id") if isinstance(inline, dict) else None
                )
                if not resource_id:
                    raise WriteError(f"{resource_type} at {full_url} has no id")
                await self._client.put_resource(resource_type, str(resource_id), resource)
                return True
            except (FetchError, WriteError) as exc:
                logger.warning("Skipping %s entry: %s", resource_type, exc)
                return False
