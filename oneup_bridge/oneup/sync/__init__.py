"""Sync infrastructure for the 1up bridge.

Modules:
    engine - Paginated, per-resource-type sync engine
"""

from oneup_bridge.oneup.sync.engine import SyncEngine, bundle_entries, next_page_url

__all__ = ["SyncEngine", "bundle_entries", "next_page_url"]
