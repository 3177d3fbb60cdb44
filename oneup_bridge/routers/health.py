"""Health check endpoint - public, no auth required."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from oneup_bridge.dependencies import Bridge

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(bridge: Bridge) -> dict:
    """Liveness probe.  ``degraded`` until the first 1up token is held."""
    ready = bridge.credentials.is_ready
    return {
        "status": "healthy" if ready else "degraded",
        "version": bridge.settings.app_version,
        "credential": "ready" if ready else "pending",
        "sync_running": bridge.engine.is_running,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
