"""Sync trigger endpoints.

``GET /sync-data`` waits for the run to finish; ``POST /sync-data`` returns
immediately.  Either way the outcome of the run is only visible through the
status record.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter

from oneup_bridge.dependencies import Bridge

router = APIRouter(tags=["sync"])
logger = logging.getLogger("oneup_bridge.routers.sync")


@router.get("/sync-data")
async def sync_and_wait(bridge: Bridge) -> dict:
    task = bridge.engine.trigger()
    # Shield so a disconnecting client does not cancel a run others may have joined.
    await asyncio.shield(task)
    return {"status": "success"}


@router.post("/sync-data")
async def sync_in_background(bridge: Bridge) -> dict:
    bridge.engine.trigger()
    logger.info("Sync triggered in background")
    return {"status": "success"}
