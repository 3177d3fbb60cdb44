"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from oneup_bridge.context import BridgeContext


async def get_bridge(request: Request) -> BridgeContext:
    """Return the context built by the app lifespan."""
    bridge: BridgeContext | None = getattr(request.app.state, "bridge", None)
    if bridge is None:
        raise HTTPException(status_code=503, detail="Bridge not initialized")
    return bridge


# Annotated shortcuts for route signatures
Bridge = Annotated[BridgeContext, Depends(get_bridge)]
