"""1up Health bridge - FastAPI application entry point.

Run locally:
    uvicorn oneup_bridge.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from oneup_bridge.config import Settings, get_settings
from oneup_bridge.context import BridgeContext
from oneup_bridge.oneup.base import BridgeError
from oneup_bridge.routers import health, sync

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("oneup_bridge")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.  A failed handshake aborts startup."""
    settings: Settings = app.state.settings
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)

    bridge = BridgeContext.from_settings(settings)
    app.state.bridge = bridge
    try:
        await bridge.startup()
        yield
    finally:
        await bridge.shutdown()
        logger.info("%s shut down", settings.app_name)


# ---------- Error forwarding ----------

async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"status": "error", "detail": str(exc)})


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Mirrors 1up Health FHIR resources into the destination FHIR store.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_exception_handler(BridgeError, bridge_error_handler)

    app.include_router(health.router)
    app.include_router(sync.router)

    return app


app = create_app()


def run() -> None:
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
