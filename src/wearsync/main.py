"""WearSync API — FastAPI application entry point.

Run locally:
    uvicorn wearsync.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wearsync.config import Settings, get_settings
from wearsync.middleware.auth import SupabaseAuthMiddleware
from wearsync.routers import health, integrations
from wearsync.services.database import close_pool, init_pool
from wearsync.wearables.errors import WearableError
from wearsync.wearables.service import WearableServices, build_wearable_services

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("wearsync")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.

    Services injected through ``create_app`` are used as-is; otherwise the
    DB pool and a shared HTTP client are opened here.
    """
    settings: Settings = app.state.settings
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("Starting WearSync API v%s [%s]", settings.app_version, settings.environment)

    http_client: httpx.AsyncClient | None = None
    owns_pool = getattr(app.state, "wearables", None) is None
    if owns_pool:
        await init_pool(settings)
        http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        app.state.wearables = build_wearable_services(settings, http_client=http_client)

    services: WearableServices = app.state.wearables
    services.reaper.start()
    try:
        yield
    finally:
        await services.reaper.stop()
        if http_client is not None:
            await http_client.aclose()
        if owns_pool:
            await close_pool()
        logger.info("WearSync API shut down")


# ---------- Exception handlers ----------

async def wearable_error_handler(request: Request, exc: WearableError) -> JSONResponse:
    """Render flow errors as ``{"error": message}``."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---------- App factory ----------

def create_app(
    settings: Settings | None = None,
    services: WearableServices | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="WearSync API",
        description="Wearable OAuth integrations and health data sync.",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.wearables = services

    app.add_exception_handler(WearableError, wearable_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # ---------- Middleware (last added is outermost) ----------

    # Supabase JWT authentication
    app.add_middleware(SupabaseAuthMiddleware, settings=settings)

    # CORS outermost, so preflight never reaches auth
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside the v1 prefix) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(integrations.router, prefix="/api/v1")

    return app


app = create_app()
