"""Strainwatch API — FastAPI application entry point.

Run locally:
    uvicorn strainwatch.main:app --reload --port 3000
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

from strainwatch.config import Settings, get_settings
from strainwatch.credentials import (
    CredentialCipher,
    CredentialStore,
    JsonFileCredentialStore,
    MemoryCredentialStore,
    PostgresCredentialStore,
    TokenVault,
)
from strainwatch.dependencies import Services
from strainwatch.errors import (
    AuthError,
    DataUnavailable,
    PersistenceError,
    SinkError,
    TransientNetworkError,
    TransientRefreshError,
    UpstreamError,
)
from strainwatch.models.base import ErrorDetail
from strainwatch.polling import PollScheduler, StrainCollector
from strainwatch.routers import credentials, health, polling, strain, webhooks
from strainwatch.services.database import close_pool, init_pool
from strainwatch.services.sink import AnalyticsSink
from strainwatch.streaming import BroadcastHub
from strainwatch.whoop import WhoopClient

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("strainwatch")


# ---------- Wiring ----------

async def build_credential_store(settings: Settings) -> CredentialStore:
    backend = settings.credential_backend.lower()
    if backend == "file":
        return JsonFileCredentialStore(settings.token_file)
    if backend == "postgres":
        await init_pool(settings)
        store = PostgresCredentialStore()
        await store.ensure_schema()
        return store
    if backend == "memory":
        logger.warning("Using in-memory credential store, credentials will not survive a restart")
        return MemoryCredentialStore()
    raise ValueError(f"Unknown credential backend '{settings.credential_backend}'")


async def build_services(settings: Settings) -> Services:
    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    whoop = WhoopClient(
        client_id=settings.whoop_client_id,
        client_secret=settings.whoop_client_secret,
        api_base=settings.whoop_api_base,
        http_client=http_client,
    )
    vault = TokenVault(
        await build_credential_store(settings),
        CredentialCipher(settings.vault_secret),
        whoop,
    )
    sink = AnalyticsSink(settings.sink_uri, settings.sink_token, http_client=http_client)
    hub = BroadcastHub()
    collector = StrainCollector(vault, whoop)
    scheduler = PollScheduler(
        collector,
        sink,
        hub,
        interval_seconds=settings.poll_interval_seconds,
        sink_category=settings.sink_category,
    )
    return Services(
        vault=vault,
        whoop=whoop,
        sink=sink,
        hub=hub,
        collector=collector,
        scheduler=scheduler,
        http_client=http_client,
    )


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info(
        "Starting %s API v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )

    services: Services | None = getattr(app.state, "services", None)
    if services is None:
        services = await build_services(settings)
        app.state.services = services
    if not services.sink.enabled:
        logger.warning("SINK_URI not set, samples will not be forwarded")

    if settings.poll_bootstrap_enabled:
        services.scheduler.bootstrap(await services.vault.enabled_user_ids())
    else:
        logger.info("Polling bootstrap disabled")

    yield

    await services.scheduler.shutdown()
    await services.sink.drain()
    if services.http_client is not None:
        await services.http_client.aclose()
    await close_pool()
    logger.info("Strainwatch API shut down")


# ---------- Error mapping ----------

def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorDetail(detail=detail).model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TransientRefreshError)
    async def _transient_refresh(request: Request, exc: TransientRefreshError) -> JSONResponse:
        return _error(502, "WHOOP token endpoint unavailable, try again later")

    @app.exception_handler(AuthError)
    async def _auth(request: Request, exc: AuthError) -> JSONResponse:
        return _error(401, "Not authenticated")

    @app.exception_handler(DataUnavailable)
    async def _no_data(request: Request, exc: DataUnavailable) -> JSONResponse:
        return _error(404, "No cycle data available")

    @app.exception_handler(TransientNetworkError)
    async def _transient(request: Request, exc: TransientNetworkError) -> JSONResponse:
        logger.warning("Upstream unavailable on %s: %s", request.url.path, exc)
        return _error(502, "WHOOP API unavailable, try again later")

    @app.exception_handler(UpstreamError)
    async def _upstream(request: Request, exc: UpstreamError) -> JSONResponse:
        logger.warning("Upstream error on %s: %s", request.url.path, exc)
        return _error(502, "WHOOP API error")

    @app.exception_handler(SinkError)
    async def _sink(request: Request, exc: SinkError) -> JSONResponse:
        return _error(502, "Analytics sink unavailable")

    @app.exception_handler(PersistenceError)
    async def _persistence(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Credential storage failure on %s: %s", request.url.path, exc)
        return _error(503, "Credential storage unavailable")


# ---------- App factory ----------

def create_app(services: Services | None = None) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built collaborators; when None they are built from
                  settings during startup.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Per-user WHOOP strain polling with analytics forwarding and live streams.",
        version=settings.app_version,
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # ---------- Health check and webhooks (outside v1 prefix) ----------
    app.include_router(health.router)
    app.include_router(webhooks.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(credentials.router, prefix=v1_prefix)
    app.include_router(polling.router, prefix=v1_prefix)
    app.include_router(strain.router, prefix=v1_prefix)

    return app


app = create_app()
