"""FastAPI application wiring for the benefit service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable

import redis
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import install_error_handlers
from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.service import BenefitService
from .domain.transfer import TransferOrchestrator
from .repository import AccountStore, PostgresAccountStore
from .storage.memory import InMemoryAccountStore
from .storage.redis_store import RedisAccountStore

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> tuple[AccountStore, Callable[[], None]]:
    """Instantiate the configured account store and a callable that releases it."""
    if settings.store_backend == "postgres":
        pool = ConnectionPool(
            settings.database_url,
            min_size=settings.database_pool_min,
            max_size=settings.database_pool_max,
            timeout=settings.database_timeout_seconds,
            open=False,
        )
        pool.open()
        logger.info("account store configured for postgres backend")

        def close_pool() -> None:
            pool.close()

        return PostgresAccountStore(pool), close_pool

    if settings.store_backend == "redis":
        if not settings.redis_url:
            raise RuntimeError("STORE_BACKEND=redis requires REDIS_URL")
        client = redis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_timeout_seconds,
            socket_connect_timeout=settings.redis_timeout_seconds,
        )
        # fail fast on a bad URL instead of on the first request
        client.ping()
        logger.info("account store configured for redis backend at %s", settings.redis_url)
        return RedisAccountStore(client, key_prefix=settings.redis_key_prefix), client.close

    if settings.store_backend != "memory":
        raise RuntimeError(f"unknown STORE_BACKEND {settings.store_backend!r}")

    logger.info("account store using in-memory backend")
    return InMemoryAccountStore(), lambda: None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the account store and the services sharing it for the app lifecycle."""
    store, close_store = build_store(settings)
    app.state.benefit_service = BenefitService(store)
    app.state.transfer_orchestrator = TransferOrchestrator(
        store, max_attempts=settings.transfer_max_attempts
    )
    try:
        yield
    finally:
        close_store()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

install_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_level=settings.log_level.lower())
