"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rate_sentinel.analytics.engine import AggregationEngine
from rate_sentinel.api.deps import AppState, api_key_middleware
from rate_sentinel.api.routes import router
from rate_sentinel.api.schemas import ErrorResponse
from rate_sentinel.core.config import RateSentinelConfig, load_config
from rate_sentinel.core.exceptions import (
    ConfigError,
    FetchError,
    ProviderError,
    QueryValidationError,
    RateLimitExceeded,
    RateSentinelError,
    StorageError,
)
from rate_sentinel.ingestion.client import CoinlayerClient
from rate_sentinel.ingestion.scheduler import RateScheduler
from rate_sentinel.ingestion.store import create_store
from rate_sentinel.ingestion.sync import RateSyncService

logger = logging.getLogger(__name__)

# Looked up along the exception's MRO, most specific class first.
STATUS_MAP: dict[type[RateSentinelError], int] = {
    RateLimitExceeded: 429,
    ProviderError: 502,
    FetchError: 502,
    StorageError: 500,
    QueryValidationError: 400,
    ConfigError: 400,
}


def status_for(exc: RateSentinelError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_MAP:
            return STATUS_MAP[cls]
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config
    store = await create_store(config.storage)
    client = CoinlayerClient(config.provider)
    sync = RateSyncService(client, store, config.sync)
    scheduler = RateScheduler(sync, lambda: app.state.app_state.config.scheduler)

    app.state.app_state = AppState(
        config=config,
        store=store,
        client=client,
        sync=sync,
        engine=AggregationEngine(store),
        scheduler=scheduler,
    )
    scheduler.start()

    yield

    await scheduler.stop()
    await client.close()
    await store.close()


def create_app(config: RateSentinelConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import rate_sentinel

    if config is None:
        config = load_config()

    app = FastAPI(
        title="Rate Sentinel API",
        description="Crypto exchange-rate tracker",
        version=rate_sentinel.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Optional API key middleware
    if config.api.api_key:
        app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(RateSentinelError)
    async def sentinel_exception_handler(request: Request, exc: RateSentinelError):
        status = status_for(exc)
        if status >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content=ErrorResponse(error=type(exc).__name__, detail=str(exc)).model_dump(),
        )

    return app
