"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from rate_sentinel.analytics.engine import AggregationEngine
from rate_sentinel.api.schemas import ErrorResponse
from rate_sentinel.core.config import RateSentinelConfig
from rate_sentinel.ingestion.client import CoinlayerClient
from rate_sentinel.ingestion.scheduler import RateScheduler
from rate_sentinel.ingestion.store import RateHistoryStore
from rate_sentinel.ingestion.sync import RateSyncService


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan.

    ``config`` is replaced (never mutated) when scheduler settings change
    at runtime; the scheduler reads ``config.scheduler`` on every tick.
    """

    config: RateSentinelConfig
    store: RateHistoryStore
    client: CoinlayerClient
    sync: RateSyncService
    engine: AggregationEngine
    scheduler: RateScheduler


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> RateSentinelConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_store(request: Request) -> RateHistoryStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_engine(request: Request) -> AggregationEngine:
    return request.app.state.app_state.engine


def get_client(request: Request) -> CoinlayerClient:
    return request.app.state.app_state.client


def get_scheduler(request: Request) -> RateScheduler:
    return request.app.state.app_state.scheduler


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content=ErrorResponse(
                    error="Unauthorized", detail="Invalid or missing API key"
                ).model_dump(),
            )
    return await call_next(request)
