"""Async HTTP client for the pricing provider's live-rates endpoint."""

from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from aiolimiter import AsyncLimiter
from pydantic import ValidationError

from rate_sentinel.core.config import ProviderConfig
from rate_sentinel.core.exceptions import (
    EmptyResultError,
    ProviderError,
    RateLimitExceeded,
)
from rate_sentinel.core.models import ProviderEnvelope, RateSnapshot

logger = logging.getLogger(__name__)

_GENERIC_FAILURE = "Pricing provider reported failure"
_EMPTY_RESULT = "no rate data returned"


class CoinlayerClient:
    """Client for a coinlayer-style ``/live`` endpoint.

    One call to :meth:`fetch_latest_rates` is exactly one outbound GET.
    Retrying is the caller's job (see ``RateSyncService``); this class only
    classifies failures:

    - HTTP 429 -> ``RateLimitExceeded`` (never retry within the cycle)
    - other non-2xx, transport errors, bad JSON, ``success`` false/absent
      -> ``ProviderError``
    - success with no usable rates -> ``EmptyResultError``

    Outbound calls pass through a token bucket
    (``max_requests_per_minute``) so that a burst of live lookups cannot
    drain the provider quota.

    Use via ``async with CoinlayerClient(config) as client:``.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._url = f"{config.base_url}{config.live_path}"
        self._limiter = AsyncLimiter(
            max_rate=config.max_requests_per_minute, time_period=60.0
        )
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> CoinlayerClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    @property
    def url(self) -> str:
        """Endpoint URL without credentials (safe to log)."""
        return self._url

    async def fetch_latest_rates(self) -> RateSnapshot:
        """Fetch the current symbol -> rate mapping.

        Returns:
            RateSnapshot with at least one positive rate.

        Raises:
            RateLimitExceeded: Provider answered HTTP 429.
            ProviderError: Transport failure, non-2xx status, malformed body,
                or envelope without ``success: true``.
            EmptyResultError: Envelope succeeded but carried no usable rates.
        """
        response = await self._get()

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitExceeded(
                "Pricing provider quota exhausted (HTTP 429 Too Many Requests)",
                context={
                    "url": self._url,
                    "status_code": 429,
                    "retry_after": retry_after,
                },
            )

        if not response.is_success:
            raise ProviderError(
                f"HTTP {response.status_code} from {self._url}",
                context={"url": self._url, "status_code": response.status_code},
            )

        envelope = self._parse_envelope(response)

        if not envelope.success:
            raise self._envelope_failure(envelope)

        rates = self._usable_rates(envelope.rates)
        if not rates:
            raise EmptyResultError(
                _EMPTY_RESULT,
                context={"url": self._url, "status_code": response.status_code},
            )

        logger.info("Fetched %d rates from pricing provider", len(rates))
        return RateSnapshot(
            rates=rates,
            target=envelope.target or self._config.target,
            timestamp=envelope.timestamp,
        )

    async def get_rate(self, symbol: str) -> Decimal | None:
        """Fetch live rates and return one symbol's rate, or None if absent."""
        snapshot = await self.fetch_latest_rates()
        return snapshot.rates.get(symbol.strip().upper())

    # --- Internals ---

    async def _get(self) -> httpx.Response:
        params = {"access_key": self._config.access_key}
        if self._config.target:
            params["target"] = self._config.target

        await self._limiter.acquire()
        logger.debug("GET %s", self._url)
        try:
            return await self._client.get(self._url, params=params)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Timed out calling pricing provider: {self._url}",
                context={"url": self._url, "status_code": None},
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"Failed to reach pricing provider: {type(e).__name__}",
                context={"url": self._url, "status_code": None},
            ) from e

    def _parse_envelope(self, response: httpx.Response) -> ProviderEnvelope:
        """Decode the body, keeping JSON numbers as Decimal."""
        try:
            data = json.loads(response.text, parse_float=Decimal)
        except ValueError as e:
            raise ProviderError(
                f"Pricing provider returned invalid JSON: {e}",
                context={"url": self._url, "status_code": response.status_code},
            ) from e

        if not isinstance(data, dict):
            raise ProviderError(
                f"Pricing provider returned {type(data).__name__}, expected object",
                context={"url": self._url, "status_code": response.status_code},
            )

        try:
            return ProviderEnvelope.model_validate(data)
        except ValidationError as e:
            raise ProviderError(
                f"Pricing provider response has unexpected shape: {e}",
                context={"url": self._url, "status_code": response.status_code},
            ) from e

    def _envelope_failure(self, envelope: ProviderEnvelope) -> ProviderError:
        err = envelope.error
        context = {
            "url": self._url,
            "status_code": None,
            "error_code": err.code if err else None,
            "error_info": err.info if err else None,
        }
        if err is not None and (err.code is not None or err.info):
            message = f"Pricing provider error: [{err.code}] {err.info or err.type or ''}"
            return ProviderError(message.rstrip(), context=context)
        return ProviderError(_GENERIC_FAILURE, context=context)

    def _usable_rates(self, raw: dict[str, Any] | None) -> dict[str, Decimal]:
        """Keep entries with a finite, positive numeric rate."""
        if not raw:
            return {}

        rates: dict[str, Decimal] = {}
        dropped: list[str] = []
        for symbol, value in raw.items():
            key = str(symbol).strip().upper()
            rate = _to_decimal(value)
            if not key or rate is None or not rate.is_finite() or rate <= 0:
                dropped.append(str(symbol))
                continue
            rates[key] = rate

        if dropped:
            logger.warning(
                "Dropped %d unusable rate entries: %s",
                len(dropped),
                ", ".join(sorted(dropped)[:10]),
            )
        return rates


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        try:
            return Decimal(value)
        except InvalidOperation:
            return None
    return None
