"""Custom exception hierarchy for rate-sentinel."""

from typing import Any


class RateSentinelError(Exception):
    """Base exception for all rate-sentinel errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(RateSentinelError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class FetchError(RateSentinelError):
    """Failed to obtain rates from the pricing provider.

    Policy: retried once by RateSyncService when `retriable` is True.

    Context keys:
        url: str — the endpoint that was called (access key stripped)
        status_code: int | None — HTTP status if a response was received
    """

    retriable: bool = True


class RateLimitExceeded(FetchError):
    """Provider quota exhausted (HTTP 429).

    Policy: never retried within a cycle. The scheduler logs a remediation
    hint and waits for the next full interval.
    """

    retriable = False


class ProviderError(FetchError):
    """Transport failure, non-2xx status, or envelope with success=false.

    Policy: retry once.

    Context keys:
        error_code: int | None — provider's embedded error code
        error_info: str | None — provider's embedded error text
    """


class EmptyResultError(ProviderError):
    """Provider reported success but returned no usable rates.

    Policy: same as ProviderError (retry once).
    """


class StorageError(RateSentinelError):
    """Database operation failed.

    Policy: raise immediately. Never retried by the sync service, so that
    "can't write database" stays distinguishable from "can't reach price feed".

    Context keys:
        operation: str — "insert", "query", "migrate", etc.
        table: str — the table involved
    """


class QueryValidationError(RateSentinelError):
    """Malformed read-path query parameters (e.g. unparseable date).

    Policy: surfaced directly to the caller, not retried.

    Context keys:
        field: str — the offending parameter
        value: Any — the rejected value
    """
