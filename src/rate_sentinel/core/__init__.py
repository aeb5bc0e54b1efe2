"""Foundation types, config, and exceptions for rate_sentinel."""

from rate_sentinel.core.config import (
    APIConfig,
    ProviderConfig,
    RateSentinelConfig,
    SchedulerConfig,
    StorageConfig,
    SyncConfig,
    load_config,
)
from rate_sentinel.core.exceptions import (
    ConfigError,
    EmptyResultError,
    FetchError,
    ProviderError,
    QueryValidationError,
    RateLimitExceeded,
    RateSentinelError,
    StorageError,
)
from rate_sentinel.core.models import (
    EpochSeconds,
    HistoryPoint,
    LatestRate,
    MarketReport,
    ProviderEnvelope,
    ProviderErrorInfo,
    RateSample,
    RateSnapshot,
    SchedulerState,
    StatsSummary,
    SummaryWindow,
    Symbol,
    SyncErrorKind,
    SyncOutcome,
    Trend,
    Volatility,
)

__all__ = [
    # Type aliases
    "Symbol",
    "EpochSeconds",
    # Enums
    "SummaryWindow",
    "Trend",
    "Volatility",
    "SchedulerState",
    "SyncErrorKind",
    # Time series models
    "RateSample",
    "RateSnapshot",
    # Provider models
    "ProviderEnvelope",
    "ProviderErrorInfo",
    # Sync models
    "SyncOutcome",
    # Read-side views
    "LatestRate",
    "HistoryPoint",
    "StatsSummary",
    "MarketReport",
    # Config
    "RateSentinelConfig",
    "ProviderConfig",
    "SyncConfig",
    "SchedulerConfig",
    "StorageConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "RateSentinelError",
    "ConfigError",
    "FetchError",
    "RateLimitExceeded",
    "ProviderError",
    "EmptyResultError",
    "StorageError",
    "QueryValidationError",
]
