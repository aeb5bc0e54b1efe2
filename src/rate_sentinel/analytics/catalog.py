"""Bootstrap symbol catalog and symbol search."""

from __future__ import annotations

# Served when the store has no symbols yet (before the first successful
# sync), so symbol lists and search stay usable.
BOOTSTRAP_SYMBOLS: tuple[str, ...] = (
    "BTC", "ETH", "BNB", "SOL", "XRP", "DOGE", "ADA", "AVAX", "DOT", "MATIC",
    "LINK", "UNI", "LTC", "ATOM", "ETC", "XLM", "BCH", "NEAR", "APT", "FIL",
)

SEARCH_LIMIT = 50


def with_bootstrap(symbols: list[str]) -> list[str]:
    """Return stored symbols, or the bootstrap catalog if there are none."""
    return list(symbols) if symbols else list(BOOTSTRAP_SYMBOLS)


def search_symbols(
    symbols: list[str],
    keyword: str | None,
    limit: int = SEARCH_LIMIT,
) -> list[str]:
    """Case-insensitive substring search over tickers, capped at ``limit``.

    A blank keyword returns the first ``limit`` symbols.
    """
    needle = (keyword or "").strip().lower()
    if not needle:
        return symbols[:limit]
    return [s for s in symbols if s and needle in s.lower()][:limit]
