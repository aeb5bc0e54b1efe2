"""Decimal arithmetic for windowed rate statistics.

All rounding is ROUND_HALF_UP:

- money values (average, absolute change): 2 places
- percent change: the change/first ratio is rounded to 4 places, scaled by
  100, then rendered with 1 place and a trailing ``%``
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from rate_sentinel.core.models import Trend, Volatility

ZERO = Decimal("0")
_MONEY = Decimal("0.01")
_RATIO = Decimal("0.0001")
_PERCENT = Decimal("0.1")
_HUNDRED = Decimal("100")

STABLE_THRESHOLD = Decimal("0.1")
MILD_THRESHOLD = Decimal("1")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(_MONEY, rounding=ROUND_HALF_UP)


def price_change(first: Decimal, last: Decimal) -> Decimal:
    """Absolute change from the first to the last sample (by time)."""
    return last - first


def change_percent(first: Decimal, last: Decimal) -> Decimal:
    """Percent change from ``first`` to ``last``.

    Returns zero when ``first`` is not positive instead of dividing by it.
    """
    if first <= 0:
        return ZERO
    ratio = ((last - first) / first).quantize(_RATIO, rounding=ROUND_HALF_UP)
    return ratio * _HUNDRED


def format_percent(percent: Decimal, signed: bool = False) -> str:
    """Render ``percent`` with one decimal place and a ``%`` suffix."""
    rounded = percent.quantize(_PERCENT, rounding=ROUND_HALF_UP)
    if rounded == 0:
        rounded = abs(rounded)
    text = f"{rounded:f}%"
    if signed and rounded > 0:
        text = f"+{text}"
    return text


def classify_trend(percent: Decimal) -> Trend:
    if percent > 0:
        return Trend.UP
    if percent < 0:
        return Trend.DOWN
    return Trend.FLAT


def classify_volatility(percent: Decimal) -> Volatility:
    magnitude = abs(percent)
    if magnitude < STABLE_THRESHOLD:
        return Volatility.STABLE
    if magnitude < MILD_THRESHOLD:
        return Volatility.MILD
    return Volatility.VOLATILE
