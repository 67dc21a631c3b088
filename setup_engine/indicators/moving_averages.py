"""
Moving Average Indicators

EMA, SMA and windowed VWAP over plain price / bar sequences.
All functions degrade to a safe value on short input instead of raising.
"""

from typing import Iterable, Sequence

import numpy as np

from ..models import Bar
from .base import validate_period, to_array


def ema(prices: Iterable[float], period: int) -> float:
    """
    Exponential Moving Average

    Seeded with the simple average of the first `period` prices, then
    ema = (price - ema) * 2/(period+1) + ema for the rest.

    Returns the last price when fewer than `period` samples exist
    (0.0 for empty input).
    """
    validate_period(period)
    values = to_array(prices)

    if len(values) == 0:
        return 0.0
    if len(values) < period:
        return float(values[-1])

    k = 2.0 / (period + 1)
    result = float(values[:period].mean())
    for price in values[period:]:
        result = (price - result) * k + result

    return float(result)


def sma(prices: Iterable[float], period: int) -> float:
    """
    Simple Moving Average of the last `period` prices.

    Same fallback as ema().
    """
    validate_period(period)
    values = to_array(prices)

    if len(values) == 0:
        return 0.0
    if len(values) < period:
        return float(values[-1])

    return float(values[-period:].mean())


def vwap(bars: Sequence[Bar]) -> float:
    """
    Volume Weighted Average Price

    Volume-weighted mean of typical price (h+l+c)/3 across exactly the bars
    passed in. Not cumulative and not session-anchored.
    """
    if len(bars) == 0:
        return 0.0

    typical = to_array(b.typical_price for b in bars)
    volume = to_array(b.volume for b in bars)

    total_volume = volume.sum()
    if total_volume <= 0:
        return 0.0

    return float(np.dot(typical, volume) / total_volume)
