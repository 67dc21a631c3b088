"""
Oscillator Indicators

RSI and ATR over plain price / bar sequences.
"""

from typing import Iterable, Sequence

import numpy as np

from ..models import Bar
from .base import validate_period, to_array

NEUTRAL_RSI = 50.0


def rsi(prices: Iterable[float], period: int = 14) -> float:
    """
    Relative Strength Index

    Simple average of gains and losses over the trailing `period` deltas.
    Range: 0-100. Returns neutral 50 on insufficient history and 100 when
    there were no losses in the window.
    """
    validate_period(period)
    values = to_array(prices)

    if len(values) < period + 1:
        return NEUTRAL_RSI

    deltas = np.diff(values[-(period + 1):])
    avg_gain = np.where(deltas > 0, deltas, 0.0).sum() / period
    avg_loss = np.where(deltas < 0, -deltas, 0.0).sum() / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100.0 - (100.0 / (1.0 + rs)))


def true_ranges(bars: Sequence[Bar]) -> np.ndarray:
    """True range of every bar after the first: max(h-l, |h-prevC|, |l-prevC|)."""
    if len(bars) < 2:
        return np.empty(0)

    highs = to_array(b.high for b in bars)
    lows = to_array(b.low for b in bars)
    prev_closes = to_array(b.close for b in bars)[:-1]

    highs, lows = highs[1:], lows[1:]
    return np.maximum.reduce([
        highs - lows,
        np.abs(highs - prev_closes),
        np.abs(lows - prev_closes),
    ])


def atr(bars: Sequence[Bar], period: int = 14) -> float:
    """
    Average True Range

    Simple average of the last `period` true ranges; 0 below period+1 bars.
    """
    validate_period(period)

    if len(bars) < period + 1:
        return 0.0

    return float(true_ranges(bars)[-period:].mean())
