"""
Indicator Snapshot

Computes the full IndicatorSnapshot for one timeframe's bar buffer.
"""

import logging
from typing import Sequence

from ..models import Bar, IndicatorSnapshot
from .base import closes
from .moving_averages import ema, sma, vwap
from .oscillators import rsi, atr

logger = logging.getLogger(__name__)

# Minimum sample counts per field
EMA_PERIODS = {'ema9': 9, 'ema21': 21, 'ema50': 50}
SMA_LONG_PERIOD = 200
RSI_PERIOD = 14
ATR_PERIOD = 14


def compute_snapshot(bars: Sequence[Bar]) -> IndicatorSnapshot:
    """
    Compute every indicator over `bars`.

    A field stays None until the buffer holds enough samples for it, so
    consumers never see the short-history fallbacks of ema()/sma().
    """
    snapshot = IndicatorSnapshot()
    n = len(bars)
    if n == 0:
        return snapshot

    close_prices = closes(bars)

    for field_name, period in EMA_PERIODS.items():
        if n >= period:
            setattr(snapshot, field_name, ema(close_prices, period))

    if n >= SMA_LONG_PERIOD:
        snapshot.sma200 = sma(close_prices, SMA_LONG_PERIOD)

    if n >= RSI_PERIOD + 1:
        snapshot.rsi14 = rsi(close_prices, RSI_PERIOD)

    if n >= ATR_PERIOD + 1:
        snapshot.atr14 = atr(bars, ATR_PERIOD)

    if any(b.volume > 0 for b in bars):
        snapshot.vwap = vwap(bars)

    return snapshot
