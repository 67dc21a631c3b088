"""
Confluence Scoring

Collects the independent conditions that support a trade direction. Every
satisfied factor counts as one point; detectors gate on the count.
"""

import logging
from typing import List, Optional

from .config import StrategyParams
from .indicators import (
    is_bullish_ema_alignment,
    is_bearish_ema_alignment,
    is_rsi_oversold,
    is_rsi_overbought,
)
from .models import Bar, ConfluenceFactor, Direction
from .state import SymbolState

logger = logging.getLogger(__name__)


def average_volume(state: SymbolState, lookback: int) -> float:
    """Mean volume of the last `lookback` 5m bars (current bar included)."""
    bars = list(state.bars_5m)[-lookback:]
    if not bars:
        return 0.0
    return sum(b.volume for b in bars) / len(bars)


def score_confluence(state: SymbolState, direction: Direction, bar: Bar,
                     params: Optional[StrategyParams] = None) -> List[ConfluenceFactor]:
    """
    Evaluate confluence for `direction` on the working (5m) timeframe.

    Order: 60m trend alignment, 5m RSI extreme, 5m VWAP side, volume spike,
    60m 200-SMA side. Only satisfied factors are returned. Both the 5m and
    60m snapshots are required; without them nothing is satisfied.
    """
    params = params or StrategyParams()
    factors: List[ConfluenceFactor] = []

    ind5 = state.indicators_5m
    ind60 = state.indicators_60m
    if ind5 is None or ind60 is None:
        return factors

    long = direction == Direction.LONG

    # Trend (60m)
    if long and is_bullish_ema_alignment(ind60):
        factors.append(ConfluenceFactor('Bullish EMA Alignment (60m)', True, '9>21>50'))
    elif not long and is_bearish_ema_alignment(ind60):
        factors.append(ConfluenceFactor('Bearish EMA Alignment (60m)', True, '9<21<50'))

    # RSI extreme (5m)
    if ind5.rsi14 is not None:
        if long and is_rsi_oversold(ind5.rsi14, params.rsi_oversold):
            factors.append(ConfluenceFactor('RSI Oversold', True, f"{ind5.rsi14:.1f}"))
        elif not long and is_rsi_overbought(ind5.rsi14, params.rsi_overbought):
            factors.append(ConfluenceFactor('RSI Overbought', True, f"{ind5.rsi14:.1f}"))

    # VWAP side (5m)
    if ind5.vwap:
        if long and bar.close > ind5.vwap:
            factors.append(ConfluenceFactor('Price Above VWAP', True, f"{ind5.vwap:.2f}"))
        elif not long and bar.close < ind5.vwap:
            factors.append(ConfluenceFactor('Price Below VWAP', True, f"{ind5.vwap:.2f}"))

    # Volume spike
    avg_volume = average_volume(state, params.volume_lookback)
    if avg_volume > 0 and bar.volume > avg_volume * params.volume_spike_mult:
        factors.append(ConfluenceFactor(
            'High Volume', True,
            f"{(bar.volume / avg_volume) * 100:.0f}% of avg",
            description=f"{params.volume_spike_mult}x the {params.volume_lookback}-bar average",
        ))

    # 200 SMA side (60m)
    if ind60.sma200:
        if long and bar.close > ind60.sma200:
            factors.append(ConfluenceFactor('Above 200 SMA', True, f"{ind60.sma200:.2f}"))
        elif not long and bar.close < ind60.sma200:
            factors.append(ConfluenceFactor('Below 200 SMA', True, f"{ind60.sma200:.2f}"))

    logger.debug(
        f"[{state.symbol}] Confluence {direction.value}: "
        f"{len(factors)} ({', '.join(f.factor for f in factors) or 'none'})"
    )
    return factors
