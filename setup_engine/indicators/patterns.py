"""
Candle and Level Predicates

Pivot points, patient-candle detection, EMA stacking and RSI extremes.
"""

from typing import Dict, Optional

from ..models import Bar, IndicatorSnapshot


def pivot_points(bar: Bar) -> Dict[str, float]:
    """Classic floor-trader pivots from a single (usually prior-session) bar."""
    pivot = bar.typical_price
    rng = bar.high - bar.low

    return {
        'pivot': pivot,
        'r1': 2 * pivot - bar.low,
        'r2': pivot + rng,
        'r3': bar.high + 2 * (pivot - bar.low),
        's1': 2 * pivot - bar.high,
        's2': pivot - rng,
        's3': bar.low - 2 * (bar.high - pivot),
    }


def is_patient_candle(bar: Bar, atr: Optional[float], threshold: float = 0.5) -> bool:
    """Consolidation candle: range smaller than `threshold` ATRs."""
    if not atr:
        return False
    return bar.range < atr * threshold


def is_bullish_ema_alignment(snapshot: Optional[IndicatorSnapshot]) -> bool:
    if snapshot is None:
        return False
    e9, e21, e50 = snapshot.ema9, snapshot.ema21, snapshot.ema50
    if e9 is None or e21 is None or e50 is None:
        return False
    return e9 > e21 > e50


def is_bearish_ema_alignment(snapshot: Optional[IndicatorSnapshot]) -> bool:
    if snapshot is None:
        return False
    e9, e21, e50 = snapshot.ema9, snapshot.ema21, snapshot.ema50
    if e9 is None or e21 is None or e50 is None:
        return False
    return e9 < e21 < e50


def is_rsi_oversold(value: float, threshold: float = 30.0) -> bool:
    return value < threshold


def is_rsi_overbought(value: float, threshold: float = 70.0) -> bool:
    return value > threshold
