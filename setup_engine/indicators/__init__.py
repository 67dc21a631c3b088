"""
Indicator library for setup detection
"""
from .base import validate_period
from .moving_averages import ema, sma, vwap
from .oscillators import rsi, atr, true_ranges
from .patterns import (
    pivot_points,
    is_patient_candle,
    is_bullish_ema_alignment,
    is_bearish_ema_alignment,
    is_rsi_oversold,
    is_rsi_overbought,
)
from .manager import compute_snapshot

__all__ = [
    # Moving averages
    'ema',
    'sma',
    'vwap',

    # Oscillators
    'rsi',
    'atr',
    'true_ranges',

    # Predicates
    'pivot_points',
    'is_patient_candle',
    'is_bullish_ema_alignment',
    'is_bearish_ema_alignment',
    'is_rsi_oversold',
    'is_rsi_overbought',

    # Snapshot
    'compute_snapshot',
    'validate_period',
]
