"""
Indicator Helpers

Shared input handling for the indicator functions.
"""

from typing import Iterable, Sequence

import numpy as np

from ..models import Bar


def validate_period(period: int, min_period: int = 1) -> int:
    """Validate period parameter"""
    if isinstance(period, bool) or not isinstance(period, int):
        raise ValueError(f"Period must be integer, got {type(period)}")

    if period < min_period:
        raise ValueError(f"Period must be >= {min_period}, got {period}")

    return period


def to_array(values: Iterable[float]) -> np.ndarray:
    """Materialize any iterable of numbers (list, deque, ndarray) as a float array."""
    return np.fromiter(values, dtype=float)


def closes(bars: Sequence[Bar]) -> np.ndarray:
    return to_array(b.close for b in bars)
