"""
Shared fixtures for engine tests
"""

from datetime import datetime

import numpy as np
import pytest
import pytz

from setup_engine.models import Bar

EASTERN = pytz.timezone('US/Eastern')


def eastern_ts(year, month, day, hour, minute) -> float:
    """Unix seconds for a US/Eastern wall-clock time."""
    return EASTERN.localize(datetime(year, month, day, hour, minute)).timestamp()


def flat_bar(symbol='TEST', timestamp=0.0, price=100.0, spread=0.5, volume=1000.0) -> Bar:
    return Bar(
        symbol=symbol,
        timestamp=timestamp,
        open=price,
        high=price + spread,
        low=price - spread,
        close=price,
        volume=volume,
    )


@pytest.fixture
def make_bars():
    """Factory for a random-walk series of 1m bars."""
    def _make(n=100, symbol='TEST', start=1_700_000_000.0, seed=42, step=60.0):
        rng = np.random.default_rng(seed)
        close = np.cumsum(rng.standard_normal(n) * 0.25) + 100
        high = close + np.abs(rng.standard_normal(n) * 0.5)
        low = close - np.abs(rng.standard_normal(n) * 0.5)
        open_price = np.clip(close + rng.standard_normal(n) * 0.2, low, high)
        volume = rng.integers(1000, 10000, n)

        return [
            Bar(
                symbol=symbol,
                timestamp=start + i * step,
                open=float(open_price[i]),
                high=float(high[i]),
                low=float(low[i]),
                close=float(close[i]),
                volume=float(volume[i]),
            )
            for i in range(n)
        ]
    return _make


@pytest.fixture
def sample_bars(make_bars):
    """Create sample OHLCV bars for testing"""
    return make_bars(100)
