"""
Timeframe Aggregation

Folds the 1-minute stream into 5-minute and 60-minute synthetic bars.

NOTE: aggregation is a sliding window, not clock-aligned. Every new 1m bar
regenerates a coarser bar from the trailing 5 / 60 one-minute bars, so
consecutive 5m bars overlap by four minutes. Downstream thresholds (volume
averages, ORB bar counts, VWAP) were tuned against this behaviour; do not
switch to tumbling :00/:05 buckets without re-validating the detectors.
"""

import logging
from typing import Dict, Sequence

from .indicators import vwap
from .models import Bar
from .state import SymbolState

logger = logging.getLogger(__name__)

# (timeframe label, number of 1m bars folded into it)
AGGREGATION_WINDOWS = (('5m', 5), ('60m', 60))


def fold_bars(symbol: str, bars: Sequence[Bar]) -> Bar:
    """Fold consecutive bars into one: first open, max high, min low, last close, summed volume."""
    if not bars:
        raise ValueError("Cannot fold an empty bar window")

    first, last = bars[0], bars[-1]
    return Bar(
        symbol=symbol,
        timestamp=first.timestamp,
        open=first.open,
        high=max(b.high for b in bars),
        low=min(b.low for b in bars),
        close=last.close,
        volume=sum(b.volume for b in bars),
        vwap=vwap(bars),
    )


class TimeframeAggregator:
    """Appends base bars to a SymbolState and derives the coarser timeframes."""

    def __init__(self, windows=AGGREGATION_WINDOWS):
        self.windows = windows
        self.stats = {
            'bars_ingested': 0,
            'bars_5m_built': 0,
            'bars_60m_built': 0,
        }

    def add_bar(self, state: SymbolState, bar: Bar) -> Dict[str, Bar]:
        """
        Append a 1m bar and build any coarser bars the buffer now supports.

        Returns:
            Mapping of timeframe label -> synthetic bar built on this call
        """
        state.bars_1m.append(bar)  # deque(maxlen) evicts the oldest
        self.stats['bars_ingested'] += 1

        built: Dict[str, Bar] = {}
        n = len(state.bars_1m)

        for timeframe, size in self.windows:
            if n < size:
                continue

            window = [state.bars_1m[i] for i in range(n - size, n)]
            coarse = fold_bars(state.symbol, window)
            state.buffer_for(timeframe).append(coarse)
            self.stats[f'bars_{timeframe}_built'] += 1
            built[timeframe] = coarse

        return built

    def get_statistics(self) -> dict:
        return self.stats.copy()
