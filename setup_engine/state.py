"""
Per-Symbol State

Bounded bar history at each timeframe, latest trade/quote, indicator
snapshots and the symbol's setups. A SymbolState is owned by exactly one
SymbolWorker and never handed out; queries return copies.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from .config import EngineConfig
from .indicators import compute_snapshot
from .models import Bar, Trade, Quote, IndicatorSnapshot, Setup

logger = logging.getLogger(__name__)

TIMEFRAMES = ('1m', '5m', '60m')


@dataclass
class SymbolState:
    symbol: str
    bars_1m: Deque[Bar]
    bars_5m: Deque[Bar]
    bars_60m: Deque[Bar]
    latest_trade: Optional[Trade] = None
    latest_quote: Optional[Quote] = None
    indicators_1m: Optional[IndicatorSnapshot] = None
    indicators_5m: Optional[IndicatorSnapshot] = None
    indicators_60m: Optional[IndicatorSnapshot] = None
    setups: Dict[str, Setup] = field(default_factory=dict)
    setup_counter: int = 0

    @classmethod
    def create(cls, symbol: str, config: Optional[EngineConfig] = None) -> 'SymbolState':
        config = config or EngineConfig()
        return cls(
            symbol=symbol,
            bars_1m=deque(maxlen=config.max_bars_1m),
            bars_5m=deque(maxlen=config.max_bars_5m),
            bars_60m=deque(maxlen=config.max_bars_60m),
        )

    def buffer_for(self, timeframe: str) -> Deque[Bar]:
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unknown timeframe: {timeframe}")
        return getattr(self, f'bars_{timeframe}')

    def indicators_for(self, timeframe: str) -> Optional[IndicatorSnapshot]:
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unknown timeframe: {timeframe}")
        return getattr(self, f'indicators_{timeframe}')

    def next_setup_id(self) -> str:
        self.setup_counter += 1
        return f"{self.symbol}-{self.setup_counter}"

    def open_setups(self) -> List[Setup]:
        return [s for s in self.setups.values() if s.is_open]

    def refresh_indicators(self, config: EngineConfig) -> None:
        """Recompute each timeframe's snapshot once its buffer reaches the minimum size."""
        thresholds = {
            '1m': config.min_bars_1m,
            '5m': config.min_bars_5m,
            '60m': config.min_bars_60m,
        }
        for timeframe, minimum in thresholds.items():
            bars = self.buffer_for(timeframe)
            if len(bars) >= minimum:
                setattr(self, f'indicators_{timeframe}', compute_snapshot(bars))
