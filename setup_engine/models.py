"""
Core Data Model

Market data records consumed by the engine (Bar, Trade, Quote), the
per-timeframe indicator snapshot, and the Setup produced by the detectors,
together with the lifecycle events emitted to downstream consumers.
"""

import copy
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Tuple, Dict, Any, Union


# ═══════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════

class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class SetupType(str, Enum):
    ORB_PC = "ORB_PC"
    EMA_BOUNCE = "EMA_BOUNCE"
    VWAP_STRATEGY = "VWAP_STRATEGY"
    KING_QUEEN = "KING_QUEEN"
    CLOUD_STRATEGY = "CLOUD_STRATEGY"
    FIBONACCI_PULLBACK = "FIBONACCI_PULLBACK"
    REVERSAL_SETUP = "REVERSAL_SETUP"
    MOMENTUM_CONTINUATION = "MOMENTUM_CONTINUATION"
    BREAKOUT = "BREAKOUT"
    PULLBACK = "PULLBACK"


class SetupStatus(str, Enum):
    SETUP_FORMING = "SETUP_FORMING"
    SETUP_READY = "SETUP_READY"
    MONITORING = "MONITORING"
    ACTIVE = "ACTIVE"
    PARTIAL_EXIT = "PARTIAL_EXIT"
    CLOSED = "CLOSED"
    DISMISSED = "DISMISSED"
    REENTRY_SETUP = "REENTRY_SETUP"


# Statuses the lifecycle manager never evaluates again
TERMINAL_STATUSES = frozenset({
    SetupStatus.CLOSED,
    SetupStatus.DISMISSED,
    SetupStatus.REENTRY_SETUP,
})

# Statuses excluded from the active-setups query
INACTIVE_STATUSES = frozenset({SetupStatus.CLOSED, SetupStatus.DISMISSED})


# ═══════════════════════════════════════════════════════════════════════════
# MARKET DATA
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Bar:
    """OHLCV bar. `timestamp` is unix epoch seconds of the bar open."""
    symbol: str
    timestamp: float
    open: float
    high: float
    low: float
    close: float
    volume: float
    vwap: Optional[float] = None

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    @property
    def range(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class Trade:
    symbol: str
    timestamp: float
    price: float
    size: float


@dataclass(frozen=True)
class Quote:
    symbol: str
    timestamp: float
    bid: float
    ask: float
    bid_size: float
    ask_size: float


# ═══════════════════════════════════════════════════════════════════════════
# INDICATORS & CONFLUENCE
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class IndicatorSnapshot:
    """Latest indicator values for one (symbol, timeframe). None = not enough data."""
    ema9: Optional[float] = None
    ema21: Optional[float] = None
    ema50: Optional[float] = None
    sma200: Optional[float] = None
    rsi14: Optional[float] = None
    vwap: Optional[float] = None
    atr14: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


@dataclass
class ConfluenceFactor:
    factor: str
    present: bool
    value: Union[str, float]
    description: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════
# SETUP
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Setup:
    """
    A candidate trade produced by a detector.

    `stop_loss` and `targets` are fixed at creation; the lifecycle manager
    only ever touches `status` and `last_update`.
    """
    id: str
    symbol: str
    setup_type: SetupType
    direction: Direction
    entry_price: float
    stop_loss: float
    targets: Tuple[float, ...]
    confluence_score: int
    confluence_factors: List[ConfluenceFactor]
    indicators: IndicatorSnapshot
    created_at: float
    last_update: float
    status: SetupStatus = SetupStatus.SETUP_FORMING
    timeframe: str = "5m"
    patient_candle: Optional[Bar] = None

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    def copy(self) -> 'Setup':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'symbol': self.symbol,
            'setupType': self.setup_type.value,
            'direction': self.direction.value,
            'status': self.status.value,
            'timeframe': self.timeframe,
            'entryPrice': self.entry_price,
            'stopLoss': self.stop_loss,
            'targets': list(self.targets),
            'confluenceScore': self.confluence_score,
            'confluenceFactors': [asdict(f) for f in self.confluence_factors],
            'patientCandle': asdict(self.patient_candle) if self.patient_candle else None,
            'indicators': self.indicators.to_dict(),
            'timestamp': self.created_at,
            'lastUpdate': self.last_update,
        }


# ═══════════════════════════════════════════════════════════════════════════
# EVENTS
# ═══════════════════════════════════════════════════════════════════════════

SETUP_DETECTED = "setup-detected"
TARGET_HIT = "target-hit"
STOP_LOSS_HIT = "stop-loss-hit"


@dataclass(frozen=True)
class SetupDetected:
    setup: Setup
    event_type: str = field(default=SETUP_DETECTED, init=False)


@dataclass(frozen=True)
class TargetHit:
    setup: Setup
    target_index: int
    price: float
    event_type: str = field(default=TARGET_HIT, init=False)


@dataclass(frozen=True)
class StopLossHit:
    setup: Setup
    price: float
    event_type: str = field(default=STOP_LOSS_HIT, init=False)


SetupEvent = Union[SetupDetected, TargetHit, StopLossHit]
