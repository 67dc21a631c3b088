"""
Setup Detectors Framework

Base class and manager for the intraday setup rules. Every detector looks at
the newest 5-minute bar of one symbol together with that symbol's indicator
snapshots and proposes zero or more setup candidates. A candidate only
survives when enough confluence factors agree with its direction.

Detectors keep no market history of their own: everything they read lives
in the SymbolState handed over through the DetectionContext. Each symbol
worker owns its own SetupManager.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Sequence, Tuple

import pytz

from .config import StrategyParams, SessionConfig
from .confluence import score_confluence, average_volume
from .indicators import (
    is_patient_candle,
    is_bullish_ema_alignment,
    is_bearish_ema_alignment,
)
from .models import Bar, ConfluenceFactor, Direction, IndicatorSnapshot, SetupType
from .state import SymbolState

logger = logging.getLogger(__name__)

MIN_5M_BARS = 20          # bars required before any detector runs
PREVIOUS_BARS = 20        # look-back handed to the detectors


# ═══════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class SetupCandidate:
    """A setup proposed by a detector that already passed its confluence gate."""
    setup_type: SetupType
    direction: Direction
    entry_price: float
    stop_loss: float
    targets: Tuple[float, ...]
    confluence_factors: List[ConfluenceFactor]
    reason: str
    detector: str
    patient_candle: Optional[Bar] = None

    @property
    def confluence_score(self) -> int:
        return len(self.confluence_factors)


@dataclass
class DetectionContext:
    """Everything a detector may look at for one incoming 5m bar."""
    state: SymbolState
    bar: Bar
    previous_bars: List[Bar]
    params: StrategyParams = field(default_factory=StrategyParams)
    session: SessionConfig = field(default_factory=SessionConfig)

    @property
    def ind5(self) -> Optional[IndicatorSnapshot]:
        return self.state.indicators_5m

    @property
    def ind60(self) -> Optional[IndicatorSnapshot]:
        return self.state.indicators_60m

    @classmethod
    def from_state(cls, state: SymbolState, params: StrategyParams,
                   session: SessionConfig) -> 'DetectionContext':
        bars = list(state.bars_5m)
        return cls(
            state=state,
            bar=bars[-1],
            previous_bars=bars[-(PREVIOUS_BARS + 1):-1],
            params=params,
            session=session,
        )


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════

def session_open_timestamp(timestamp: float, session: SessionConfig) -> float:
    """Unix time of the session open on the (session-local) day of `timestamp`."""
    tz = session.tz
    local = datetime.fromtimestamp(timestamp, tz=pytz.UTC).astimezone(tz)
    open_local = tz.localize(datetime.combine(local.date(), session.open))
    return open_local.timestamp()


def r_multiple_targets(entry: float, stop: float, direction: Direction,
                       multiples: Sequence[float]) -> Tuple[float, ...]:
    """Targets placed at R-multiples of the entry-to-stop distance."""
    risk = abs(entry - stop)
    sign = 1 if direction == Direction.LONG else -1
    return tuple(entry + sign * risk * m for m in multiples)


# ═══════════════════════════════════════════════════════════════════════════
# BASE DETECTOR CLASS
# ═══════════════════════════════════════════════════════════════════════════

class SetupDetector:
    """
    Base class for all setup detectors.

    Subclasses must implement:
      - update(ctx) -> List[SetupCandidate]
    """

    name: str = "base"
    display_name: str = "Base Setup"
    setup_type: SetupType = SetupType.PULLBACK
    min_confluence: int = 2

    def __init__(self):
        self._signal_counter: int = 0
        self._enabled: bool = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool):
        self._enabled = bool(value)

    def update(self, ctx: DetectionContext) -> List[SetupCandidate]:
        raise NotImplementedError

    def make_candidate(self, ctx: DetectionContext, direction: Direction,
                       entry: float, reason: str,
                       stop: Optional[float] = None,
                       targets: Optional[Sequence[float]] = None,
                       patient_candle: Optional[Bar] = None) -> Optional[SetupCandidate]:
        """
        Apply the confluence gate and fill in missing levels.

        Missing stop: entry -/+ ATR * atr_mult_stop. Missing targets: the
        configured R-multiples. Returns None when the gate fails or the
        levels are degenerate.
        """
        if stop is None:
            atr = ctx.ind5.atr14 if ctx.ind5 else None
            if not atr:
                return None
            offset = atr * ctx.params.atr_mult_stop
            stop = entry - offset if direction == Direction.LONG else entry + offset

        if abs(entry - stop) <= 0:
            logger.debug(f"[{self.name}] Skipping {direction.value}: zero risk at {entry:.2f}")
            return None

        if targets is None:
            targets = r_multiple_targets(entry, stop, direction, ctx.params.r_targets)

        factors = score_confluence(ctx.state, direction, ctx.bar, ctx.params)
        if len(factors) < self.min_confluence:
            logger.debug(
                f"[{self.name}] {ctx.state.symbol} {direction.value} declined: "
                f"confluence {len(factors)} < {self.min_confluence}"
            )
            return None

        self._signal_counter += 1
        return SetupCandidate(
            setup_type=self.setup_type,
            direction=direction,
            entry_price=entry,
            stop_loss=stop,
            targets=tuple(targets),
            confluence_factors=factors,
            reason=reason,
            detector=self.name,
            patient_candle=patient_candle,
        )

    def reset(self):
        self._signal_counter = 0

    def get_info(self) -> dict:
        return {
            'name': self.name,
            'display_name': self.display_name,
            'setup_type': self.setup_type.value,
            'min_confluence': self.min_confluence,
            'enabled': self._enabled,
            'signal_count': self._signal_counter,
        }


# ═══════════════════════════════════════════════════════════════════════════
# DETECTORS
# ═══════════════════════════════════════════════════════════════════════════

# ── Opening Range Breakout + Patient Candle ──────────────────────────────

class ORBPatientCandleDetector(SetupDetector):
    """
    Opening Range Breakout confirmed by a patient (low-range) candle.

    The opening range is the high/low of bars stamped in the first
    `orb_range_minutes` after the open. Only evaluated between
    `orb_min_minutes` and `orb_max_minutes` after the open.
    Entry at the broken side, stop at the opposite side, targets at R-multiples.
    """
    name = "orb_patient_candle"
    display_name = "ORB + Patient Candle"
    setup_type = SetupType.ORB_PC
    min_confluence = 3

    MIN_RANGE_BARS = 3

    def update(self, ctx: DetectionContext) -> List[SetupCandidate]:
        session = ctx.session
        bar = ctx.bar
        open_ts = session_open_timestamp(bar.timestamp, session)
        minutes = (bar.timestamp - open_ts) / 60.0

        if minutes < session.orb_min_minutes or minutes > session.orb_max_minutes:
            return []

        range_bars = [
            b for b in ctx.previous_bars
            if 0 <= (b.timestamp - open_ts) / 60.0 <= session.orb_range_minutes
        ]
        if len(range_bars) < self.MIN_RANGE_BARS:
            return []

        or_high = max(b.high for b in range_bars)
        or_low = min(b.low for b in range_bars)

        atr = ctx.ind5.atr14 if ctx.ind5 else None
        if not is_patient_candle(bar, atr, ctx.params.patient_candle_threshold):
            return []

        candidates = []

        if bar.close > or_high:
            candidate = self.make_candidate(
                ctx, Direction.LONG, entry=or_high, stop=or_low,
                reason=f"ORB long: close {bar.close:.2f} > OR high {or_high:.2f}",
                patient_candle=bar,
            )
            if candidate:
                candidates.append(candidate)

        if bar.close < or_low:
            candidate = self.make_candidate(
                ctx, Direction.SHORT, entry=or_low, stop=or_high,
                reason=f"ORB short: close {bar.close:.2f} < OR low {or_low:.2f}",
                patient_candle=bar,
            )
            if candidate:
                candidates.append(candidate)

        return candidates


# ── EMA Bounce ────────────────────────────────────────────────────────────

class EMABounceDetector(SetupDetector):
    """
    Pullback into the 21-EMA that closes back on the trend side,
    with the 60m EMA stack confirming the trend.
    """
    name = "ema_bounce"
    display_name = "EMA Bounce"
    setup_type = SetupType.EMA_BOUNCE
    min_confluence = 2

    TOUCH_TOLERANCE = 0.005
    STOP_BUFFER = 0.02
    TARGET_PCTS = (0.02, 0.04)

    def update(self, ctx: DetectionContext) -> List[SetupCandidate]:
        ind5, ind60 = ctx.ind5, ctx.ind60
        if ind5 is None or ind60 is None:
            return []
        if ind5.ema9 is None or ind5.ema21 is None:
            return []
        if not ctx.previous_bars:
            return []

        ema21 = ind5.ema21
        bar = ctx.bar
        prev = ctx.previous_bars[-1]
        patient = bar if is_patient_candle(bar, ind5.atr14, ctx.params.patient_candle_threshold) else None
        candidates = []

        if (prev.low <= ema21 * (1 + self.TOUCH_TOLERANCE)
                and bar.close > ema21
                and is_bullish_ema_alignment(ind60)):
            candidate = self.make_candidate(
                ctx, Direction.LONG, entry=bar.close,
                stop=ema21 * (1 - self.STOP_BUFFER),
                targets=[bar.close * (1 + p) for p in self.TARGET_PCTS],
                reason=f"EMA bounce long: prior low {prev.low:.2f} tagged EMA21 {ema21:.2f}",
                patient_candle=patient,
            )
            if candidate:
                candidates.append(candidate)

        if (prev.high >= ema21 * (1 - self.TOUCH_TOLERANCE)
                and bar.close < ema21
                and is_bearish_ema_alignment(ind60)):
            candidate = self.make_candidate(
                ctx, Direction.SHORT, entry=bar.close,
                stop=ema21 * (1 + self.STOP_BUFFER),
                targets=[bar.close * (1 - p) for p in self.TARGET_PCTS],
                reason=f"EMA rejection short: prior high {prev.high:.2f} tagged EMA21 {ema21:.2f}",
                patient_candle=patient,
            )
            if candidate:
                candidates.append(candidate)

        return candidates


# ── VWAP Reclaim ──────────────────────────────────────────────────────────

class VWAPReclaimDetector(SetupDetector):
    """Close within 0.3% of VWAP; the side of VWAP decides the direction."""
    name = "vwap_reclaim"
    display_name = "VWAP Reclaim"
    setup_type = SetupType.VWAP_STRATEGY
    min_confluence = 2

    PROXIMITY = 0.003
    STOP_BUFFER = 0.005
    TARGET_PCTS = (0.015, 0.03)

    def update(self, ctx: DetectionContext) -> List[SetupCandidate]:
        if ctx.ind5 is None or not ctx.ind5.vwap:
            return []

        vwap = ctx.ind5.vwap
        price = ctx.bar.close
        if abs(price - vwap) / vwap >= self.PROXIMITY:
            return []

        if price > vwap:
            candidate = self.make_candidate(
                ctx, Direction.LONG, entry=price,
                stop=vwap * (1 - self.STOP_BUFFER),
                targets=[price * (1 + p) for p in self.TARGET_PCTS],
                reason=f"VWAP reclaim long: {price:.2f} just above VWAP {vwap:.2f}",
            )
        elif price < vwap:
            candidate = self.make_candidate(
                ctx, Direction.SHORT, entry=price,
                stop=vwap * (1 + self.STOP_BUFFER),
                targets=[price * (1 - p) for p in self.TARGET_PCTS],
                reason=f"VWAP rejection short: {price:.2f} just below VWAP {vwap:.2f}",
            )
        else:
            return []

        return [candidate] if candidate else []


# ── EMA Cloud ─────────────────────────────────────────────────────────────

class EMACloudDetector(SetupDetector):
    """Price clear of the 9/21 EMA cloud with the cloud itself ordered in trend."""
    name = "ema_cloud"
    display_name = "EMA Cloud"
    setup_type = SetupType.CLOUD_STRATEGY
    min_confluence = 3

    def update(self, ctx: DetectionContext) -> List[SetupCandidate]:
        ind5 = ctx.ind5
        if ind5 is None or ind5.ema9 is None or ind5.ema21 is None:
            return []

        ema9, ema21 = ind5.ema9, ind5.ema21
        thickness = abs(ema9 - ema21)
        price = ctx.bar.close
        candidates = []

        if price > max(ema9, ema21) and ema9 > ema21:
            candidate = self.make_candidate(
                ctx, Direction.LONG, entry=price, stop=ema21,
                targets=[price + thickness, price + thickness * 2],
                reason=f"Cloud long: {price:.2f} above cloud {ema21:.2f}-{ema9:.2f}",
            )
            if candidate:
                candidates.append(candidate)

        if price < min(ema9, ema21) and ema9 < ema21:
            candidate = self.make_candidate(
                ctx, Direction.SHORT, entry=price, stop=ema21,
                targets=[price - thickness, price - thickness * 2],
                reason=f"Cloud short: {price:.2f} below cloud {ema9:.2f}-{ema21:.2f}",
            )
            if candidate:
                candidates.append(candidate)

        return candidates


# ── Fibonacci Pullback ────────────────────────────────────────────────────

class FibonacciPullbackDetector(SetupDetector):
    """
    Retracement into the 50% / 61.8% zone of the last 10-bar swing.

    Up-swing (low printed before high) -> LONG back toward the high.
    Down-swing (high before low) -> SHORT back toward the low.
    """
    name = "fibonacci_pullback"
    display_name = "Fibonacci Pullback"
    setup_type = SetupType.FIBONACCI_PULLBACK
    min_confluence = 2

    SWING_BARS = 10
    LEVELS = (0.5, 0.618)
    PROXIMITY = 0.005
    EXTENSION = 0.618

    def update(self, ctx: DetectionContext) -> List[SetupCandidate]:
        if len(ctx.previous_bars) < self.SWING_BARS:
            return []

        recent = ctx.previous_bars[-self.SWING_BARS:]
        high_idx = max(range(len(recent)), key=lambda i: recent[i].high)
        low_idx = min(range(len(recent)), key=lambda i: recent[i].low)
        swing_high = recent[high_idx].high
        swing_low = recent[low_idx].low
        rng = swing_high - swing_low
        if rng <= 0:
            return []

        price = ctx.bar.close
        up_swing = low_idx <= high_idx

        if up_swing:
            levels = [swing_high - rng * lvl for lvl in self.LEVELS]
        else:
            levels = [swing_low + rng * lvl for lvl in self.LEVELS]

        if not any(abs(price - lvl) / price < self.PROXIMITY for lvl in levels):
            return []

        if up_swing:
            candidate = self.make_candidate(
                ctx, Direction.LONG, entry=price, stop=swing_low,
                targets=[swing_high, swing_high + rng * self.EXTENSION],
                reason=f"Fib pullback long: {price:.2f} in retracement of {swing_low:.2f}-{swing_high:.2f}",
            )
        else:
            candidate = self.make_candidate(
                ctx, Direction.SHORT, entry=price, stop=swing_high,
                targets=[swing_low, swing_low - rng * self.EXTENSION],
                reason=f"Fib pullback short: {price:.2f} in retracement of {swing_high:.2f}-{swing_low:.2f}",
            )

        return [candidate] if candidate else []


# ── Volume Breakout ───────────────────────────────────────────────────────

class BreakoutDetector(SetupDetector):
    """Close beyond the prior 20-bar high/low on above-average volume."""
    name = "volume_breakout"
    display_name = "Volume Breakout"
    setup_type = SetupType.BREAKOUT
    min_confluence = 2

    CONSOLIDATION_BARS = 20
    STOP_BUFFER = 0.02
    TARGET_PCTS = (0.02, 0.05)

    def update(self, ctx: DetectionContext) -> List[SetupCandidate]:
        if len(ctx.previous_bars) < self.CONSOLIDATION_BARS:
            return []

        consolidation = ctx.previous_bars[-self.CONSOLIDATION_BARS:]
        high20 = max(b.high for b in consolidation)
        low20 = min(b.low for b in consolidation)

        bar = ctx.bar
        if bar.volume <= average_volume(ctx.state, ctx.params.volume_lookback):
            return []

        candidates = []

        if bar.close > high20:
            candidate = self.make_candidate(
                ctx, Direction.LONG, entry=bar.close,
                stop=high20 * (1 - self.STOP_BUFFER),
                targets=[bar.close * (1 + p) for p in self.TARGET_PCTS],
                reason=f"Breakout long: close {bar.close:.2f} > 20-bar high {high20:.2f}",
            )
            if candidate:
                candidates.append(candidate)

        if bar.close < low20:
            candidate = self.make_candidate(
                ctx, Direction.SHORT, entry=bar.close,
                stop=low20 * (1 + self.STOP_BUFFER),
                targets=[bar.close * (1 - p) for p in self.TARGET_PCTS],
                reason=f"Breakdown short: close {bar.close:.2f} < 20-bar low {low20:.2f}",
            )
            if candidate:
                candidates.append(candidate)

        return candidates


# ═══════════════════════════════════════════════════════════════════════════
# SETUP MANAGER
# ═══════════════════════════════════════════════════════════════════════════

class SetupManager:
    """
    Runs every registered detector against one symbol's newest 5m bar.

    A detector that raises is logged and skipped; the others still run.
    """

    def __init__(self, params: Optional[StrategyParams] = None,
                 session: Optional[SessionConfig] = None):
        self.params = params or StrategyParams()
        self.session = session or SessionConfig()
        self.detectors: List[SetupDetector] = []

    def register(self, detector: SetupDetector):
        self.detectors.append(detector)
        logger.debug(f"Registered setup detector: {detector.name} ({detector.display_name})")

    def register_all_defaults(self):
        """Register the six production detectors in evaluation order."""
        self.register(ORBPatientCandleDetector())
        self.register(EMABounceDetector())
        self.register(VWAPReclaimDetector())
        self.register(EMACloudDetector())
        self.register(FibonacciPullbackDetector())
        self.register(BreakoutDetector())

    def passes_volume_guard(self, bar: Bar) -> bool:
        if not self.params.min_volume:
            return True
        return bar.volume >= self.params.min_volume

    def detect(self, state: SymbolState) -> List[SetupCandidate]:
        """Evaluate all detectors for the newest 5m bar of `state`."""
        if state.indicators_5m is None or len(state.bars_5m) < MIN_5M_BARS:
            return []

        ctx = DetectionContext.from_state(state, self.params, self.session)

        if not self.passes_volume_guard(ctx.bar):
            logger.debug(f"[{state.symbol}] Bar volume {ctx.bar.volume:.0f} below guard")
            return []

        candidates: List[SetupCandidate] = []
        for detector in self.detectors:
            if not detector.enabled:
                continue
            try:
                found = detector.update(ctx)
            except Exception as e:
                logger.error(f"Error in detector {detector.name}: {e}", exc_info=True)
                continue
            candidates.extend(found)

        return candidates

    def get_detector_info(self) -> List[dict]:
        return [d.get_info() for d in self.detectors]

    def reset_all(self):
        for d in self.detectors:
            d.reset()
