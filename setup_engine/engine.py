"""
Setup Engine

SymbolWorker owns everything about one ticker (state, aggregator,
detectors, lifecycle) and applies that ticker's events strictly in order.
SetupEngine routes inbound market data to the right worker and answers
queries. Consumers only ever receive copies of setups and snapshots.

Usage:
    engine = SetupEngine(load_config())
    engine.emitter.subscribe(SETUP_DETECTED, on_setup)
    engine.process_bar(bar)
    engine.emitter.dispatch_pending()
"""

import copy
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from .aggregator import TimeframeAggregator
from .config import EngineConfig, StrategyParams, validate_strategy
from .events import EventEmitter
from .lifecycle import SetupLifecycleManager
from .models import (
    Bar,
    INACTIVE_STATUSES,
    IndicatorSnapshot,
    Quote,
    Setup,
    SetupDetected,
    SetupEvent,
    SetupStatus,
    Trade,
)
from .setup_detectors import SetupCandidate, SetupManager
from .state import SymbolState

logger = logging.getLogger(__name__)


class SymbolWorker:
    """Single-threaded processor for one symbol's bars, trades and quotes."""

    def __init__(self, symbol: str, config: Optional[EngineConfig] = None,
                 emitter: Optional[EventEmitter] = None):
        self.symbol = symbol
        self.config = config or EngineConfig()
        self.emitter = emitter

        self.state = SymbolState.create(symbol, self.config)
        self.aggregator = TimeframeAggregator()
        self.setup_manager = SetupManager(self.config.strategy, self.config.session)
        self.setup_manager.register_all_defaults()
        self.lifecycle = SetupLifecycleManager()

        self.stats = {
            'bars': 0,
            'trades': 0,
            'quotes': 0,
            'setups_created': 0,
        }

        logger.debug(f"[{symbol}] Worker created")

    # ── Inbound ──────────────────────────────────────────────────────────

    def process_bar(self, bar: Bar) -> List[SetupEvent]:
        """Ingest one 1m bar; returns the setup-detected events it produced."""
        self.stats['bars'] += 1
        built = self.aggregator.add_bar(self.state, bar)
        self.state.refresh_indicators(self.config)

        if '5m' not in built:
            return []

        events: List[SetupEvent] = []
        for candidate in self.setup_manager.detect(self.state):
            setup = self._create_setup(candidate, bar.timestamp)
            events.append(SetupDetected(setup=setup.copy()))

        self._publish(events)
        return events

    def process_trade(self, trade: Trade) -> List[SetupEvent]:
        """Record the print and resolve open setups against it."""
        self.stats['trades'] += 1
        self.state.latest_trade = trade

        events = self.lifecycle.on_trade(self.state, trade)
        self._publish(events)
        return events

    def process_quote(self, quote: Quote):
        self.stats['quotes'] += 1
        self.state.latest_quote = quote

    # ── Setups ───────────────────────────────────────────────────────────

    def _create_setup(self, candidate: SetupCandidate, timestamp: float) -> Setup:
        setup = Setup(
            id=self.state.next_setup_id(),
            symbol=self.symbol,
            setup_type=candidate.setup_type,
            direction=candidate.direction,
            entry_price=candidate.entry_price,
            stop_loss=candidate.stop_loss,
            targets=tuple(candidate.targets),
            confluence_score=candidate.confluence_score,
            confluence_factors=list(candidate.confluence_factors),
            indicators=copy.deepcopy(self.state.indicators_5m) or IndicatorSnapshot(),
            created_at=timestamp,
            last_update=timestamp,
            patient_candle=candidate.patient_candle,
        )
        self.state.setups[setup.id] = setup
        self.stats['setups_created'] += 1

        targets = ', '.join(f"{t:.2f}" for t in setup.targets)
        logger.info(
            f"[{self.symbol}] New setup {setup.id}: {setup.setup_type.value} "
            f"{setup.direction.value} @ {setup.entry_price:.2f} "
            f"(stop {setup.stop_loss:.2f}, targets {targets}, "
            f"confluence {setup.confluence_score}) - {candidate.reason}"
        )
        return setup

    def dismiss_setup(self, setup_id: str) -> bool:
        """Mark an open setup DISMISSED. Returns False if unknown or already terminal."""
        setup = self.state.setups.get(setup_id)
        if setup is None or not setup.is_open:
            return False

        setup.status = SetupStatus.DISMISSED
        self.lifecycle.forget(setup_id)
        logger.info(f"[{self.symbol}] Setup {setup_id} dismissed")
        return True

    def set_params(self, params: StrategyParams):
        self.config = replace(self.config, strategy=params)
        self.setup_manager.params = params

    def _publish(self, events: List[SetupEvent]):
        if self.emitter is None:
            return
        for event in events:
            self.emitter.publish(event)

    def get_statistics(self) -> dict:
        stats = self.stats.copy()
        stats['open_setups'] = len(self.state.open_setups())
        stats['bars_buffered'] = {
            '1m': len(self.state.bars_1m),
            '5m': len(self.state.bars_5m),
            '60m': len(self.state.bars_60m),
        }
        stats['aggregator'] = self.aggregator.get_statistics()
        stats['lifecycle'] = self.lifecycle.get_statistics()
        stats['detectors'] = self.setup_manager.get_detector_info()
        return stats


class SetupEngine:
    """
    Routes market data to per-symbol workers and serves setup queries.

    Workers are created on first sight of a symbol. Symbols share no
    mutable state; setup ids are numbered per symbol.
    """

    def __init__(self, config: Optional[EngineConfig] = None,
                 emitter: Optional[EventEmitter] = None):
        self.config = config or EngineConfig()
        self.emitter = emitter or EventEmitter(self.config.event_queue_size)
        self.workers: Dict[str, SymbolWorker] = {}

        logger.info(
            f"SetupEngine initialized (buffers {self.config.max_bars_1m}/"
            f"{self.config.max_bars_5m}/{self.config.max_bars_60m}, "
            f"event queue {self.config.event_queue_size})"
        )

    def worker_for(self, symbol: str) -> SymbolWorker:
        worker = self.workers.get(symbol)
        if worker is None:
            worker = SymbolWorker(symbol, self.config, self.emitter)
            self.workers[symbol] = worker
            logger.info(f"[{symbol}] Tracking new symbol")
        return worker

    # ── Inbound ──────────────────────────────────────────────────────────

    def process_bar(self, bar: Bar):
        self.worker_for(bar.symbol).process_bar(bar)

    def process_trade(self, trade: Trade):
        self.worker_for(trade.symbol).process_trade(trade)

    def process_quote(self, quote: Quote):
        self.worker_for(quote.symbol).process_quote(quote)

    # ── Queries ──────────────────────────────────────────────────────────

    def get_active_setups(self) -> List[Setup]:
        """Every setup not CLOSED or DISMISSED, across all symbols."""
        return [
            setup.copy()
            for worker in self.workers.values()
            for setup in worker.state.setups.values()
            if setup.status not in INACTIVE_STATUSES
        ]

    def get_setups_for_symbol(self, symbol: str) -> List[Setup]:
        worker = self.workers.get(symbol)
        if worker is None:
            return []
        return [setup.copy() for setup in worker.state.setups.values()]

    def _find_setup(self, setup_id: str):
        symbol = setup_id.rsplit('-', 1)[0]
        worker = self.workers.get(symbol)
        if worker is None or setup_id not in worker.state.setups:
            return None, None
        return worker, worker.state.setups[setup_id]

    def get_setup(self, setup_id: str) -> Optional[Setup]:
        _, setup = self._find_setup(setup_id)
        return setup.copy() if setup else None

    def get_indicators(self, symbol: str, timeframe: str = '5m') -> Optional[IndicatorSnapshot]:
        worker = self.workers.get(symbol)
        if worker is None:
            return None
        snapshot = worker.state.indicators_for(timeframe)
        return copy.deepcopy(snapshot)

    # ── Control ──────────────────────────────────────────────────────────

    def dismiss_setup(self, setup_id: str) -> bool:
        worker, _ = self._find_setup(setup_id)
        if worker is None:
            logger.warning(f"Cannot dismiss unknown setup {setup_id}")
            return False
        return worker.dismiss_setup(setup_id)

    def update_params(self, **changes) -> StrategyParams:
        """
        Replace strategy parameters for all current and future workers.

        Raises:
            ValueError: If a name is not a strategy parameter or a value
                fails the same checks as the config file
        """
        known = set(StrategyParams.__dataclass_fields__)
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown strategy parameters: {', '.join(sorted(unknown))}")

        params = validate_strategy(replace(self.config.strategy, **changes))
        self.config = replace(self.config, strategy=params)
        for worker in self.workers.values():
            worker.set_params(params)

        logger.info(f"Strategy parameters updated: {changes}")
        return params

    def get_params(self) -> StrategyParams:
        return self.config.strategy

    def get_statistics(self) -> dict:
        return {
            'symbols': len(self.workers),
            'active_setups': sum(
                1
                for worker in self.workers.values()
                for setup in worker.state.setups.values()
                if setup.status not in INACTIVE_STATUSES
            ),
            'events': self.emitter.get_statistics(),
            'workers': {
                symbol: worker.get_statistics()
                for symbol, worker in self.workers.items()
            },
        }
