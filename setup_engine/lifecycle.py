"""
Setup Lifecycle

Tracks open setups against live trade prices.

State machine (driven only by trade ticks):
    SETUP_FORMING --first target crossed--> ACTIVE
    SETUP_FORMING / ACTIVE --stop crossed--> CLOSED (terminal)

Each target fires one target-hit event the first time it is crossed; the
status itself is set to ACTIVE once and does not advance per target.
Levels are never modified here; only `status` and `last_update` change.
"""

import logging
from typing import Dict, List, Set

from .models import (
    Direction,
    Setup,
    SetupEvent,
    SetupStatus,
    StopLossHit,
    TargetHit,
    Trade,
)
from .state import SymbolState

logger = logging.getLogger(__name__)


def target_crossed(direction: Direction, price: float, target: float) -> bool:
    if direction == Direction.LONG:
        return price >= target
    return price <= target


def stop_crossed(direction: Direction, price: float, stop: float) -> bool:
    if direction == Direction.LONG:
        return price <= stop
    return price >= stop


class SetupLifecycleManager:
    """Evaluates a symbol's open setups on every trade tick."""

    def __init__(self):
        # setup id -> indexes of targets already reported
        self._targets_hit: Dict[str, Set[int]] = {}
        self.stats = {
            'ticks_evaluated': 0,
            'targets_hit': 0,
            'stops_hit': 0,
        }

    def on_trade(self, state: SymbolState, trade: Trade) -> List[SetupEvent]:
        """Evaluate every open setup of `state` against one trade print."""
        self.stats['ticks_evaluated'] += 1
        events: List[SetupEvent] = []
        for setup in state.open_setups():
            events.extend(self.evaluate(setup, trade.price, trade.timestamp))
        return events

    def evaluate(self, setup: Setup, price: float, timestamp: float) -> List[SetupEvent]:
        """
        Check one setup against `price`.

        Returns:
            Events produced by this evaluation, each carrying a copy of the setup
        """
        if not setup.is_open:
            return []

        setup.last_update = timestamp
        events: List[SetupEvent] = []
        reported = self._targets_hit.setdefault(setup.id, set())

        for index, target in enumerate(setup.targets):
            if index in reported or not target_crossed(setup.direction, price, target):
                continue

            reported.add(index)
            if setup.status != SetupStatus.ACTIVE:
                setup.status = SetupStatus.ACTIVE

            self.stats['targets_hit'] += 1
            events.append(TargetHit(setup=setup.copy(), target_index=index, price=price))
            logger.info(
                f"[{setup.symbol}] Target {index + 1} hit for {setup.id} "
                f"({setup.setup_type.value} {setup.direction.value}) @ {price:.2f}"
            )

        if stop_crossed(setup.direction, price, setup.stop_loss):
            setup.status = SetupStatus.CLOSED
            self._targets_hit.pop(setup.id, None)

            self.stats['stops_hit'] += 1
            events.append(StopLossHit(setup=setup.copy(), price=price))
            logger.info(
                f"[{setup.symbol}] Stop hit for {setup.id} "
                f"({setup.setup_type.value} {setup.direction.value}) @ {price:.2f}"
            )

        return events

    def forget(self, setup_id: str) -> None:
        """Drop tracking for a setup closed from outside the engine."""
        self._targets_hit.pop(setup_id, None)

    def get_statistics(self) -> dict:
        return self.stats.copy()
