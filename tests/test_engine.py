"""
Tests for the Setup Engine facade and per-symbol workers
"""

import pytest

from setup_engine.config import EngineConfig, StrategyParams
from setup_engine.engine import SetupEngine, SymbolWorker
from setup_engine.models import (
    Direction,
    Quote,
    SetupStatus,
    Trade,
    SETUP_DETECTED,
    STOP_LOSS_HIT,
    TARGET_HIT,
)
from setup_engine.events import ALL_EVENTS
from setup_engine.setup_detectors import SetupDetector

# 54 one-minute bars -> 50 five-minute bars -> first 5m snapshot
WARMUP_BARS = 54


class AlwaysLongDetector(SetupDetector):
    """Emits a fallback-level long on every evaluated bar."""
    name = "always_long"
    min_confluence = 0

    def update(self, ctx):
        candidate = self.make_candidate(ctx, Direction.LONG, entry=ctx.bar.close, reason="test")
        return [candidate] if candidate else []


def force_setups(engine: SetupEngine, symbol: str = 'TEST') -> SymbolWorker:
    worker = engine.worker_for(symbol)
    worker.setup_manager.detectors = [AlwaysLongDetector()]
    return worker


def feed(engine, bars):
    for bar in bars:
        engine.process_bar(bar)


@pytest.fixture
def engine():
    return SetupEngine()


class TestIngestion:
    """Test bar, trade and quote routing"""

    def test_workers_created_per_symbol(self, engine, make_bars):
        """Test one worker per symbol on first sight"""
        feed(engine, make_bars(3, symbol='AAA'))
        feed(engine, make_bars(3, symbol='BBB'))
        assert list(engine.workers) == ['AAA', 'BBB']

    def test_buffer_caps(self, engine, make_bars):
        """Test buffers stay within 500/200/100"""
        feed(engine, make_bars(700))
        state = engine.workers['TEST'].state
        assert len(state.bars_1m) == 500
        assert len(state.bars_5m) == 200
        assert len(state.bars_60m) == 100

    def test_quote_stored(self, engine):
        """Test latest quote is kept"""
        quote = Quote('TEST', 1.0, 99.9, 100.1, 10, 12)
        engine.process_quote(quote)
        assert engine.workers['TEST'].state.latest_quote == quote

    def test_trade_stored(self, engine):
        """Test latest trade is kept"""
        trade = Trade('TEST', 1.0, 100.0, 5)
        engine.process_trade(trade)
        assert engine.workers['TEST'].state.latest_trade == trade

    def test_no_setups_before_warmup(self, engine, make_bars):
        """Test detection waits for the 5m snapshot"""
        force_setups(engine)
        feed(engine, make_bars(WARMUP_BARS - 1))
        assert engine.get_setups_for_symbol('TEST') == []

        feed(engine, make_bars(WARMUP_BARS)[-1:])
        assert len(engine.get_setups_for_symbol('TEST')) == 1


class TestSetupCreation:
    """Test setup records and detection events"""

    def test_ids_and_fields(self, engine, make_bars):
        """Test setups are numbered per symbol and stamped with bar time"""
        force_setups(engine)
        bars = make_bars(60)
        feed(engine, bars)

        setups = engine.get_setups_for_symbol('TEST')
        assert [s.id for s in setups] == [f'TEST-{i}' for i in range(1, 8)]

        first = setups[0]
        assert first.status == SetupStatus.SETUP_FORMING
        assert first.timeframe == '5m'
        assert first.created_at == bars[WARMUP_BARS - 1].timestamp
        assert first.last_update == first.created_at
        assert first.indicators.atr14 is not None
        assert first.stop_loss < first.entry_price < first.targets[0] < first.targets[1]

    def test_ids_independent_per_symbol(self, engine, make_bars):
        """Test symbols do not share the id counter"""
        force_setups(engine, 'AAA')
        force_setups(engine, 'BBB')
        feed(engine, make_bars(WARMUP_BARS, symbol='AAA'))
        feed(engine, make_bars(WARMUP_BARS, symbol='BBB'))

        assert [s.id for s in engine.get_setups_for_symbol('AAA')] == ['AAA-1']
        assert [s.id for s in engine.get_setups_for_symbol('BBB')] == ['BBB-1']

    def test_detected_events(self, engine, make_bars):
        """Test one setup-detected event per setup"""
        force_setups(engine)
        seen = []
        engine.emitter.subscribe(SETUP_DETECTED, seen.append)

        feed(engine, make_bars(60))
        engine.emitter.dispatch_pending()

        assert [e.setup.id for e in seen] == [s.id for s in engine.get_setups_for_symbol('TEST')]


class TestLifecycleThroughEngine:
    """Test trades resolving setups end to end"""

    def test_target_then_stop(self, engine, make_bars):
        """Test target and stop events reach subscribers"""
        worker = force_setups(engine)
        feed(engine, make_bars(WARMUP_BARS))
        setup = engine.get_setup('TEST-1')
        engine.emitter.dispatch_pending()

        events = []
        engine.emitter.subscribe(ALL_EVENTS, events.append)

        engine.process_trade(Trade('TEST', 10.0, setup.targets[0], 1))
        engine.process_trade(Trade('TEST', 20.0, setup.stop_loss, 1))
        engine.emitter.dispatch_pending()

        types = [e.event_type for e in events]
        assert types == [TARGET_HIT, STOP_LOSS_HIT]
        assert engine.get_setup('TEST-1').status == SetupStatus.CLOSED
        assert worker.stats['trades'] == 2

    def test_active_excludes_closed(self, engine, make_bars):
        """Test closed setups leave the active list but stay queryable"""
        force_setups(engine)
        feed(engine, make_bars(WARMUP_BARS))
        assert len(engine.get_active_setups()) == 1

        engine.process_trade(Trade('TEST', 10.0, 0.01, 1))
        assert engine.get_active_setups() == []
        assert engine.get_setup('TEST-1').status == SetupStatus.CLOSED
        assert len(engine.get_setups_for_symbol('TEST')) == 1


class TestQueries:
    """Test query results are copies and lookups behave"""

    def test_copies(self, engine, make_bars):
        """Test mutating query results does not affect engine state"""
        force_setups(engine)
        feed(engine, make_bars(WARMUP_BARS))

        setup = engine.get_active_setups()[0]
        setup.status = SetupStatus.CLOSED
        setup.confluence_factors.append('junk')

        stored = engine.get_setup(setup.id)
        assert stored.status == SetupStatus.SETUP_FORMING
        assert 'junk' not in stored.confluence_factors

    def test_unknown_lookups(self, engine):
        """Test unknown symbols and ids"""
        assert engine.get_setups_for_symbol('NOPE') == []
        assert engine.get_setup('NOPE-1') is None
        assert engine.get_indicators('NOPE') is None

    def test_indicators(self, engine, make_bars):
        """Test snapshot queries per timeframe"""
        feed(engine, make_bars(WARMUP_BARS))

        assert engine.get_indicators('TEST', '5m') is not None
        assert engine.get_indicators('TEST', '1m') is None
        assert engine.get_indicators('TEST', '60m') is None

        snapshot = engine.get_indicators('TEST', '5m')
        snapshot.ema9 = -1.0
        assert engine.get_indicators('TEST', '5m').ema9 != -1.0

        with pytest.raises(ValueError):
            engine.get_indicators('TEST', '15m')

    def test_symbols_with_dashes(self, engine, make_bars):
        """Test id lookup for symbols containing '-'"""
        force_setups(engine, 'BRK-B')
        feed(engine, make_bars(WARMUP_BARS, symbol='BRK-B'))
        assert engine.get_setup('BRK-B-1') is not None

    def test_statistics(self, engine, make_bars):
        """Test engine statistics"""
        feed(engine, make_bars(10))
        stats = engine.get_statistics()
        assert stats['symbols'] == 1
        assert stats['workers']['TEST']['bars'] == 10
        assert 'dropped' in stats['events']

    def test_statistics_counts_active_setups(self, engine, make_bars):
        """Test active_setups matches the query and drops dismissed setups"""
        force_setups(engine)
        feed(engine, make_bars(WARMUP_BARS + 5))

        active = engine.get_active_setups()
        assert active
        assert engine.get_statistics()['active_setups'] == len(active)

        engine.dismiss_setup(active[0].id)
        assert engine.get_statistics()['active_setups'] == len(active) - 1


class TestDismiss:
    """Test external dismissal"""

    def test_dismiss(self, engine, make_bars):
        """Test dismissed setups leave the active list and stop tracking"""
        force_setups(engine)
        feed(engine, make_bars(WARMUP_BARS))

        assert engine.dismiss_setup('TEST-1')
        assert engine.get_setup('TEST-1').status == SetupStatus.DISMISSED
        assert engine.get_active_setups() == []

        engine.process_trade(Trade('TEST', 10.0, 0.01, 1))
        assert engine.emitter.dispatch_pending() == 1  # only the setup-detected event
        assert engine.get_setup('TEST-1').status == SetupStatus.DISMISSED

    def test_dismiss_twice_or_unknown(self, engine, make_bars):
        """Test dismissing terminal or unknown setups"""
        force_setups(engine)
        feed(engine, make_bars(WARMUP_BARS))

        assert engine.dismiss_setup('TEST-1')
        assert not engine.dismiss_setup('TEST-1')
        assert not engine.dismiss_setup('TEST-99')
        assert not engine.dismiss_setup('OTHER-1')


class TestParams:
    """Test runtime strategy parameter updates"""

    def test_update_params(self, engine, make_bars):
        """Test updates reach existing workers and future ones"""
        feed(engine, make_bars(3, symbol='AAA'))

        params = engine.update_params(min_volume=500, r_targets=[1, 3])
        assert params.r_targets == (1, 3)
        assert engine.get_params() == params
        assert engine.workers['AAA'].setup_manager.params.min_volume == 500

        feed(engine, make_bars(3, symbol='BBB'))
        assert engine.workers['BBB'].setup_manager.params.min_volume == 500

    def test_unknown_param(self, engine):
        """Test unknown parameter names are rejected"""
        with pytest.raises(ValueError):
            engine.update_params(not_a_param=1)
        assert engine.get_params() == StrategyParams()

    @pytest.mark.parametrize('changes', [
        {'volume_lookback': 0},
        {'volume_lookback': 2.5},
        {'r_targets': []},
        {'r_targets': [1, -2]},
        {'atr_mult_stop': -3},
        {'min_volume': 'lots'},
        {'patient_candle_threshold': True},
        {'rsi_oversold': 80, 'rsi_overbought': 20},
    ])
    def test_invalid_param_values(self, engine, make_bars, changes):
        """Test runtime updates get the same checks as the config file"""
        feed(engine, make_bars(3, symbol='AAA'))

        with pytest.raises(ValueError):
            engine.update_params(**changes)
        assert engine.get_params() == StrategyParams()
        assert engine.workers['AAA'].setup_manager.params == StrategyParams()

    def test_update_params_normalizes_types(self, engine):
        """Test ints become floats and target lists become tuples"""
        params = engine.update_params(atr_mult_stop=2, r_targets=[1, 2, 3])
        assert isinstance(params.atr_mult_stop, float)
        assert params.r_targets == (1.0, 2.0, 3.0)


class TestIsolationAndDeterminism:
    """Test symbol isolation and replay determinism"""

    def test_interleaved_matches_isolated(self, make_bars):
        """Test interleaving symbols gives the same results as isolated runs"""
        aaa = make_bars(250, symbol='AAA', seed=1)
        bbb = make_bars(250, symbol='BBB', seed=2)

        mixed = SetupEngine()
        for a, b in zip(aaa, bbb):
            mixed.process_bar(a)
            mixed.process_bar(b)

        only_a, only_b = SetupEngine(), SetupEngine()
        feed(only_a, aaa)
        feed(only_b, bbb)

        for timeframe in ('1m', '5m', '60m'):
            assert mixed.get_indicators('AAA', timeframe) == only_a.get_indicators('AAA', timeframe)
            assert mixed.get_indicators('BBB', timeframe) == only_b.get_indicators('BBB', timeframe)

        assert [s.to_dict() for s in mixed.get_setups_for_symbol('AAA')] == \
            [s.to_dict() for s in only_a.get_setups_for_symbol('AAA')]

    def test_replay_is_deterministic(self, make_bars):
        """Test the same bars on a fresh engine give identical setups"""
        bars = make_bars(400, seed=7)

        first, second = SetupEngine(), SetupEngine()
        feed(first, bars)
        feed(second, bars)

        assert [s.to_dict() for s in first.get_setups_for_symbol('TEST')] == \
            [s.to_dict() for s in second.get_setups_for_symbol('TEST')]

    def test_forced_replay_ids(self, make_bars):
        """Test forced setups repeat with the same ids and order"""
        bars = make_bars(80)
        runs = []
        for _ in range(2):
            engine = SetupEngine(EngineConfig())
            force_setups(engine)
            feed(engine, bars)
            runs.append([(s.id, s.entry_price) for s in engine.get_setups_for_symbol('TEST')])

        assert runs[0] == runs[1]
        assert len(runs[0]) == 80 - WARMUP_BARS + 1


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
