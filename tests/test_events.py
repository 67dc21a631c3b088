"""
Tests for Event Fan-out
"""

import asyncio
import logging

import pytest

from setup_engine.events import ALL_EVENTS, EventEmitter
from setup_engine.models import (
    Direction,
    IndicatorSnapshot,
    Setup,
    SetupDetected,
    SetupType,
    StopLossHit,
    TargetHit,
    SETUP_DETECTED,
    STOP_LOSS_HIT,
    TARGET_HIT,
)


def make_setup(setup_id='TEST-1') -> Setup:
    return Setup(
        id=setup_id,
        symbol='TEST',
        setup_type=SetupType.VWAP_STRATEGY,
        direction=Direction.LONG,
        entry_price=100.0,
        stop_loss=99.0,
        targets=(101.0, 102.0),
        confluence_score=2,
        confluence_factors=[],
        indicators=IndicatorSnapshot(),
        created_at=0.0,
        last_update=0.0,
    )


class TestSubscriptions:
    """Test typed subscriptions and synchronous dispatch"""

    def test_typed_delivery(self):
        """Test subscribers only receive their event type"""
        emitter = EventEmitter()
        detected, hits = [], []
        emitter.subscribe(SETUP_DETECTED, detected.append)
        emitter.subscribe(TARGET_HIT, hits.append)

        emitter.publish(SetupDetected(setup=make_setup()))
        emitter.publish(TargetHit(setup=make_setup(), target_index=0, price=101.0))
        assert emitter.dispatch_pending() == 2

        assert len(detected) == 1
        assert len(hits) == 1
        assert hits[0].target_index == 0

    def test_wildcard(self):
        """Test "*" receives every event in publish order"""
        emitter = EventEmitter()
        seen = []
        emitter.subscribe(ALL_EVENTS, lambda e: seen.append(e.event_type))

        emitter.publish(SetupDetected(setup=make_setup()))
        emitter.publish(StopLossHit(setup=make_setup(), price=98.0))
        emitter.dispatch_pending()

        assert seen == [SETUP_DETECTED, STOP_LOSS_HIT]

    def test_unsubscribe(self):
        """Test removed subscribers stop receiving"""
        emitter = EventEmitter()
        seen = []
        emitter.subscribe(SETUP_DETECTED, seen.append)
        assert emitter.unsubscribe(SETUP_DETECTED, seen.append)
        assert not emitter.unsubscribe(SETUP_DETECTED, seen.append)

        emitter.publish(SetupDetected(setup=make_setup()))
        emitter.dispatch_pending()
        assert seen == []

    def test_subscriber_error_isolated(self, caplog):
        """Test a failing subscriber is logged and others still run"""
        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise RuntimeError("consumer down")

        emitter.subscribe(SETUP_DETECTED, broken)
        emitter.subscribe(SETUP_DETECTED, seen.append)

        with caplog.at_level(logging.ERROR):
            emitter.publish(SetupDetected(setup=make_setup()))
            emitter.dispatch_pending()

        assert len(seen) == 1
        assert 'consumer down' in caplog.text
        assert emitter.get_statistics()['subscriber_errors'] == 1


class TestOverflow:
    """Test bounded queue behaviour"""

    def test_drop_on_full(self, caplog):
        """Test events beyond the queue size are dropped and logged"""
        emitter = EventEmitter(max_queue_size=2)

        with caplog.at_level(logging.WARNING):
            assert emitter.publish(SetupDetected(setup=make_setup('TEST-1')))
            assert emitter.publish(SetupDetected(setup=make_setup('TEST-2')))
            assert not emitter.publish(SetupDetected(setup=make_setup('TEST-3')))

        stats = emitter.get_statistics()
        assert stats['published'] == 2
        assert stats['dropped'] == 1
        assert stats['pending'] == 2
        assert 'TEST-3' in caplog.text

    def test_publish_after_drain(self):
        """Test space frees up once events are dispatched"""
        emitter = EventEmitter(max_queue_size=1)
        emitter.publish(SetupDetected(setup=make_setup('TEST-1')))
        emitter.dispatch_pending()
        assert emitter.publish(SetupDetected(setup=make_setup('TEST-2')))

    def test_invalid_size(self):
        """Test queue size must be positive"""
        with pytest.raises(ValueError):
            EventEmitter(max_queue_size=0)


class TestAsyncRun:
    """Test the async drain loop"""

    def test_run_awaits_coroutines(self):
        """Test coroutine subscribers are awaited by run()"""
        received = []

        async def on_event(event):
            await asyncio.sleep(0)
            received.append(event.setup.id)

        async def scenario():
            emitter = EventEmitter()
            emitter.subscribe(ALL_EVENTS, on_event)
            task = asyncio.create_task(emitter.run())

            emitter.publish(SetupDetected(setup=make_setup('TEST-1')))
            emitter.publish(SetupDetected(setup=make_setup('TEST-2')))
            await emitter.wait_for_drain()

            emitter.stop()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return emitter

        emitter = asyncio.run(scenario())
        assert received == ['TEST-1', 'TEST-2']
        assert emitter.get_statistics()['delivered'] == 2

    def test_sync_dispatch_rejects_coroutines(self, caplog):
        """Test coroutine subscribers are reported in sync mode"""
        async def on_event(event):
            pass

        emitter = EventEmitter()
        emitter.subscribe(SETUP_DETECTED, on_event)
        with caplog.at_level(logging.ERROR):
            emitter.publish(SetupDetected(setup=make_setup()))
            emitter.dispatch_pending()

        assert emitter.get_statistics()['subscriber_errors'] == 1


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
