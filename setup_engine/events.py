"""
Event Fan-out

Typed publish/subscribe between the engine and its consumers (websocket
broadcast, Discord notifier, API cache).

publish() never blocks the ingestion path: events go into a bounded queue
and, when the queue is full, the event is dropped and a warning logged.
Consumers are served either by the async run() loop or by
dispatch_pending() for synchronous callers.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Callable, Dict, List

from .models import SetupEvent

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"

Subscriber = Callable[[SetupEvent], object]


class EventEmitter:
    """Bounded, drop-on-overflow event queue with per-type subscribers."""

    def __init__(self, max_queue_size: int = 1000):
        """
        Initialize emitter.

        Args:
            max_queue_size: Events held before new ones are dropped
        """
        if max_queue_size <= 0:
            raise ValueError(f"max_queue_size must be > 0, got {max_queue_size}")

        self.max_queue_size = max_queue_size
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self.subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self.processing = False

        self.stats = {
            'published': 0,
            'delivered': 0,
            'dropped': 0,
            'subscriber_errors': 0,
        }

    def subscribe(self, event_type: str, callback: Subscriber):
        """Register `callback` for one event type, or "*" for all of them."""
        self.subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: str, callback: Subscriber) -> bool:
        callbacks = self.subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def publish(self, event: SetupEvent) -> bool:
        """
        Queue an event for delivery.

        Returns:
            False if the queue was full and the event was dropped
        """
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.stats['dropped'] += 1
            logger.warning(
                f"Event queue full ({self.max_queue_size}); dropped {event.event_type} "
                f"for {event.setup.id} (total dropped: {self.stats['dropped']})"
            )
            return False

        self.stats['published'] += 1
        return True

    def _callbacks_for(self, event: SetupEvent) -> List[Subscriber]:
        return list(self.subscribers.get(event.event_type, [])) + list(self.subscribers.get(ALL_EVENTS, []))

    def _deliver_sync(self, event: SetupEvent):
        for callback in self._callbacks_for(event):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    # No loop to await on in sync mode
                    result.close()
                    raise TypeError(f"Coroutine subscriber {callback!r} needs the async run() loop")
                self.stats['delivered'] += 1
            except Exception as e:
                self.stats['subscriber_errors'] += 1
                logger.error(f"Error in {event.event_type} subscriber: {e}", exc_info=True)

    async def _deliver_async(self, event: SetupEvent):
        for callback in self._callbacks_for(event):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
                self.stats['delivered'] += 1
            except Exception as e:
                self.stats['subscriber_errors'] += 1
                logger.error(f"Error in {event.event_type} subscriber: {e}", exc_info=True)

    def dispatch_pending(self) -> int:
        """Synchronously deliver everything queued so far. Returns events dispatched."""
        count = 0
        while True:
            try:
                event = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._deliver_sync(event)
            self.queue.task_done()
            count += 1
        return count

    async def run(self):
        """Deliver queued events until stop() is called or the task is cancelled."""
        self.processing = True
        logger.info("Event emitter started")

        try:
            while self.processing:
                try:
                    event = await asyncio.wait_for(self.queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                await self._deliver_async(event)
                self.queue.task_done()
        finally:
            self.processing = False
            logger.info("Event emitter stopped")

    def stop(self):
        self.processing = False

    async def wait_for_drain(self):
        """Wait until every queued event has been delivered."""
        await self.queue.join()

    def pending(self) -> int:
        return self.queue.qsize()

    def get_statistics(self) -> dict:
        stats = self.stats.copy()
        stats['pending'] = self.queue.qsize()
        return stats
