"""
Streaming Runtime

asyncio front end for SetupEngine. Every symbol gets its own ordered queue
and consumer task, so one symbol's events are applied strictly in arrival
order while different symbols proceed independently. The event emitter is
drained by a separate task.

Usage:
    streaming = StreamingEngine(SetupEngine(config))
    await streaming.start()
    streaming.submit_bar(bar)
    ...
    await streaming.stop()
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple, Any

from .config import EngineConfig
from .engine import SetupEngine
from .models import Bar, Quote, Trade

logger = logging.getLogger(__name__)

WorkItem = Tuple[str, Any]


class StreamingEngine:
    """Per-symbol asyncio queues in front of a SetupEngine."""

    def __init__(self, engine: Optional[SetupEngine] = None,
                 config: Optional[EngineConfig] = None):
        self.engine = engine or SetupEngine(config)
        self.queue_size = self.engine.config.symbol_queue_size

        self.queues: Dict[str, asyncio.Queue] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        self.emitter_task: Optional[asyncio.Task] = None
        self.running = False

        self.stats = {
            'submitted': 0,
            'processed': 0,
            'rejected': 0,
            'errors': 0,
        }

    async def start(self):
        """Start the emitter drain task. Symbol tasks start on first submit."""
        if self.running:
            return
        self.running = True
        self.emitter_task = asyncio.create_task(self.engine.emitter.run())
        logger.info("Streaming engine started")

    # ── Submission ───────────────────────────────────────────────────────

    def submit_bar(self, bar: Bar) -> bool:
        return self._submit(bar.symbol, ('bar', bar))

    def submit_trade(self, trade: Trade) -> bool:
        return self._submit(trade.symbol, ('trade', trade))

    def submit_quote(self, quote: Quote) -> bool:
        return self._submit(quote.symbol, ('quote', quote))

    def _submit(self, symbol: str, item: WorkItem) -> bool:
        if not self.running:
            raise RuntimeError("StreamingEngine.start() must be awaited before submitting data")

        queue = self.queues.get(symbol)
        if queue is None:
            queue = self._start_symbol(symbol)

        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            self.stats['rejected'] += 1
            logger.warning(
                f"[{symbol}] Input queue full ({self.queue_size}); dropped {item[0]}"
            )
            return False

        self.stats['submitted'] += 1
        return True

    def _start_symbol(self, symbol: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self.queues[symbol] = queue
        self.tasks[symbol] = asyncio.create_task(self._consume(symbol, queue))
        logger.info(f"[{symbol}] Worker task started")
        return queue

    # ── Consumers ────────────────────────────────────────────────────────

    async def _consume(self, symbol: str, queue: asyncio.Queue):
        worker = self.engine.worker_for(symbol)
        handlers = {
            'bar': worker.process_bar,
            'trade': worker.process_trade,
            'quote': worker.process_quote,
        }

        try:
            while True:
                kind, payload = await queue.get()
                try:
                    handlers[kind](payload)
                    self.stats['processed'] += 1
                except Exception as e:
                    self.stats['errors'] += 1
                    logger.error(f"[{symbol}] Error processing {kind}: {e}", exc_info=True)
                finally:
                    queue.task_done()

                # Let other symbols and the emitter run between items
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            logger.info(f"[{symbol}] Worker task stopped")
            raise

    # ── Shutdown ─────────────────────────────────────────────────────────

    async def join(self):
        """Wait until every submitted item is processed and its events delivered."""
        await asyncio.gather(*(queue.join() for queue in list(self.queues.values())))
        if self.emitter_task is not None and not self.emitter_task.done():
            await self.engine.emitter.wait_for_drain()

    async def stop(self, drain: bool = True):
        """
        Stop all symbol tasks and the emitter.

        Args:
            drain: Process everything already queued before stopping
        """
        if not self.running:
            return

        if drain:
            await self.join()

        self.running = False
        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self.engine.emitter.stop()
        if self.emitter_task is not None:
            self.emitter_task.cancel()
            await asyncio.gather(self.emitter_task, return_exceptions=True)
            self.emitter_task = None

        self.queues.clear()
        self.tasks.clear()
        logger.info(f"Streaming engine stopped ({self.stats['processed']} items processed)")

    def get_statistics(self) -> dict:
        stats = self.stats.copy()
        stats['symbols'] = list(self.queues.keys())
        stats['pending'] = {symbol: q.qsize() for symbol, q in self.queues.items()}
        stats['engine'] = self.engine.get_statistics()
        return stats
