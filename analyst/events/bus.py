"""
Event Bus: in-process async dispatch for post-answer work.

Design:
- asyncio.Queue for immediate in-process dispatch
- emit() never blocks the caller (put_nowait; a full queue drops and logs)
- a single consumer task runs handlers sequentially
- handler failures are logged, never propagated to the emitter
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("analyst.events")

# ── Event type constants ─────────────────────────────────────────────────────
ANALYSIS_COMPLETED = "ANALYSIS_COMPLETED"


# ── Event ────────────────────────────────────────────────────────────────────
class Event:
    """Immutable event payload."""

    __slots__ = ("event_type", "payload", "created_at")

    def __init__(self, event_type: str, payload: Dict[str, Any]):
        self.event_type = event_type
        self.payload = payload
        self.created_at = datetime.now(timezone.utc)

    def __repr__(self):
        return f"Event({self.event_type}, key={self.payload.get('conversation_key')})"


# ── EventBus ─────────────────────────────────────────────────────────────────
class EventBus:
    """
    In-memory event bus with async consumer.

    Events are dispatched to registered handlers in subscription order.
    If no handler is registered for an event type, a warning is logged.
    """

    def __init__(self, max_queue_size: int = 1000):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._handlers: Dict[str, List[Callable]] = {}
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def subscribe(self, event_type: str, handler: Callable):
        """Register an async handler for an event type."""
        self._handlers.setdefault(event_type, []).append(handler)
        logger.info(f"EventBus: subscribed {getattr(handler, '__name__', handler)} to {event_type}")

    def emit(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """Queue an event for async processing. Returns False if it was dropped."""
        event = Event(event_type, payload)
        try:
            self._queue.put_nowait(event)
            logger.debug(f"EventBus: emitted {event}")
            return True
        except asyncio.QueueFull:
            logger.error(f"EventBus: queue full ({self._queue.maxsize}), dropping {event}")
            return False

    async def start(self):
        """Start the background consumer task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._consumer_loop())
        logger.info("EventBus: started consumer loop")

    async def stop(self):
        """Graceful shutdown: drain queue then stop."""
        self._running = False
        if self._task:
            # Sentinel to unblock the consumer
            await self._queue.put(None)
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                logger.warning("EventBus: consumer did not finish in 10s, cancelled")
            self._task = None
        logger.info(f"EventBus: stopped (pending={self._queue.qsize()})")

    async def drain(self):
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _consumer_loop(self):
        """Process events sequentially from the queue."""
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    break
                await self._dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"EventBus: consumer loop error: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: Event):
        """Dispatch event to all registered handlers."""
        handlers = self._handlers.get(event.event_type, [])
        if not handlers:
            logger.warning(f"EventBus: no handlers for {event.event_type}")
            return

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"EventBus: handler {getattr(handler, '__name__', handler)} failed for {event}: {e}",
                    exc_info=True,
                )

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._running
