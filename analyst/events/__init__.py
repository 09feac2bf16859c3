"""
In-process event infrastructure for fire-and-forget analyst work.

Usage:
    from analyst.events import EventBus, ANALYSIS_COMPLETED

    bus = EventBus()
    bus.subscribe(ANALYSIS_COMPLETED, learning_handler)
    await bus.start()
    bus.emit(ANALYSIS_COMPLETED, {"conversation_key": "room-1", ...})
"""

from analyst.events.bus import (
    ANALYSIS_COMPLETED,
    Event,
    EventBus,
)

__all__ = [
    "ANALYSIS_COMPLETED",
    "Event",
    "EventBus",
]
