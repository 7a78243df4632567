"""
Event dispatcher for decoupled notifications.

This pattern separates pipeline and commission logic from notification
delivery. Services emit an event after their transaction commits; whatever
subscribes (email, in-app notifications, spreadsheet sync) runs best-effort.

Usage in services:
    from app.services.event_dispatcher import emit_event, EventType

    warnings = await emit_event(EventType.DEAL_STAGE_CHANGED, {
        "deal_id": deal.id,
        "from_stage": "quote_sent",
        "to_stage": "quote_approved",
    }, target_user_id=deal.referrer_id)

A failing handler never fails the emitting operation: its error is logged
and returned as a warning string.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, DefaultDict, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Events emitted by the referral pipeline and commission engine."""
    # Deal events
    DEAL_SUBMITTED = "deal.submitted"
    DEAL_STAGE_CHANGED = "deal.stage_changed"

    # Commission events
    COMMISSION_READY_FOR_APPROVAL = "commission.ready_for_approval"
    COMMISSION_DECIDED = "commission.decided"
    COMMISSION_PAID = "commission.paid"
    COMMISSION_WITHDRAWN = "commission.withdrawn"


@dataclass
class Event:
    """Represents an event to be dispatched."""
    type: EventType
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    target_user_id: Optional[str] = None


# Sync or async callable taking an Event
EventHandler = Callable[[Event], Any]


class EventDispatcher:
    """
    In-process pub/sub for pipeline and commission events.

    Handlers run after the emitting transaction has committed. Their
    failures are collected and handed back to the caller as warnings.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[EventType, List[EventHandler]] = defaultdict(list)
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug(f"Handler {getattr(handler, '__name__', handler)} subscribed to {event_type.value}")

    def subscribe_all(self, handler: EventHandler) -> None:
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def clear(self) -> None:
        """Remove every subscriber."""
        self._handlers.clear()
        self._global_handlers.clear()

    def _failure(self, event: Event, error: BaseException) -> str:
        logger.error(f"Error in event handler for {event.type.value}: {error}")
        return f"{event.type.value}: {error}"

    async def emit(self, event: Event) -> List[str]:
        """Deliver an event to its subscribers; returns one message per failed handler."""
        handlers = [*self._handlers.get(event.type, []), *self._global_handlers]
        if not handlers:
            logger.debug(f"No handlers for event {event.type.value}")
            return []

        failures: List[str] = []
        pending = []
        for handler in handlers:
            try:
                outcome = handler(event)
            except Exception as e:
                failures.append(self._failure(event, e))
                continue
            if asyncio.iscoroutine(outcome):
                pending.append(outcome)

        for outcome in await asyncio.gather(*pending, return_exceptions=True):
            if isinstance(outcome, BaseException):
                failures.append(self._failure(event, outcome))

        logger.debug(f"Event {event.type.value} dispatched to {len(handlers)} handlers, {len(failures)} failed")
        return failures


# Process-wide instance shared by every service
_dispatcher = EventDispatcher()


def get_dispatcher() -> EventDispatcher:
    """Get the global event dispatcher."""
    return _dispatcher


async def emit_event(
    event_type: EventType,
    data: Dict[str, Any],
    target_user_id: Optional[str] = None,
) -> List[str]:
    """
    Publish an event on the process-wide dispatcher.

    Services call this after committing, never inside a transaction.

    Args:
        event_type: Type of event
        data: Event data payload
        target_user_id: Partner the event concerns (for personal notifications)

    Returns:
        Warning messages for every subscriber that failed
    """
    return await _dispatcher.emit(Event(type=event_type, data=data, target_user_id=target_user_id))


def subscribe(event_type: EventType, handler: EventHandler) -> None:
    """Subscribe a handler to an event type."""
    _dispatcher.subscribe(event_type, handler)


def subscribe_all(handler: EventHandler) -> None:
    """Subscribe a handler to all events."""
    _dispatcher.subscribe_all(handler)
