"""
Event System Module

Publish/subscribe dispatcher for loan servicing events. The servicing layer
turns commands (a recorded payment) into engine calls and publishes the
results (installments updated, loan completed) for persistence and
notification handlers to pick up.
"""

from collections import defaultdict
from enum import Enum
from typing import Callable, Dict, List, Any, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock

EventHandler = Callable[['EventPayload'], None]


class LendingEvent(Enum):
    """Events emitted by the servicing layer"""
    SCHEDULE_CREATED = "schedule.created"
    RATE_SOLVED = "rate.solved"
    PAYMENT_RECORDED = "payment.recorded"
    PRINCIPAL_REDUCED = "principal.reduced"
    INSTALLMENTS_UPDATED = "installments.updated"
    LOAN_COMPLETED = "loan.completed"
    LATE_FEES_ASSESSED = "late_fees.assessed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Union[str, datetime]) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


@dataclass
class EventPayload:
    """One published event; `data` holds JSON-safe values only"""
    event_type: LendingEvent
    entity_type: str
    entity_id: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=_utc_now)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_id': self.event_id,
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'timestamp': self.timestamp.isoformat(),
            'data': self.data,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'EventPayload':
        return cls(
            event_type=LendingEvent(raw['event_type']),
            entity_type=raw['entity_type'],
            entity_id=raw['entity_id'],
            data=raw['data'],
            timestamp=_parse_timestamp(raw['timestamp']),
            event_id=raw['event_id'],
        )


def _handler_name(handler: Callable) -> str:
    return getattr(handler, '__qualname__', None) or getattr(handler, '__name__', repr(handler))


class EventDispatcher:
    """
    Routes published events to the handlers subscribed to them

    Handlers for the specific event type run first, then the catch-all
    handlers, each in subscription order.
    """

    def __init__(self):
        self._handlers: Dict[LendingEvent, List[EventHandler]] = defaultdict(list)
        self._catch_all: List[EventHandler] = []
        self._lock = RLock()
        self.logger = logging.getLogger("lending.events")

    def subscribe(self, event_type: LendingEvent, handler: EventHandler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)
        self.logger.debug(f"{_handler_name(handler)} subscribed to {event_type.value}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to every event type"""
        with self._lock:
            self._catch_all.append(handler)
        self.logger.debug(f"{_handler_name(handler)} subscribed to all events")

    def unsubscribe(self, event_type: LendingEvent, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                self.logger.debug(f"{_handler_name(handler)} unsubscribed from {event_type.value}")
            else:
                self.logger.warning(f"{_handler_name(handler)} was not subscribed to {event_type.value}")

    def publish(self, event: EventPayload) -> None:
        """
        Deliver an event to its subscribers

        Handler exceptions propagate to the publisher.
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._catch_all)

        self.logger.debug(
            f"Publishing {event.event_type.value} for {event.entity_type}:{event.entity_id} "
            f"to {len(handlers)} handler(s)"
        )
        for handler in handlers:
            handler(event)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
            self._catch_all.clear()
        self.logger.info("All event handlers cleared")

    def get_handler_count(self, event_type: Optional[LendingEvent] = None) -> int:
        """Handlers for one event type, or every subscription when omitted"""
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(handlers) for handlers in self._handlers.values()) + len(self._catch_all)
