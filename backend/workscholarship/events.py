"""Domain events raised by cycle transitions and their dispatcher.

Transitions return their events inside the successful `DomainResult`; the
service layer publishes them only after the change has been committed.
Delivery is best-effort: a failing handler is logged and never undoes the
committed transition.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List

from . import clock

_LOGGER = logging.getLogger("workscholarship.events")


@dataclass(frozen=True)
class CycleEvent:
    cycle_id: uuid.UUID
    occurred_on: datetime = field(default_factory=clock.utcnow)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {
            'event': self.name,
            'cycle_id': str(self.cycle_id),
            'occurred_on': self.occurred_on.isoformat(),
        }


class CycleCreated(CycleEvent):
    pass


class ApplicationsOpened(CycleEvent):
    pass


class ApplicationsClosed(CycleEvent):
    pass


class ApplicationsReopened(CycleEvent):
    pass


class CycleActivated(CycleEvent):
    pass


class CycleDatesExtended(CycleEvent):
    pass


class CycleClosed(CycleEvent):
    pass


EventHandler = Callable[[CycleEvent], None]


class EventDispatcher:
    """Synchronous in-process fan-out of cycle events to subscribers."""

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def publish(self, events: Iterable[CycleEvent]) -> int:
        """Deliver `events` to every handler and return the delivery count.

        Handler exceptions are logged and skipped so one broken subscriber
        cannot stop the others.
        """
        with self._lock:
            handlers = list(self._handlers)
        delivered = 0
        for event in events:
            _LOGGER.info("cycle_event %s", json.dumps(event.to_dict(), ensure_ascii=True))
            for handler in handlers:
                try:
                    handler(event)
                    delivered += 1
                except Exception:
                    _LOGGER.exception(
                        "event_handler_failed %s",
                        json.dumps({'event': event.name, 'cycle_id': str(event.cycle_id)}, ensure_ascii=True),
                    )
        return delivered


dispatcher = EventDispatcher()
