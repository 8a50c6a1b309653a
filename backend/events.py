"""In-process event bus.

Events describe transitions that already committed. Publishing is fire and
forget: a failing subscriber is logged and the publisher carries on.
"""
from dataclasses import dataclass, field
from datetime import date
import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

SCORE_CHANGED = "score_changed"
INSTANCE_CREATED = "instance_created"


@dataclass(frozen=True)
class Event:
    type: str
    player_id: int
    date: date
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "player": self.player_id,
            "date": self.date.isoformat(),
            "payload": dict(self.payload),
        }


class EventBus:
    def __init__(self):
        self._subscribers: list[Callable[[Event], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[Event], None]):
        with self._lock:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, event: Event):
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("event subscriber %r failed on %s", callback, event.type)


bus = EventBus()
