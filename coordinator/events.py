"""
Ledger Notifications
====================
Observable, fire-and-forget notifications for off-system indexing.
Nothing inside the ledger consumes them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List
import threading


class EventType(str, Enum):
    SESSION_SUBMITTED = "session_submitted"
    FORECAST_REQUESTED = "forecast_requested"
    FORECAST_DELIVERED = "forecast_delivered"
    LOAD_BALANCE_REQUESTED = "load_balance_requested"
    LOAD_BALANCE_DELIVERED = "load_balance_delivered"
    SITE_SUGGESTION_REQUESTED = "site_suggestion_requested"
    SITE_SUGGESTION_DELIVERED = "site_suggestion_delivered"


@dataclass
class LedgerEvent:
    event_type: EventType
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            'type': self.event_type.value,
            'data': self.data,
            'timestamp': self.timestamp
        }


Subscriber = Callable[[LedgerEvent], None]


class EventBus:
    """
    Synchronous notification fan-out.

    Subscribers are called in registration order. A failing subscriber is
    reported and skipped; emitters never wait on or observe listeners.
    """

    def __init__(self, history_limit: int = 500):
        self._subscribers: List[Subscriber] = []
        self._history: List[LedgerEvent] = []
        self._history_limit = history_limit
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a function that removes it"""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event_type: EventType, **data) -> LedgerEvent:
        event = LedgerEvent(event_type=event_type, data=data)

        with self._lock:
            self._history.append(event)
            del self._history[:-self._history_limit]
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                print(f"Event subscriber error on {event_type.value}: {e}")

        return event

    def get_history(self, limit: int = 50) -> List[LedgerEvent]:
        with self._lock:
            return self._history[-limit:]
