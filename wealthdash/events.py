import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, NamedTuple

__all__ = [
    'Event', 'EventBus', 'notify', 'register_default_handlers',
    'PRICE_UPDATED', 'PREDICTION_UPDATED', 'SNAPSHOT_LOADED', 'NOTIFICATION',
]

logger = logging.getLogger(__name__)

PRICE_UPDATED = "PRICE_UPDATED"
PREDICTION_UPDATED = "PREDICTION_UPDATED"
SNAPSHOT_LOADED = "SNAPSHOT_LOADED"
NOTIFICATION = "NOTIFICATION"


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], dict]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, name: str, payload: dict) -> List[dict]:
        handlers = list(self._subscribers.get(name, []))
        if not handlers:
            return []

        event = Event(
            name=name,
            ts=datetime.now(timezone.utc).isoformat(),
            payload=payload,
        )
        return [handler(event, payload) for handler in handlers]


def notify(bus: EventBus, title: str, description: str = "", variant: str = "default") -> List[dict]:
    """Publish a transient user-facing notification (a toast)."""
    return bus.publish(NOTIFICATION, {
        "title": title,
        "description": description,
        "variant": variant,
    })


def log_notification_handler(event: Event, payload: dict) -> dict:
    level = logging.ERROR if payload.get("variant") == "destructive" else logging.INFO
    logger.log(level, "%s: %s", payload.get("title", ""), payload.get("description", ""))
    return {"logged": True}


def register_default_handlers(bus: EventBus) -> EventBus:
    bus.subscribe(NOTIFICATION, log_notification_handler)
    return bus
