"""Event bus interface and in-process implementation.

Buses are constructed explicitly and passed to whoever publishes or
subscribes; there is no module-level instance.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], Any]


def make_envelope(event_type: str, payload: Dict[str, Any], event_id: Optional[str] = None) -> Dict[str, Any]:
    """Wrap a payload in the transport envelope ``{eventId, eventType, occurredAt, payload}``."""
    return {
        "eventId": event_id or str(uuid.uuid4()),
        "eventType": event_type,
        "occurredAt": datetime.utcnow().isoformat() + "Z",
        "payload": payload,
    }


class EventBus(ABC):
    """Publish/subscribe channel for domain events.

    Handlers receive the full envelope so they can use the event ID for
    idempotency and log correlation.
    """

    @abstractmethod
    def publish(self, event_type: str, payload: Dict[str, Any], event_id: Optional[str] = None) -> str:
        """Publish an event.

        Returns:
            The event ID carried by the envelope
        """
        pass

    @abstractmethod
    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        pass


class InMemoryEventBus(EventBus):
    """Synchronous in-process bus, used by tests and single-process deployments.

    A failing handler is logged and does not stop the other handlers.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self.published: List[Dict[str, Any]] = []

    def publish(self, event_type: str, payload: Dict[str, Any], event_id: Optional[str] = None) -> str:
        envelope = make_envelope(event_type, payload, event_id)
        self.published.append(envelope)
        self.dispatch(envelope)
        return envelope["eventId"]

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers.setdefault(event_type, []).append(handler)
        logger.info(f"Registered handler for event: {event_type}")

    def dispatch(self, envelope: Dict[str, Any]) -> None:
        """Deliver an already-built envelope (also used to replay deliveries)."""
        event_type = envelope.get("eventType")
        for handler in self._subscribers.get(event_type, []):
            try:
                handler(envelope)
            except Exception as e:
                logger.error(
                    f"Handler error for {event_type}: {e}",
                    extra={"event_type": event_type},
                    exc_info=True,
                )
