"""Redis pub/sub event bus."""

import json
import logging
import threading
from typing import Any, Dict, List, Optional

import redis

from .bus import EventBus, EventHandler, make_envelope

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "events."


class RedisEventBus(EventBus):
    """Redis pub/sub implementation of the event bus.

    Each event type is published on channel ``events.<eventType>`` as a JSON
    envelope. The client is injected so callers control connection setup.
    """

    def __init__(self, client: redis.Redis):
        self.client = client
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._thread: Optional[threading.Thread] = None
        self._pubsub = None

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisEventBus":
        return cls(redis.from_url(redis_url))

    def publish(self, event_type: str, payload: Dict[str, Any], event_id: Optional[str] = None) -> str:
        envelope = make_envelope(event_type, payload, event_id)
        self.client.publish(f"{CHANNEL_PREFIX}{event_type}", json.dumps(envelope, default=str))
        logger.info(f"Published event: {event_type}", extra={"event_type": event_type})
        return envelope["eventId"]

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers.setdefault(event_type, []).append(handler)
        logger.info(f"Registered handler for event: {event_type}")

    def start_listening(self) -> None:
        """Listen on all subscribed channels in a background thread."""
        if self._thread is not None or not self._subscribers:
            return

        self._pubsub = self.client.pubsub()
        channels = [f"{CHANNEL_PREFIX}{event_type}" for event_type in self._subscribers]
        self._pubsub.subscribe(*channels)
        logger.info(f"EventBus listening on: {channels}")

        def listen():
            for message in self._pubsub.listen():
                if message["type"] == "message":
                    self.handle_message(message)

        self._thread = threading.Thread(target=listen, name="redis-event-bus", daemon=True)
        self._thread.start()

    def wait(self) -> None:
        """Block until the listener thread exits."""
        if self._thread is not None:
            self._thread.join()

    def stop_listening(self) -> None:
        if self._pubsub is not None:
            self._pubsub.close()
        self._pubsub = None
        self._thread = None

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Decode one pub/sub message and hand the envelope to its handlers."""
        try:
            envelope = json.loads(message["data"])
        except (TypeError, ValueError) as e:
            logger.error(f"Discarding undecodable event message: {e}")
            return

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
