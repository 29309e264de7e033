"""Event bus consumer for the matching worker.

Subscribes to every event type the orchestrator consumes and enqueues each
envelope as a ``matching.handle_event`` task. The consumer never touches the
database: every event is processed by a worker task with its own session.

Run with:
    python -m workers.event_consumer
"""

import logging
from typing import Any, Dict, Optional

from kombu.exceptions import OperationalError

from config import Settings, get_settings
from dependencies import build_event_bus
from events import EventBus, RedisEventBus
from matching.errors import DispatchFailure
from matching.schemas import EVENT_SCHEMAS
from observability.logging_config import configure_logging

logger = logging.getLogger(__name__)

HANDLE_EVENT_TASK = "matching.handle_event"


class EventForwarder:
    """Bus handler that hands envelopes to the matching worker queue."""

    def __init__(self, celery_app):
        self.celery_app = celery_app

    def __call__(self, envelope: Dict[str, Any]) -> None:
        event_type = envelope.get("eventType")
        try:
            # Task ID follows the event ID so a re-published event is traceable
            self.celery_app.send_task(
                HANDLE_EVENT_TASK,
                args=[envelope],
                task_id=envelope.get("eventId"),
            )
        except (OperationalError, ConnectionError, TimeoutError) as e:
            raise DispatchFailure(f"Could not enqueue {event_type} event: {e}") from e
        logger.info(f"Enqueued {event_type} event", extra={"event_type": event_type})


def register_matching_listeners(bus: EventBus, celery_app) -> EventForwarder:
    """Subscribe the forwarder to every event type the orchestrator consumes."""
    forwarder = EventForwarder(celery_app)
    for event_type in EVENT_SCHEMAS:
        bus.subscribe(event_type, forwarder)
    logger.info(f"Matching event listeners registered for {len(EVENT_SCHEMAS)} event types")
    return forwarder


def main(settings: Optional[Settings] = None) -> None:
    """Listen on the Redis bus until interrupted."""
    settings = settings or get_settings()
    bus = build_event_bus(settings)
    if not isinstance(bus, RedisEventBus):
        raise ValueError("The event consumer requires EVENT_BUS_BACKEND=redis")

    from workers.celery_app import celery_app

    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    register_matching_listeners(bus, celery_app)
    bus.start_listening()
    try:
        bus.wait()
    except KeyboardInterrupt:
        logger.info("Event consumer stopping")
    finally:
        bus.stop_listening()


if __name__ == "__main__":
    main()
