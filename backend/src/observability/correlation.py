"""Event ID management for log correlation.

Every record logged while an event is being processed carries that event's
ID, so one matching run can be followed across the worker logs.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variable for event_id (async-safe)
event_id_var: ContextVar[Optional[str]] = ContextVar("event_id", default=None)


def generate_event_id() -> str:
    """Generate a new unique event ID.

    Returns:
        str: UUID v4 event ID
    """
    return str(uuid.uuid4())


def get_event_id() -> str:
    """Get current event ID from context.

    Returns:
        str: Current event ID or "no-event-id" if not set
    """
    return event_id_var.get() or "no-event-id"


@contextmanager
def event_context(event_id: Optional[str]) -> Iterator[str]:
    """Bind an event ID for the duration of a block."""
    token = event_id_var.set(event_id or generate_event_id())
    try:
        yield event_id_var.get()
    finally:
        event_id_var.reset(token)
