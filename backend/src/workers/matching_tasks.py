"""Celery tasks for the matching worker.

Tasks:
- handle_event_task: process one event envelope
- expire_overdue_task: expiry sweep, triggered by the external beat schedule
"""

import logging
from typing import Any, Dict

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from database import SessionLocal
from dependencies import build_orchestrator

from .celery_app import celery_app

logger = logging.getLogger(__name__)


@shared_task(name="matching.handle_event", bind=True, max_retries=3)
def handle_event_task(self, envelope: Dict[str, Any]) -> Dict[str, Any]:
    """Process one event envelope ``{eventId, eventType, occurredAt, payload}``.

    Only database errors are retried (exponential backoff); every other
    failure mode degrades to an empty outcome inside the orchestrator.

    Returns:
        Dict with the event ID, outcome and counts
    """
    event_id = envelope.get("eventId")
    db = SessionLocal()
    try:
        orchestrator = build_orchestrator(db, celery_app=celery_app)
        result = orchestrator.handle_envelope(envelope)
        return {
            "event_id": event_id,
            "status": result.status,
            "matches_created": result.matches_created,
            "chains": len(result.chain_ids),
            "notifications_sent": result.notifications_sent,
        }

    except SQLAlchemyError as e:
        logger.error(
            f"Database error handling event {event_id}: {e}",
            extra={"event_type": envelope.get("eventType")},
        )
        raise self.retry(exc=e, countdown=2 ** self.request.retries * 10)

    finally:
        db.close()


@shared_task(name="matching.expire_overdue", bind=True)
def expire_overdue_task(self) -> Dict[str, Any]:
    """Expire PENDING chains and barter offers past their deadline.

    Idempotent: expired records are never resurrected, so overlapping runs
    find nothing left to expire.
    """
    logger.info("Expiry sweep started")

    db = SessionLocal()
    try:
        orchestrator = build_orchestrator(db, celery_app=celery_app)
        counts = orchestrator.expire_overdue()
        return {"status": "completed", **counts}
    finally:
        db.close()
