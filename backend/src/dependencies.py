"""Wiring for the matching engine.

Builds the orchestrator and event bus from explicit collaborators. Nothing
here is a module-level singleton: every caller constructs what it needs
for its own unit of work.

Usage (worker):
    db = SessionLocal()
    try:
        orchestrator = build_orchestrator(db, celery_app=celery_app)
        orchestrator.handle_envelope(envelope)
    finally:
        db.close()
"""

from typing import Optional

from sqlalchemy.orm import Session

from config import Settings, get_settings
from events import EventBus, InMemoryEventBus, RedisEventBus
from infrastructure.dispatch import CeleryNotificationDispatcher, CelerySettlementGateway
from infrastructure.repositories.candidate_index import SqlCandidateIndex
from infrastructure.repositories.match_store import SqlMatchStore
from matching.orchestrator import MatchOrchestrator
from matching.ports import NotificationPort, SettlementPort


def build_orchestrator(
    db: Session,
    settings: Optional[Settings] = None,
    celery_app=None,
    notifier: Optional[NotificationPort] = None,
    settlement: Optional[SettlementPort] = None,
) -> MatchOrchestrator:
    """Build a MatchOrchestrator bound to one database session.

    Args:
        db: SQLAlchemy session for this unit of work
        settings: Settings (defaults to get_settings())
        celery_app: Celery app used for outbound dispatch when no explicit
            notifier/settlement adapters are given
        notifier: Notification collaborator override
        settlement: Settlement collaborator override

    Returns:
        MatchOrchestrator

    Raises:
        ValueError: Neither a celery_app nor explicit collaborators were provided
    """
    settings = settings or get_settings()

    if notifier is None or settlement is None:
        if celery_app is None:
            raise ValueError("celery_app is required unless notifier and settlement are given")
        notifier = notifier or CeleryNotificationDispatcher(celery_app)
        settlement = settlement or CelerySettlementGateway(celery_app)

    return MatchOrchestrator(
        index=SqlCandidateIndex(db, ceiling=settings.CANDIDATE_LIMIT_CEILING),
        store=SqlMatchStore(db),
        notifier=notifier,
        settlement=settlement,
        settings=settings,
    )


def build_event_bus(settings: Optional[Settings] = None) -> EventBus:
    """Build the event bus selected by EVENT_BUS_BACKEND ("memory" or "redis")."""
    settings = settings or get_settings()
    backend = settings.EVENT_BUS_BACKEND.lower()
    if backend == "redis":
        return RedisEventBus.from_url(settings.REDIS_URL)
    if backend == "memory":
        return InMemoryEventBus()
    raise ValueError(f"Unknown EVENT_BUS_BACKEND: {settings.EVENT_BUS_BACKEND}")
