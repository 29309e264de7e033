"""Celery application for the matching worker.

Consumes event envelopes (``matching.handle_event``) and runs the expiry
sweep (``matching.expire_overdue``). Notifications and settlement requests
are sent by task name to the workers that own them.
"""

from celery import Celery
from celery.signals import setup_logging

from config import get_settings
from observability.logging_config import configure_logging

settings = get_settings()

celery_app = Celery(
    "matching",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["workers.matching_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "matching.*": {"queue": "matching"},
        "notifications.*": {"queue": "notifications"},
        "settlement.*": {"queue": "settlement"},
    },
    # Redelivery is safe: event handling is idempotent
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_max_tasks_per_child=1000,
)

# Example beat schedule for the external scheduler:
#
#     celery_app.conf.beat_schedule = {
#         "matching-expire-overdue": {
#             "task": "matching.expire_overdue",
#             "schedule": 15 * 60.0,
#             "options": {"expires": 10 * 60.0},
#         },
#     }


@setup_logging.connect
def setup_worker_logging(**kwargs):
    """Replace Celery's logging setup with the JSON/event-ID configuration."""
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
