"""Celery-backed adapters for the notification and settlement collaborators"""

from .celery_dispatch import CeleryNotificationDispatcher, CelerySettlementGateway

__all__ = ["CeleryNotificationDispatcher", "CelerySettlementGateway"]
