"""NotificationLog SQLAlchemy model"""

from sqlalchemy import Column, String, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from .base import Base, new_id, utcnow


class NotificationLog(Base):
    """Record of a match notification successfully handed to the notifier.

    Unique on (user_id, entity_id): a user is told about a given entity
    at most once, however many times the triggering event is replayed.
    """
    __tablename__ = "notification_log"
    __table_args__ = (
        UniqueConstraint("user_id", "entity_id", name="uq_notification_log_user_entity"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False)
    entity_id = Column(String(36), nullable=False)
    notification_type = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
