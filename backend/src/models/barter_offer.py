"""BarterOffer SQLAlchemy model"""

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func, expression

from .base import Base, PortableJSONB, new_id, utcnow


class BarterOffer(Base):
    """Barter offer created by the barter service.

    The engine reads offers to drive pairwise matching and chain discovery,
    and the expiry sweep moves overdue PENDING offers to EXPIRED.
    """
    __tablename__ = "barter_offer"
    __table_args__ = (
        Index("ix_barter_offer_status_expires", "status", "expires_at"),
        Index("ix_barter_offer_initiator_id", "initiator_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    initiator_id = Column(String(36), nullable=False)
    offered_item_ids = Column(PortableJSONB, nullable=False, default=list)
    desired_category_id = Column(String(64), ForeignKey("category.id", ondelete="SET NULL"), nullable=True)
    desired_description = Column(Text, nullable=True)
    is_open_offer = Column(Boolean, nullable=False, default=True, server_default=expression.true())
    country = Column(String(2), nullable=False, default="EG", server_default="EG")
    governorate = Column(Text, nullable=False)
    city = Column(Text, nullable=True)
    district = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="PENDING", server_default="PENDING")
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
