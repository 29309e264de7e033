"""BarterChain and BarterParticipant SQLAlchemy models"""

from sqlalchemy import (
    Column, String, Text, Float, Integer, Boolean, DateTime, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base, new_id, utcnow


class BarterChain(Base):
    """Closed cycle of 2..4 participants proposed by the chain discoverer.

    ``signature`` identifies the cycle independently of where discovery
    started, so re-discovering a known chain never creates a duplicate.

    Status lifecycle:
        PENDING → CONFIRMED → CANCELLED (settlement failure)
        PENDING → CANCELLED | EXPIRED
    """
    __tablename__ = "barter_chain"
    __table_args__ = (
        UniqueConstraint("signature", name="uq_barter_chain_signature"),
        Index("ix_barter_chain_status_expires", "status", "expires_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    signature = Column(Text, nullable=False)
    chain_type = Column(Text, nullable=False)
    match_score = Column(Float, nullable=False)
    algorithm_version = Column(Text, nullable=False)
    cash_differential = Column(Float, nullable=False, default=0.0)
    is_optimal = Column(Boolean, nullable=False, default=False)
    status = Column(Text, nullable=False, default="PENDING", server_default="PENDING")
    cancel_reason = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    participants = relationship(
        "BarterParticipant",
        back_populates="chain",
        order_by="BarterParticipant.position",
        cascade="all, delete-orphan",
    )

    @property
    def item_ids(self):
        return [p.giving_item_id for p in self.participants]

    def participant_for(self, user_id: str):
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None


class BarterParticipant(Base):
    """One position in a barter chain.

    Participant ``position`` gives ``giving_item_id`` to the participant at
    ``position + 1`` (wrapping), whose ``receiving_item_id`` is that item.
    """
    __tablename__ = "barter_participant"
    __table_args__ = (
        UniqueConstraint("chain_id", "position", name="uq_barter_participant_position"),
        Index("ix_barter_participant_user_id", "user_id"),
        Index("ix_barter_participant_giving_item_id", "giving_item_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    chain_id = Column(String(36), ForeignKey("barter_chain.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), nullable=False)
    giving_item_id = Column(String(36), nullable=False)
    receiving_item_id = Column(String(36), nullable=False)
    position = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="PENDING", server_default="PENDING")
    responded_at = Column(DateTime, nullable=True)

    # Relationships
    chain = relationship("BarterChain", back_populates="participants")
