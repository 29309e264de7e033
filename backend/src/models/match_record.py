"""MatchRecord SQLAlchemy model"""

from sqlalchemy import Column, String, Text, Float, DateTime, Index, UniqueConstraint
from sqlalchemy.sql import func

from .base import Base, PortableJSONB, new_id, utcnow


class MatchRecord(Base):
    """Persisted match between a source entity and a target entity.

    Keyed by ``signature`` (``source_id:target_id:match_type``) so that
    re-processing an event updates the existing row instead of adding one.
    """
    __tablename__ = "match_record"
    __table_args__ = (
        UniqueConstraint("signature", name="uq_match_record_signature"),
        Index("ix_match_record_source_id", "source_id"),
        Index("ix_match_record_target_id", "target_id"),
        Index("ix_match_record_source_owner", "source_owner_id"),
        Index("ix_match_record_target_owner", "target_owner_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    signature = Column(Text, nullable=False)
    match_type = Column(Text, nullable=False)
    source_id = Column(String(36), nullable=False)
    source_owner_id = Column(String(36), nullable=False)
    target_id = Column(String(36), nullable=False)
    target_owner_id = Column(String(36), nullable=False)
    score = Column(Float, nullable=False)
    tier = Column(Text, nullable=False)
    reasons = Column(PortableJSONB, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)
