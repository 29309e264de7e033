"""DemandRequest SQLAlchemy model"""

from sqlalchemy import Column, String, Text, Float, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from .base import Base, PortableJSONB, new_id, utcnow


class DemandRequest(Base):
    """Standing purchase request or reverse auction.

    Created and closed by the demand-side services; read only for matching.
    """
    __tablename__ = "demand_request"
    __table_args__ = (
        Index("ix_demand_request_category_status", "category_id", "status"),
        Index("ix_demand_request_requester_id", "requester_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    requester_id = Column(String(36), nullable=False)
    title = Column(Text, nullable=False, default="", server_default="")
    description = Column(Text, nullable=True)
    category_id = Column(String(64), ForeignKey("category.id", ondelete="RESTRICT"), nullable=False)
    kind = Column(Text, nullable=False, default="PURCHASE", server_default="PURCHASE")
    price_min = Column(Float, nullable=True)
    price_max = Column(Float, nullable=True)
    target_price = Column(Float, nullable=True)
    condition = Column(Text, nullable=True)
    keywords = Column(PortableJSONB, nullable=True)
    country = Column(String(2), nullable=False, default="EG", server_default="EG")
    governorate = Column(Text, nullable=False)
    city = Column(Text, nullable=True)
    district = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="OPEN", server_default="OPEN")
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
