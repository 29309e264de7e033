"""ListedItem SQLAlchemy model"""

from sqlalchemy import Column, String, Text, Float, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from .base import Base, new_id, utcnow


class ListedItem(Base):
    """Item listed for sale or barter.

    Owned exclusively by its lister. The matching engine reads listings and
    only writes ``status`` (RESERVED/SOLD/ACTIVE) while a barter chain is
    being confirmed or settled, and WITHDRAWN when the listing is deleted.
    ``desired_category_id`` / ``desired_description`` carry the owner's
    barter wants.
    """
    __tablename__ = "listed_item"
    __table_args__ = (
        Index("ix_listed_item_category_status", "category_id", "status"),
        Index("ix_listed_item_owner_id", "owner_id"),
        Index("ix_listed_item_geo", "country", "governorate", "city", "district"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(String(64), ForeignKey("category.id", ondelete="RESTRICT"), nullable=False)
    estimated_value = Column(Float, nullable=True)
    condition = Column(Text, nullable=True)
    country = Column(String(2), nullable=False, default="EG", server_default="EG")
    governorate = Column(Text, nullable=False)
    city = Column(Text, nullable=True)
    district = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="ACTIVE", server_default="ACTIVE")
    desired_category_id = Column(String(64), ForeignKey("category.id", ondelete="SET NULL"), nullable=True)
    desired_description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)
