"""Category SQLAlchemy model"""

from sqlalchemy import Column, String, Text, ForeignKey, Index

from .base import Base


class Category(Base):
    """Two-level category taxonomy used for category scoring.

    Owned by the catalog service; the matching engine only reads it to
    resolve parent/child relationships.
    """
    __tablename__ = "category"
    __table_args__ = (
        Index("ix_category_parent_id", "parent_id"),
    )

    id = Column(String(64), primary_key=True)
    parent_id = Column(String(64), ForeignKey("category.id", ondelete="SET NULL"), nullable=True)
    name = Column(Text, nullable=False)
