"""Declarative base and portable column types shared by all matching models"""

import uuid
from datetime import datetime

from sqlalchemy.orm import declarative_base
from sqlalchemy import TypeDecorator, JSON
from sqlalchemy.dialects.postgresql import JSONB


class PortableJSONB(TypeDecorator):
    """JSON type that works with both PostgreSQL (JSONB) and SQLite (JSON).

    Offered item lists and match reasons are stored as JSONB in production;
    the SQLite fallback keeps the integration tests running in memory.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


def new_id() -> str:
    """Generate a primary key for rows created by the engine."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp used for python-side column defaults."""
    return datetime.utcnow()


Base = declarative_base()
