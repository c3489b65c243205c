"""
Declarative base and column defaults shared by the escrow tables
"""
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Aware UTC timestamp; every DateTime column is timezone=True."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# target metadata for Alembic
metadata = Base.metadata
