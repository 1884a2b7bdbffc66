"""
Base model classes and mixins for SQLAlchemy ORM.
Provides common functionality for all database models.
"""
import uuid
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from parley.utils.datetime_utils import utc_now


def generate_uuid() -> str:
    """Generate a new UUID v4 string."""
    return str(uuid.uuid4())


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Includes AsyncAttrs mixin for async relationship access.
    All models should inherit from this class.
    """
    pass


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    Timestamps are generated in Python (microsecond precision) rather than by
    the database so that keyset ordering on (timestamp, id) is stable.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        doc="Timestamp when the record was created"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
        doc="Timestamp when the record was last updated"
    )


class UUIDMixin:
    """Mixin for a string UUID primary key generated client-side."""

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        doc="UUID4 primary key"
    )
