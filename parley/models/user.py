"""
User model.

Users register locally; presence fields are maintained by the socket gateway.
"""
import enum
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from parley.models.base import Base, UUIDMixin, TimestampMixin


class UserStatus(str, enum.Enum):
    """Presence status persisted on the user row."""
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


class User(Base, UUIDMixin, TimestampMixin):
    """Registered account."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        doc="Login email address"
    )

    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        doc="Unique handle"
    )

    display_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        doc="Name shown to other users"
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="bcrypt password hash"
    )

    friend_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        doc="Shareable code used to send friend requests, e.g. 'alice#0423'"
    )

    avatar_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        doc="Public avatar URL"
    )

    avatar_key: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        doc="Object storage key of the current avatar"
    )

    status: Mapped[UserStatus] = mapped_column(
        SQLEnum(UserStatus, name="user_status", native_enum=False),
        default=UserStatus.OFFLINE,
        nullable=False,
        doc="ONLINE while at least one socket connection is open"
    )

    last_seen: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the last socket connection closed"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"


Index("idx_users_status", User.status)
