"""
Public key material for the Signal-style session handshake.

Only public keys are stored. One-time pre-keys form a single-use pool that
is drained oldest key id first as bundles are fetched.
"""
from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from parley.models.base import Base, UUIDMixin
from parley.utils.datetime_utils import utc_now


class IdentityKey(Base):
    """Long-term identity public key, one per user."""

    __tablename__ = "identity_keys"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    registration_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        doc="Client registration id"
    )

    public_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Base64-encoded identity public key"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<IdentityKey(user_id={self.user_id})>"


class SignedPreKey(Base):
    """Current signed pre-key, one per user, replaced on rotation."""

    __tablename__ = "signed_prekeys"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    key_id: Mapped[int] = mapped_column(Integer, nullable=False)

    public_key: Mapped[str] = mapped_column(Text, nullable=False)

    signature: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Base64 signature of public_key by the identity key"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SignedPreKey(user_id={self.user_id}, key_id={self.key_id})>"


class OneTimePreKey(Base, UUIDMixin):
    """Single-use pre-key, deleted when handed out in a bundle."""

    __tablename__ = "one_time_prekeys"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    key_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Client-assigned pre-key ID"
    )

    public_key: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "key_id", name="uq_one_time_prekey_user_key"),
    )

    def __repr__(self) -> str:
        return f"<OneTimePreKey(user_id={self.user_id}, key_id={self.key_id})>"
