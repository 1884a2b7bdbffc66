"""
Conversation and Participant models.

Handles both direct conversations (exactly two users, identified by a
canonically ordered pair) and group chats.
"""
import enum
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parley.models.base import Base, UUIDMixin, TimestampMixin
from parley.utils.datetime_utils import utc_now

if TYPE_CHECKING:
    from parley.models.user import User


class ConversationType(str, enum.Enum):
    """Enum for conversation types."""
    DIRECT = "DIRECT"
    GROUP = "GROUP"


class ParticipantRole(str, enum.Enum):
    """Enum for participant roles."""
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class Conversation(Base, UUIDMixin, TimestampMixin):
    """
    Conversation model for direct messages and group chats.

    updated_at doubles as the activity timestamp used to order the
    conversation list; it moves with every non-control message.
    """

    __tablename__ = "conversations"

    type: Mapped[ConversationType] = mapped_column(
        SQLEnum(ConversationType, name="conversation_type", native_enum=False),
        nullable=False,
        doc="DIRECT or GROUP"
    )

    # Canonical pair (DIRECT only): participant_a_id < participant_b_id
    participant_a_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        doc="Lexicographically smaller user id of a direct conversation"
    )

    participant_b_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        doc="Lexicographically larger user id of a direct conversation"
    )

    # Group metadata (null for DIRECT)
    title: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        doc="Group title"
    )

    avatar_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        doc="Group avatar URL"
    )

    last_message_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey(
            "messages.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_conversations_last_message_id",
        ),
        nullable=True,
        doc="Most recent non-control message"
    )

    participants: Mapped[List["Participant"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("participant_a_id", "participant_b_id", name="uq_conversation_direct_pair"),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, type={self.type}, title={self.title})>"


class Participant(Base):
    """
    A user's membership in a conversation.

    unread_count is maintained incrementally by the message ledger and never
    goes below zero.
    """

    __tablename__ = "participants"

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
        doc="Conversation ID"
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        doc="User ID"
    )

    role: Mapped[ParticipantRole] = mapped_column(
        SQLEnum(ParticipantRole, name="participant_role", native_enum=False),
        default=ParticipantRole.MEMBER,
        nullable=False,
    )

    unread_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        doc="Messages from others not yet read by this user"
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    muted_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    conversation: Mapped["Conversation"] = relationship(back_populates="participants")
    user: Mapped["User"] = relationship()

    __table_args__ = (
        CheckConstraint("unread_count >= 0", name="ck_participant_unread_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Participant(conversation_id={self.conversation_id}, "
            f"user_id={self.user_id}, role={self.role}, unread={self.unread_count})>"
        )


# Indexes for performance
Index("idx_participants_user", Participant.user_id)
Index("idx_conversations_updated", Conversation.updated_at, Conversation.id)
Index("idx_conversations_type", Conversation.type)
