"""
Message and MessageReceipt models.
"""
import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parley.models.base import Base, UUIDMixin
from parley.utils.datetime_utils import utc_now

if TYPE_CHECKING:
    from parley.models.user import User


class MessageContentType(str, enum.Enum):
    """How `content` should be interpreted by clients."""
    TEXT = "TEXT"
    SIGNAL_ENCRYPTED = "SIGNAL_ENCRYPTED"
    SIGNAL_KEY_DISTRIBUTION = "SIGNAL_KEY_DISTRIBUTION"

    @property
    def is_control(self) -> bool:
        """Control messages carry protocol data and stay out of summaries."""
        return self is MessageContentType.SIGNAL_KEY_DISTRIBUTION

    @property
    def is_encrypted(self) -> bool:
        return self in (
            MessageContentType.SIGNAL_ENCRYPTED,
            MessageContentType.SIGNAL_KEY_DISTRIBUTION,
        )


class Message(Base, UUIDMixin):
    """A single message in a conversation."""

    __tablename__ = "messages"

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        doc="Conversation this message belongs to"
    )

    sender_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="User who sent the message"
    )

    content: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Plaintext or base64 ciphertext depending on content_type"
    )

    content_type: Mapped[MessageContentType] = mapped_column(
        SQLEnum(MessageContentType, name="message_content_type", native_enum=False),
        default=MessageContentType.TEXT,
        nullable=False,
    )

    attachment_url: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    reply_to_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("messages.id", ondelete="SET NULL"),
        nullable=True,
        doc="ID of message this is replying to"
    )

    edited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    deleted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        doc="Tombstone flag; the primary delete path removes the row instead"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    sender: Mapped["User"] = relationship(foreign_keys=[sender_id])

    reply_to: Mapped["Message | None"] = relationship(
        remote_side="Message.id",
        foreign_keys=[reply_to_id]
    )

    def __repr__(self) -> str:
        content_preview = self.content[:50] if self.content else f"<{self.content_type}>"
        return f"<Message(id={self.id}, type={self.content_type}, content='{content_preview}')>"


class MessageReceipt(Base):
    """
    Read receipt: user_id has read message_id.

    The composite primary key makes receipt insertion duplicate-safe.
    """

    __tablename__ = "message_receipts"

    message_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("messages.id", ondelete="CASCADE"),
        primary_key=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<MessageReceipt(message_id={self.message_id}, user_id={self.user_id})>"


# Keyset pagination runs on (conversation_id, created_at, id)
Index("idx_messages_conversation_created", Message.conversation_id, Message.created_at, Message.id)
Index("idx_message_receipts_user", MessageReceipt.user_id)
