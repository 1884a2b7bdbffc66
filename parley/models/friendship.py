"""
Friendship model.

One row per unordered user pair. `pair_key` holds the canonically ordered
pair so that crossing requests (A->B while B->A) collide on a unique index.
For BLOCKED rows the requester is always the user who imposed the block.
"""
import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parley.models.base import Base, UUIDMixin, TimestampMixin

if TYPE_CHECKING:
    from parley.models.user import User


class FriendshipStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    BLOCKED = "BLOCKED"
    CANCELLED = "CANCELLED"


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Sort two user ids so (A, B) and (B, A) map to the same pair."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


def make_pair_key(user_a: str, user_b: str) -> str:
    low, high = canonical_pair(user_a, user_b)
    return f"{low}:{high}"


class Friendship(Base, UUIDMixin, TimestampMixin):
    """Relationship between two users."""

    __tablename__ = "friendships"

    requester_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        doc="User who sent the request (or imposed the block)"
    )

    addressee_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        doc="User who received the request (or was blocked)"
    )

    pair_key: Mapped[str] = mapped_column(
        String(80),
        nullable=False,
        doc="Canonical 'low:high' user id pair"
    )

    status: Mapped[FriendshipStatus] = mapped_column(
        SQLEnum(FriendshipStatus, name="friendship_status", native_enum=False),
        default=FriendshipStatus.PENDING,
        nullable=False,
    )

    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the request was last accepted"
    )

    requester: Mapped["User"] = relationship(foreign_keys=[requester_id])
    addressee: Mapped["User"] = relationship(foreign_keys=[addressee_id])

    __table_args__ = (
        UniqueConstraint("requester_id", "addressee_id", name="uq_friendship_requester_addressee"),
        UniqueConstraint("pair_key", name="uq_friendship_pair"),
    )

    def other_party(self, user_id: str) -> str:
        return self.addressee_id if self.requester_id == user_id else self.requester_id

    def __repr__(self) -> str:
        return (
            f"<Friendship(id={self.id}, requester={self.requester_id}, "
            f"addressee={self.addressee_id}, status={self.status})>"
        )


Index("idx_friendships_addressee_status", Friendship.addressee_id, Friendship.status)
Index("idx_friendships_requester_status", Friendship.requester_id, Friendship.status)
