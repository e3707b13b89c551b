"""
Chat models for approved proposals.

Provides the messaging system between shipper, carrier and moderator:
- Thread: chat channel identified by (load, carrier), bound to the
  currently approved proposal of that pair
- ThreadMessage: individual messages with optional reply reference and
  attachments; a NULL sender marks a system message
- ThreadRead: per-user last-read marker used to derive unread counts
"""
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sendix.db.base import Base, utcnow

if TYPE_CHECKING:
    from sendix.models.load import Load
    from sendix.models.proposal import Proposal
    from sendix.models.user import User


class Thread(Base):
    """
    The chat channel between a load's shipper and one carrier.

    Logical identity is (load_id, carrier_id). When the pair negotiates
    again and a new proposal is approved, the same thread is rebound to it
    so the history carries over.
    """

    __tablename__ = "threads"
    __table_args__ = (
        UniqueConstraint("load_id", "carrier_id", name="uq_threads_load_carrier"),
    )

    load_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("loads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    carrier_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Current proposal back-reference, rebound on each approval
    proposal_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("proposals.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    load: Mapped["Load"] = relationship("Load", lazy="noload")
    proposal: Mapped[Optional["Proposal"]] = relationship("Proposal", lazy="noload")

    def __repr__(self) -> str:
        return f"<Thread id={self.id} load={self.load_id} carrier={self.carrier_id} proposal={self.proposal_id}>"


class ThreadMessage(Base):
    """
    A single message in a thread.

    Immutable once created. created_at is stamped by the application so
    readers observe a monotonic order; ties fall back to id.
    """

    __tablename__ = "thread_messages"
    __table_args__ = (
        Index("ix_thread_messages_thread_created", "thread_id", "created_at"),
    )

    thread_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # NULL for system messages
    sender_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    reply_to_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("thread_messages.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Opaque list, e.g. small data-URL encoded images
    attachments: Mapped[list[Any]] = mapped_column(JSON, default=list, nullable=False)

    sender: Mapped[Optional["User"]] = relationship("User", lazy="joined")

    @property
    def is_system(self) -> bool:
        return self.sender_id is None

    def __repr__(self) -> str:
        return f"<ThreadMessage id={self.id} thread={self.thread_id} sender={self.sender_id}>"


class ThreadRead(Base):
    """Last time a user read a thread. One row per (thread, user)."""

    __tablename__ = "thread_reads"
    __table_args__ = (
        UniqueConstraint("thread_id", "user_id", name="uq_thread_reads_thread_user"),
    )

    thread_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    last_read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ThreadRead thread={self.thread_id} user={self.user_id} at={self.last_read_at}>"
