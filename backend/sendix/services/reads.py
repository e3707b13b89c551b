"""
Read tracking and unread counts.

Unread messages for a user in a thread are those created after the user's
last-read marker (all of them without a marker), excluding the user's own
messages. System messages count as unread for everybody. Timestamps are
compared in SQL only.
"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from structlog import get_logger

from sendix.db.base import utcnow
from sendix.db.transaction import atomic, savepoint
from sendix.models.proposal import Proposal, ProposalStatus
from sendix.models.thread import Thread, ThreadMessage, ThreadRead
from sendix.models.user import User
from sendix.services.access import accessible_proposals_clause
from sendix.services.realtime import Broadcaster, broadcast, read_updated_event, room_for
from sendix.services.threads import ThreadGate

logger = get_logger()


def _unread_condition(user_id: int):
    return and_(
        or_(ThreadMessage.sender_id.is_(None), ThreadMessage.sender_id != user_id),
        or_(
            ThreadRead.last_read_at.is_(None),
            ThreadMessage.created_at > ThreadRead.last_read_at,
        ),
    )


def _read_join(user_id: int):
    return and_(
        ThreadRead.thread_id == ThreadMessage.thread_id,
        ThreadRead.user_id == user_id,
    )


class ReadTracker:
    """Service for read markers and unread counts."""

    def __init__(self, db: AsyncSession, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster

    async def _get_marker(self, thread_id: int, user_id: int) -> ThreadRead | None:
        result = await self.db.execute(
            select(ThreadRead).where(
                ThreadRead.thread_id == thread_id,
                ThreadRead.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _advance(self, marker: ThreadRead, at: datetime) -> None:
        """Move an existing marker to `at` unless it already points later."""
        result = await self.db.execute(
            update(ThreadRead)
            .where(
                ThreadRead.thread_id == marker.thread_id,
                ThreadRead.user_id == marker.user_id,
                or_(ThreadRead.last_read_at.is_(None), ThreadRead.last_read_at < at),
            )
            .values(last_read_at=at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            set_committed_value(marker, "last_read_at", at)

    async def touch(self, thread_id: int, user_id: int, at: datetime) -> ThreadRead:
        """Upsert the marker inside the caller's transaction; it never moves back."""
        marker = await self._get_marker(thread_id, user_id)
        if marker is not None:
            await self._advance(marker, at)
            return marker

        marker = ThreadRead(thread_id=thread_id, user_id=user_id, last_read_at=at)
        try:
            async with savepoint(self.db, "thread_read_insert"):
                self.db.add(marker)
                await self.db.flush()
        except IntegrityError:
            marker = await self._get_marker(thread_id, user_id)
            if marker is None:
                raise
            await self._advance(marker, at)
        return marker

    async def mark_read(self, thread: Thread, user: User) -> ThreadRead:
        """Set the user's marker to now and announce it to the room."""
        at = utcnow()
        async with atomic(self.db):
            marker = await self.touch(thread.id, user.id, at)

        logger.info("thread_marked_read", thread_id=thread.id, user_id=user.id)

        if self.broadcaster is not None and thread.proposal_id is not None:
            await broadcast(
                self.broadcaster,
                room_for(thread.proposal_id),
                read_updated_event(thread.proposal_id, user.id, at),
            )
        return marker

    async def unread_count(self, thread: Thread, user: User) -> int:
        result = await self.db.execute(
            select(func.count(ThreadMessage.id))
            .select_from(ThreadMessage)
            .outerjoin(ThreadRead, _read_join(user.id))
            .where(
                ThreadMessage.thread_id == thread.id,
                _unread_condition(user.id),
            )
        )
        return int(result.scalar_one())

    async def unread_summary(self, user: User) -> dict[int, dict[str, Any]]:
        """
        Unread count and last message time for every chat the user can open.

        Keys are proposal ids. Proposals that are not approved have no chat
        and are omitted. Missing threads are created first so every approved
        proposal is represented.
        """
        result = await self.db.execute(
            select(Proposal).where(
                Proposal.status == ProposalStatus.APPROVED,
                accessible_proposals_clause(user),
            )
        )
        proposals = list(result.scalars().all())
        if not proposals:
            return {}

        bound = await self.db.execute(
            select(Thread).where(Thread.proposal_id.in_([p.id for p in proposals]))
        )
        thread_by_proposal = {t.proposal_id: t for t in bound.scalars().all()}

        gate = ThreadGate(self.db)
        for proposal in proposals:
            if proposal.id not in thread_by_proposal:
                access = await gate.get_or_create_thread(proposal)
                thread_by_proposal[proposal.id] = access.thread

        thread_ids = [t.id for t in thread_by_proposal.values()]
        counts = await self.db.execute(
            select(
                ThreadMessage.thread_id,
                func.sum(case((_unread_condition(user.id), 1), else_=0)),
                func.max(ThreadMessage.created_at),
            )
            .select_from(ThreadMessage)
            .outerjoin(ThreadRead, _read_join(user.id))
            .where(ThreadMessage.thread_id.in_(thread_ids))
            .group_by(ThreadMessage.thread_id)
        )
        by_thread = {
            thread_id: (int(unread or 0), last_at)
            for thread_id, unread, last_at in counts.all()
        }

        summary = {}
        for proposal_id, thread in thread_by_proposal.items():
            unread, last_at = by_thread.get(thread.id, (0, None))
            summary[proposal_id] = {"unread": unread, "last_message_at": last_at}
        return summary
