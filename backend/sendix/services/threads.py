"""
Thread gate: chat exists only for approved proposals.

A thread is identified by (load, carrier). When the same pair gets a new
approved proposal, the existing thread is rebound to it instead of being
duplicated, so the conversation history carries over.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from sendix.core.errors import ThreadDisabled
from sendix.db.transaction import savepoint
from sendix.models.proposal import Proposal, ProposalStatus
from sendix.models.thread import Thread

logger = get_logger()


@dataclass
class ThreadAccess:
    """Outcome of a gate check; thread is None whenever disabled."""
    thread: Optional[Thread]
    disabled: bool


class ThreadGate:
    """Resolves the chat thread behind a proposal."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find(self, proposal: Proposal) -> Thread | None:
        result = await self.db.execute(
            select(Thread)
            .where(
                or_(
                    Thread.proposal_id == proposal.id,
                    and_(
                        Thread.load_id == proposal.load_id,
                        Thread.carrier_id == proposal.carrier_id,
                    ),
                )
            )
            .order_by(Thread.id)
        )
        return result.scalars().first()

    async def get_or_create_thread(self, proposal: Proposal) -> ThreadAccess:
        """
        Find, rebind or create the proposal's thread.

        Never writes anything for a proposal that is not approved.
        """
        if proposal.status != ProposalStatus.APPROVED:
            return ThreadAccess(thread=None, disabled=True)

        thread = await self._find(proposal)

        if thread is None:
            thread = Thread(
                load_id=proposal.load_id,
                carrier_id=proposal.carrier_id,
                proposal_id=proposal.id,
            )
            try:
                async with savepoint(self.db, "thread_insert"):
                    self.db.add(thread)
                    await self.db.flush()
            except IntegrityError:
                thread = await self._find(proposal)
                if thread is None:
                    raise
            else:
                logger.info(
                    "thread_created",
                    thread_id=thread.id,
                    proposal_id=proposal.id,
                    load_id=proposal.load_id,
                    carrier_id=proposal.carrier_id,
                )

        if thread.proposal_id != proposal.id:
            previous = thread.proposal_id
            thread.proposal_id = proposal.id
            await self.db.flush()
            logger.info(
                "thread_rebound",
                thread_id=thread.id,
                proposal_id=proposal.id,
                previous_proposal_id=previous,
            )

        return ThreadAccess(thread=thread, disabled=False)

    async def require_thread(self, proposal: Proposal) -> Thread:
        """Like get_or_create_thread, but a disabled chat raises ThreadDisabled."""
        access = await self.get_or_create_thread(proposal)
        if access.disabled or access.thread is None:
            raise ThreadDisabled("Chat opens once the proposal is approved")
        return access.thread
