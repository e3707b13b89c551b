"""
Selection coordinator: awards a load to one proposal.

Selecting a winner approves the target, rejects every other open bid on
the load, opens (or rebinds) the chat thread and accrues the commission,
all in one transaction. Within a process, selections on the same load are
serialized by a per-load lock; across processes the row locks and the
partial unique index on approved proposals keep a second winner out.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from sendix.core.errors import Forbidden, InvalidTransition
from sendix.db.transaction import KeyedLocks, atomic
from sendix.models.proposal import Proposal, ProposalStatus
from sendix.models.user import User
from sendix.services.commissions import CommissionLedger
from sendix.services.proposals import ProposalService
from sendix.services.threads import ThreadGate

logger = get_logger()

# load_id -> lock, shared by every request in this process
load_locks = KeyedLocks()


class SelectionCoordinator:
    """Transactional winner selection."""

    def __init__(
        self,
        db: AsyncSession,
        locks: Optional[KeyedLocks] = None,
    ):
        self.db = db
        self.locks = locks if locks is not None else load_locks
        self.proposals = ProposalService(db)

    async def _lock_load_proposals(self, load_id: int) -> list[Proposal]:
        """Fresh rows for every bid on the load, locked where supported."""
        result = await self.db.execute(
            select(Proposal)
            .where(Proposal.load_id == load_id)
            .order_by(Proposal.id)
            .with_for_update(of=Proposal)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def select_winner(self, actor: User, proposal_id: int) -> Proposal:
        """
        Approve a proposal and reject its siblings.

        Selecting the current winner again succeeds without side effects.

        Raises:
            NotFound: proposal does not exist
            Forbidden: actor does not own the load
            InvalidTransition: target rejected, or the load already has
                another winner
        """
        proposal = await self.proposals.get_proposal_or_404(proposal_id)
        if proposal.load.owner_id != actor.id:
            raise Forbidden("Only the load owner can select a winner")

        load_id = proposal.load_id
        rejected: list[int] = []
        already_selected = False

        async with self.locks.hold(load_id):
            async with atomic(self.db):
                siblings = await self._lock_load_proposals(load_id)
                target = next(p for p in siblings if p.id == proposal_id)

                if target.status == ProposalStatus.APPROVED:
                    already_selected = True
                else:
                    if target.status == ProposalStatus.REJECTED:
                        raise InvalidTransition("A rejected proposal cannot be selected")
                    if any(
                        p.status == ProposalStatus.APPROVED
                        for p in siblings if p.id != target.id
                    ):
                        raise InvalidTransition("This load already has a selected proposal")

                    target.status = ProposalStatus.APPROVED
                    for sibling in siblings:
                        if sibling.id != target.id and sibling.status != ProposalStatus.REJECTED:
                            sibling.status = ProposalStatus.REJECTED
                            rejected.append(sibling.id)
                    await self.db.flush()

                await ThreadGate(self.db).get_or_create_thread(target)
                commission = await CommissionLedger(self.db).ensure_for_proposal(target)

        if already_selected:
            logger.info("winner_already_selected", proposal_id=proposal_id, load_id=load_id)
        else:
            logger.info(
                "winner_selected",
                proposal_id=proposal_id,
                load_id=load_id,
                selected_by=actor.id,
                rejected=rejected,
                commission_id=commission.id,
            )

        return await self.proposals.get_proposal_or_404(proposal_id, refresh=True)
