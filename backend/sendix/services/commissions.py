"""
Commission ledger.

Handles:
- Fee computation (price x rate, rounded half-up to the smallest unit)
- Idempotent accrual when a proposal is approved
- Invoicing by the nexus
- Filtered listings by period and fortnight cut, plus dashboard totals
"""
import calendar
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload
from structlog import get_logger

from sendix.core.config import settings
from sendix.core.errors import InvalidTransition, NotFound, ValidationFailed
from sendix.db.base import utcnow
from sendix.db.transaction import atomic, savepoint
from sendix.models.commission import Commission, CommissionStatus
from sendix.models.load import Load
from sendix.models.proposal import Proposal
from sendix.models.user import User
from sendix.services.access import accessible_proposals_clause, require_moderator
from sendix.services.auth import normalize_email

logger = get_logger()

PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
CUTS = ("full", "q1", "q2")

# Window for the "recently invoiced" dashboard total
INVOICED_WINDOW = timedelta(days=30)


def period_range(period: str, cut: str = "full") -> tuple[datetime, datetime]:
    """
    Resolve a YYYY-MM period and fortnight cut to a half-open UTC range.

    q1 covers days 1-15, q2 day 16 to month end, full the whole month.
    """
    match = PERIOD_PATTERN.match(period or "")
    if not match:
        raise ValidationFailed("Period must have the form YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationFailed("Period month must be between 01 and 12")
    if cut not in CUTS:
        raise ValidationFailed(f"Cut must be one of: {', '.join(CUTS)}")

    month_start = datetime(year, month, 1, tzinfo=timezone.utc)
    days = calendar.monthrange(year, month)[1]
    month_end = month_start + timedelta(days=days)
    midpoint = datetime(year, month, 16, tzinfo=timezone.utc)

    if cut == "q1":
        return month_start, midpoint
    if cut == "q2":
        return midpoint, month_end
    return month_start, month_end


class CommissionLedger:
    """Service for the platform fee on approved proposals."""

    def __init__(self, db: AsyncSession, rate: Optional[Decimal] = None):
        self.db = db
        self.rate = Decimal(rate) if rate is not None else settings.commission_rate

    @staticmethod
    def amount_for(price: int, rate: Decimal) -> int:
        """Fee in the smallest currency unit, rounded half-up."""
        exact = Decimal(price) * Decimal(rate)
        return int(exact.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    async def get_for_proposal(self, proposal_id: int) -> Commission | None:
        result = await self.db.execute(
            select(Commission).where(Commission.proposal_id == proposal_id)
        )
        return result.scalar_one_or_none()

    async def ensure_for_proposal(self, proposal: Proposal) -> Commission:
        """
        Return the proposal's commission, creating it on first call.

        Runs inside the caller's transaction. A concurrent insert that wins
        the unique constraint on proposal_id is resolved by re-reading.
        """
        existing = await self.get_for_proposal(proposal.id)
        if existing is not None:
            return existing

        commission = Commission(
            proposal_id=proposal.id,
            rate=self.rate,
            amount=self.amount_for(proposal.price, self.rate),
            status=CommissionStatus.PENDING,
        )
        try:
            async with savepoint(self.db, "commission_insert"):
                self.db.add(commission)
                await self.db.flush()
        except IntegrityError:
            existing = await self.get_for_proposal(proposal.id)
            if existing is None:
                raise
            logger.info("commission_already_exists", proposal_id=proposal.id)
            return existing

        logger.info(
            "commission_created",
            commission_id=commission.id,
            proposal_id=proposal.id,
            amount=commission.amount,
            rate=str(self.rate),
        )
        return commission

    async def get_commission_or_404(self, commission_id: int) -> Commission:
        result = await self.db.execute(
            select(Commission)
            .options(selectinload(Commission.proposal))
            .where(Commission.id == commission_id)
        )
        commission = result.scalar_one_or_none()
        if commission is None:
            raise NotFound("Commission not found")
        return commission

    async def mark_invoiced(
        self,
        actor: User,
        commission_id: int,
        invoice_at: Optional[datetime] = None,
    ) -> Commission:
        """Move a pending commission to invoiced. Moderator only."""
        require_moderator(actor)
        commission = await self.get_commission_or_404(commission_id)
        if commission.status == CommissionStatus.INVOICED:
            raise InvalidTransition("Commission is already invoiced")

        async with atomic(self.db):
            commission.status = CommissionStatus.INVOICED
            commission.invoice_at = invoice_at or utcnow()

        logger.info(
            "commission_invoiced",
            commission_id=commission.id,
            proposal_id=commission.proposal_id,
            invoiced_by=actor.id,
        )
        return commission

    async def list_commissions(
        self,
        viewer: User,
        status: Optional[CommissionStatus] = None,
        owner_email: Optional[str] = None,
        carrier_email: Optional[str] = None,
        period: Optional[str] = None,
        cut: str = "full",
    ) -> list[Commission]:
        """
        Read-only projection of the ledger.

        The date bucketed by period/cut is invoice_at when set, else
        created_at. Non-moderators only see rows for their own loads or bids.
        """
        bucket_at = func.coalesce(Commission.invoice_at, Commission.created_at)

        query = (
            select(Commission)
            .join(Proposal, Commission.proposal_id == Proposal.id)
            .join(Load, Proposal.load_id == Load.id)
            .options(selectinload(Commission.proposal))
            .where(accessible_proposals_clause(viewer))
        )

        if status is not None:
            query = query.where(Commission.status == status)
        if owner_email:
            owner = aliased(User)
            query = query.join(owner, Load.owner_id == owner.id).where(
                owner.email == normalize_email(owner_email)
            )
        if carrier_email:
            carrier = aliased(User)
            query = query.join(carrier, Proposal.carrier_id == carrier.id).where(
                carrier.email == normalize_email(carrier_email)
            )
        if period:
            start, end = period_range(period, cut)
            query = query.where(bucket_at >= start, bucket_at < end)
        elif cut not in CUTS:
            raise ValidationFailed(f"Cut must be one of: {', '.join(CUTS)}")

        query = query.order_by(bucket_at.desc(), Commission.id.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def summary(self, actor: User, now: Optional[datetime] = None) -> dict:
        """Pending total and amount invoiced in the last 30 days."""
        require_moderator(actor)
        now = now or utcnow()

        pending = await self.db.execute(
            select(func.count(Commission.id), func.coalesce(func.sum(Commission.amount), 0))
            .where(Commission.status == CommissionStatus.PENDING)
        )
        pending_count, pending_total = pending.one()

        invoiced = await self.db.execute(
            select(func.count(Commission.id), func.coalesce(func.sum(Commission.amount), 0))
            .where(
                Commission.status == CommissionStatus.INVOICED,
                Commission.invoice_at >= now - INVOICED_WINDOW,
            )
        )
        invoiced_count, invoiced_total = invoiced.one()

        return {
            "pending_count": int(pending_count),
            "pending_total": int(pending_total),
            "invoiced_last_30d_count": int(invoiced_count),
            "invoiced_last_30d_total": int(invoiced_total),
        }
