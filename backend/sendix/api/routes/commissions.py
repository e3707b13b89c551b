"""
Commission ledger endpoints.

- GET /commissions - Filtered ledger (period YYYY-MM, cut full|q1|q2)
- GET /commissions/summary - Dashboard totals (moderators)
- PATCH /commissions/{commission_id} - Mark invoiced (moderators)
"""
from typing import Literal, Optional

from fastapi import APIRouter, Query

from sendix.api.deps import CurrentUser, DbSession, decode_or_404
from sendix.models.commission import CommissionStatus
from sendix.schemas.commission import (
    CommissionResponse,
    CommissionSummaryResponse,
    CommissionUpdate,
    build_commission_response,
)
from sendix.services.commissions import CommissionLedger

router = APIRouter()


@router.get("", response_model=list[CommissionResponse])
async def list_commissions(
    current_user: CurrentUser,
    db: DbSession,
    status: Optional[CommissionStatus] = Query(None),
    owner_email: Optional[str] = Query(None),
    carrier_email: Optional[str] = Query(None),
    period: Optional[str] = Query(None, description="YYYY-MM"),
    cut: Literal["full", "q1", "q2"] = Query("full"),
):
    commissions = await CommissionLedger(db).list_commissions(
        current_user,
        status=status,
        owner_email=owner_email,
        carrier_email=carrier_email,
        period=period,
        cut=cut,
    )
    return [build_commission_response(c) for c in commissions]


@router.get("/summary", response_model=CommissionSummaryResponse)
async def commission_summary(current_user: CurrentUser, db: DbSession):
    return await CommissionLedger(db).summary(current_user)


@router.patch("/{commission_id}", response_model=CommissionResponse)
async def invoice_commission(
    commission_id: str,
    request: CommissionUpdate,
    current_user: CurrentUser,
    db: DbSession,
):
    """Mark a pending commission as invoiced."""
    ledger = CommissionLedger(db)
    commission = await ledger.mark_invoiced(
        current_user,
        decode_or_404("commission", commission_id),
        invoice_at=request.invoice_at,
    )
    return build_commission_response(commission)
