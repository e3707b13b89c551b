"""
Commission Pydantic schemas.
"""
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel

from sendix.core.hashids import encode_id
from sendix.models.commission import Commission, CommissionStatus
from sendix.schemas.user import UserSummary, build_user_summary


class CommissionBrief(BaseModel):
    """Commission as embedded in a proposal."""
    id: str
    rate: Decimal
    amount: int
    status: CommissionStatus
    invoice_at: Optional[datetime] = None


class CommissionResponse(BaseModel):
    """Ledger row with the proposal context resolved."""
    id: str
    proposal_id: str
    load_id: str
    route: str
    shipper: UserSummary
    carrier: UserSummary
    price: int
    rate: Decimal
    amount: int
    status: CommissionStatus
    created_at: datetime
    invoice_at: Optional[datetime] = None


class CommissionUpdate(BaseModel):
    """Schema for invoicing a commission."""
    status: Literal["invoiced"] = "invoiced"
    invoice_at: Optional[datetime] = None


class CommissionSummaryResponse(BaseModel):
    pending_count: int
    pending_total: int
    invoiced_last_30d_count: int
    invoiced_last_30d_total: int


def build_commission_brief(commission: Commission) -> CommissionBrief:
    return CommissionBrief(
        id=encode_id("commission", commission.id),
        rate=commission.rate,
        amount=commission.amount,
        status=commission.status,
        invoice_at=commission.invoice_at,
    )


def build_commission_response(commission: Commission) -> CommissionResponse:
    """The proposal must be loaded alongside the commission."""
    proposal = commission.proposal
    return CommissionResponse(
        id=encode_id("commission", commission.id),
        proposal_id=encode_id("proposal", proposal.id),
        load_id=encode_id("load", proposal.load_id),
        route=proposal.load.route,
        shipper=build_user_summary(proposal.load.owner),
        carrier=build_user_summary(proposal.carrier),
        price=proposal.price,
        rate=commission.rate,
        amount=commission.amount,
        status=commission.status,
        created_at=commission.created_at,
        invoice_at=commission.invoice_at,
    )
