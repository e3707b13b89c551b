"""
Proposal Pydantic schemas.

Schemas for bids, moderation, partial updates and shipment tracking.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from sendix.core.hashids import encode_id
from sendix.models.proposal import Proposal, ProposalStatus, ShipStatus
from sendix.schemas.commission import CommissionBrief, build_commission_brief
from sendix.schemas.user import UserSummary, build_user_summary


class ProposalCreate(BaseModel):
    """Schema for submitting a bid."""
    load_id: str
    carrier_id: Optional[str] = None  # moderators bidding on behalf of a carrier
    vehicle: str = Field("", max_length=120)
    price: int = Field(..., ge=0)


class ProposalUpdate(BaseModel):
    """Partial update; each field is checked against the caller's role."""
    vehicle: Optional[str] = Field(None, max_length=120)
    price: Optional[int] = Field(None, ge=0)
    ship_status: Optional[ShipStatus] = None
    status: Optional[ProposalStatus] = None


class LoadBrief(BaseModel):
    id: str
    origin: str
    destination: str
    cargo_type: str
    owner: UserSummary


class ProposalResponse(BaseModel):
    """Proposal with its load, carrier and commission resolved."""
    id: str
    load: LoadBrief
    carrier: UserSummary
    vehicle: str
    price: int
    status: ProposalStatus
    ship_status: ShipStatus
    commission: Optional[CommissionBrief] = None
    created_at: datetime
    updated_at: datetime


class ProposalStatsResponse(BaseModel):
    """Counts per status for the moderator dashboard."""
    pending: int = 0
    filtered: int = 0
    approved: int = 0
    rejected: int = 0
    total: int = 0


def build_proposal_response(proposal: Proposal) -> ProposalResponse:
    load = proposal.load
    return ProposalResponse(
        id=encode_id("proposal", proposal.id),
        load=LoadBrief(
            id=encode_id("load", load.id),
            origin=load.origin,
            destination=load.destination,
            cargo_type=load.cargo_type,
            owner=build_user_summary(load.owner),
        ),
        carrier=build_user_summary(proposal.carrier),
        vehicle=proposal.vehicle,
        price=proposal.price,
        status=proposal.status,
        ship_status=proposal.ship_status,
        commission=build_commission_brief(proposal.commission) if proposal.commission else None,
        created_at=proposal.created_at,
        updated_at=proposal.updated_at,
    )
