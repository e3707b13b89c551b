"""
Proposal endpoints.

Bidding, moderation, winner selection and the role-checked partial update.
"""
from typing import Optional

from fastapi import APIRouter, Query, status

from sendix.api.deps import (
    BroadcasterDep,
    CurrentUser,
    DbSession,
    decode_optional,
    decode_or_404,
)
from sendix.models.proposal import ProposalStatus
from sendix.schemas.proposal import (
    ProposalCreate,
    ProposalResponse,
    ProposalStatsResponse,
    ProposalUpdate,
    build_proposal_response,
)
from sendix.services.access import require_participant
from sendix.services.proposals import ProposalService
from sendix.services.selection import SelectionCoordinator

router = APIRouter()


@router.post("", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
async def create_proposal(
    request: ProposalCreate,
    current_user: CurrentUser,
    db: DbSession,
):
    """
    Submit a bid on a load.

    Carriers bid for themselves; a moderator may bid on behalf of a carrier
    by naming carrier_id.
    """
    proposal = await ProposalService(db).create_proposal(
        current_user,
        load_id=decode_or_404("load", request.load_id),
        vehicle=request.vehicle,
        price=request.price,
        carrier_id=decode_optional("user", request.carrier_id),
    )
    return build_proposal_response(proposal)


@router.get("", response_model=list[ProposalResponse])
async def list_proposals(
    current_user: CurrentUser,
    db: DbSession,
    load_id: Optional[str] = Query(None),
    owner_email: Optional[str] = Query(None),
    carrier_email: Optional[str] = Query(None),
    status: Optional[ProposalStatus] = Query(None),
):
    """List the proposals visible to the caller, newest first."""
    proposals = await ProposalService(db).list_proposals(
        current_user,
        load_id=decode_optional("load", load_id),
        owner_email=owner_email,
        carrier_email=carrier_email,
        status=status,
    )
    return [build_proposal_response(p) for p in proposals]


@router.get("/stats", response_model=ProposalStatsResponse)
async def proposal_stats(current_user: CurrentUser, db: DbSession):
    """Counts per status. Moderators only."""
    return await ProposalService(db).get_statistics(current_user)


@router.get("/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: str,
    current_user: CurrentUser,
    db: DbSession,
):
    service = ProposalService(db)
    proposal = await service.get_proposal_or_404(decode_or_404("proposal", proposal_id))
    require_participant(current_user, proposal)
    return build_proposal_response(proposal)


@router.patch("/{proposal_id}", response_model=ProposalResponse)
async def update_proposal(
    proposal_id: str,
    request: ProposalUpdate,
    current_user: CurrentUser,
    db: DbSession,
    broadcaster: BroadcasterDep,
):
    """
    Partial update.

    Each supplied field is checked against the caller's role on the
    proposal before anything is written.
    """
    proposal = await ProposalService(db, broadcaster).apply_update(
        current_user,
        decode_or_404("proposal", proposal_id),
        request.model_dump(exclude_unset=True),
    )
    return build_proposal_response(proposal)


@router.post("/{proposal_id}/filter", response_model=ProposalResponse)
async def filter_proposal(proposal_id: str, current_user: CurrentUser, db: DbSession):
    proposal = await ProposalService(db).filter(
        current_user, decode_or_404("proposal", proposal_id)
    )
    return build_proposal_response(proposal)


@router.post("/{proposal_id}/unfilter", response_model=ProposalResponse)
async def unfilter_proposal(proposal_id: str, current_user: CurrentUser, db: DbSession):
    proposal = await ProposalService(db).unfilter(
        current_user, decode_or_404("proposal", proposal_id)
    )
    return build_proposal_response(proposal)


@router.post("/{proposal_id}/reject", response_model=ProposalResponse)
async def reject_proposal(proposal_id: str, current_user: CurrentUser, db: DbSession):
    proposal = await ProposalService(db).reject(
        current_user, decode_or_404("proposal", proposal_id)
    )
    return build_proposal_response(proposal)


@router.post("/{proposal_id}/select", response_model=ProposalResponse)
async def select_proposal(
    proposal_id: str,
    current_user: CurrentUser,
    db: DbSession,
):
    """Award the load to this proposal and reject the other bids."""
    proposal = await SelectionCoordinator(db).select_winner(
        current_user, decode_or_404("proposal", proposal_id)
    )
    return build_proposal_response(proposal)
