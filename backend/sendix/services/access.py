"""
Authorization matrix for proposals and their chat.

Roles are relative to a proposal:
- shipper: owner of the proposal's load
- carrier: the bidding carrier
- moderator: any nexus user, with unconditional access

Field-level edit rights live in one explicit table consulted before any
partial update is applied.
"""
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import ColumnElement, or_, select, true

from sendix.core.errors import Forbidden
from sendix.models.load import Load
from sendix.models.proposal import Proposal
from sendix.models.user import User, UserRole


class ParticipantRole(str, Enum):
    """A user's role relative to one proposal."""
    SHIPPER = "shipper"
    CARRIER = "carrier"
    MODERATOR = "moderator"


# (field) -> roles allowed to write it through the generic update
PROPOSAL_FIELD_PERMISSIONS: dict[str, frozenset[ParticipantRole]] = {
    "vehicle": frozenset({ParticipantRole.CARRIER}),
    "price": frozenset({ParticipantRole.CARRIER}),
    "ship_status": frozenset({
        ParticipantRole.CARRIER,
        ParticipantRole.SHIPPER,
        ParticipantRole.MODERATOR,
    }),
    "status": frozenset({ParticipantRole.MODERATOR}),
}


def participant_role(user: User, proposal: Proposal) -> Optional[ParticipantRole]:
    """Resolve the user's role on a proposal, or None for outsiders."""
    if user.role == UserRole.NEXUS:
        return ParticipantRole.MODERATOR
    if proposal.load is not None and proposal.load.owner_id == user.id:
        return ParticipantRole.SHIPPER
    if proposal.carrier_id == user.id:
        return ParticipantRole.CARRIER
    return None


def user_can_access_proposal(user: User, proposal: Proposal) -> bool:
    return participant_role(user, proposal) is not None


def require_participant(user: User, proposal: Proposal) -> ParticipantRole:
    """Return the user's role on the proposal or raise Forbidden."""
    role = participant_role(user, proposal)
    if role is None:
        raise Forbidden("You are not a participant in this proposal")
    return role


def can_edit_field(role: ParticipantRole, field: str) -> bool:
    return role in PROPOSAL_FIELD_PERMISSIONS.get(field, frozenset())


def check_field_permissions(role: ParticipantRole, fields: Iterable[str]) -> None:
    """Raise Forbidden naming every field the role may not write."""
    denied = sorted(f for f in fields if not can_edit_field(role, f))
    if denied:
        raise Forbidden(f"Role '{role.value}' may not update: {', '.join(denied)}")


def require_role(user: User, *roles: UserRole) -> None:
    if user.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise Forbidden(f"This operation requires role: {allowed}")


def require_moderator(user: User) -> None:
    require_role(user, UserRole.NEXUS)


def accessible_proposals_clause(user: User) -> ColumnElement[bool]:
    """SQL filter restricting proposals to the ones the user may see."""
    if user.role == UserRole.NEXUS:
        return true()
    owned_loads = select(Load.id).where(Load.owner_id == user.id).correlate(None)
    return or_(
        Proposal.load_id.in_(owned_loads),
        Proposal.carrier_id == user.id,
    )
