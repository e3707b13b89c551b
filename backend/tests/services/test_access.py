"""
Tests for the authorization matrix.
"""
import pytest
from sqlalchemy import select

from sendix.core.errors import Forbidden
from sendix.models import Proposal, UserRole
from sendix.services.access import (
    ParticipantRole,
    accessible_proposals_clause,
    can_edit_field,
    check_field_permissions,
    participant_role,
    require_participant,
    require_role,
)


class TestFieldPermissions:
    """The field table consulted before partial updates."""

    @pytest.mark.parametrize(
        "role,field,allowed",
        [
            (ParticipantRole.CARRIER, "vehicle", True),
            (ParticipantRole.CARRIER, "price", True),
            (ParticipantRole.CARRIER, "ship_status", True),
            (ParticipantRole.CARRIER, "status", False),
            (ParticipantRole.SHIPPER, "vehicle", False),
            (ParticipantRole.SHIPPER, "price", False),
            (ParticipantRole.SHIPPER, "ship_status", True),
            (ParticipantRole.SHIPPER, "status", False),
            (ParticipantRole.MODERATOR, "vehicle", False),
            (ParticipantRole.MODERATOR, "price", False),
            (ParticipantRole.MODERATOR, "ship_status", True),
            (ParticipantRole.MODERATOR, "status", True),
            (ParticipantRole.MODERATOR, "load_id", False),
        ],
    )
    def test_matrix(self, role, field, allowed):
        assert can_edit_field(role, field) is allowed

    def test_check_names_denied_fields(self):
        with pytest.raises(Forbidden) as exc:
            check_field_permissions(ParticipantRole.SHIPPER, ["status", "price", "ship_status"])

        assert "price, status" in exc.value.message

    def test_check_passes_allowed_fields(self):
        check_field_permissions(ParticipantRole.CARRIER, ["vehicle", "price"])


@pytest.mark.asyncio
class TestParticipantRole:

    async def test_roles_relative_to_proposal(
        self, load, shipper, other_shipper, carrier_a, carrier_b, moderator, place_bid
    ):
        proposal = await place_bid(carrier_a, load)

        assert participant_role(shipper, proposal) == ParticipantRole.SHIPPER
        assert participant_role(carrier_a, proposal) == ParticipantRole.CARRIER
        assert participant_role(moderator, proposal) == ParticipantRole.MODERATOR
        assert participant_role(carrier_b, proposal) is None
        assert participant_role(other_shipper, proposal) is None

    async def test_require_participant(self, load, carrier_a, carrier_b, place_bid):
        proposal = await place_bid(carrier_a, load)

        assert require_participant(carrier_a, proposal) == ParticipantRole.CARRIER
        with pytest.raises(Forbidden):
            require_participant(carrier_b, proposal)

    async def test_require_role(self, shipper, carrier_a):
        require_role(shipper, UserRole.SHIPPER)
        with pytest.raises(Forbidden):
            require_role(carrier_a, UserRole.SHIPPER, UserRole.NEXUS)

    async def test_accessible_clause(
        self, db_session, load, shipper, other_shipper, carrier_a, carrier_b, moderator, place_bid
    ):
        mine = await place_bid(carrier_a, load)
        theirs = await place_bid(carrier_b, load)

        async def visible(user):
            result = await db_session.execute(
                select(Proposal.id).where(accessible_proposals_clause(user)).order_by(Proposal.id)
            )
            return list(result.scalars().all())

        assert await visible(shipper) == [mine.id, theirs.id]
        assert await visible(moderator) == [mine.id, theirs.id]
        assert await visible(carrier_a) == [mine.id]
        assert await visible(other_shipper) == []
