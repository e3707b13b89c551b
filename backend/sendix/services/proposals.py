"""
Proposal lifecycle service.

Handles:
- Bidding (one active bid per carrier and load)
- Moderation transitions (filter, unfilter, reject)
- Bid edits before selection
- Forward-only shipment tracking with the delivery notice
- The role-checked partial update behind PATCH /proposals/{id}
- Role-scoped listings and moderator statistics

Winner selection lives in services.selection.
"""
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from structlog import get_logger

from sendix.core.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from sendix.db.transaction import atomic
from sendix.models.load import Load
from sendix.models.proposal import (
    SHIP_SEQUENCE,
    Proposal,
    ProposalStatus,
    ShipStatus,
)
from sendix.models.thread import Thread, ThreadMessage
from sendix.models.user import User, UserRole
from sendix.services.access import (
    ParticipantRole,
    accessible_proposals_clause,
    check_field_permissions,
    require_moderator,
    require_participant,
)
from sendix.services.auth import normalize_email
from sendix.services.messages import MessageStore
from sendix.services.realtime import (
    Broadcaster,
    broadcast,
    room_for,
    shipment_updated_event,
)
from sendix.services.threads import ThreadGate

logger = get_logger()

UPDATABLE_FIELDS = ("vehicle", "price", "ship_status", "status")

EDITABLE_STATUSES = (ProposalStatus.PENDING, ProposalStatus.FILTERED)

# Moderation target -> statuses it may be reached from
MODERATION_SOURCES = {
    ProposalStatus.FILTERED: (ProposalStatus.PENDING,),
    ProposalStatus.PENDING: (ProposalStatus.FILTERED,),
    ProposalStatus.REJECTED: EDITABLE_STATUSES,
}

MODERATION_ACTIONS = {
    ProposalStatus.FILTERED: "filter",
    ProposalStatus.PENDING: "unfilter",
    ProposalStatus.REJECTED: "reject",
}


def delivery_notice(proposal: Proposal) -> str:
    return f"Delivery confirmed: {proposal.load.route} by {proposal.carrier.name}."


class ProposalService:
    """Service for carrier bids and their state machines."""

    def __init__(self, db: AsyncSession, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_proposal(self, proposal_id: int, refresh: bool = False) -> Proposal | None:
        query = select(Proposal).where(Proposal.id == proposal_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_proposal_or_404(self, proposal_id: int, refresh: bool = False) -> Proposal:
        proposal = await self.get_proposal(proposal_id, refresh=refresh)
        if proposal is None:
            raise NotFound("Proposal not found")
        return proposal

    async def get_for_participant(
        self,
        user: User,
        proposal_id: int,
    ) -> tuple[Proposal, ParticipantRole]:
        """Load a proposal the user takes part in, with the user's role on it."""
        proposal = await self.get_proposal_or_404(proposal_id)
        return proposal, require_participant(user, proposal)

    async def list_proposals(
        self,
        viewer: User,
        load_id: Optional[int] = None,
        owner_email: Optional[str] = None,
        carrier_email: Optional[str] = None,
        status: Optional[ProposalStatus] = None,
    ) -> list[Proposal]:
        """
        Proposals visible to the viewer, newest first.

        Moderators see every bid, shippers the bids on their loads and
        carriers their own bids.
        """
        query = select(Proposal).where(accessible_proposals_clause(viewer))

        if load_id is not None:
            query = query.where(Proposal.load_id == load_id)
        if status is not None:
            query = query.where(Proposal.status == status)
        if owner_email:
            owner = aliased(User)
            load = aliased(Load)
            query = (
                query.join(load, Proposal.load_id == load.id)
                .join(owner, load.owner_id == owner.id)
                .where(owner.email == normalize_email(owner_email))
            )
        if carrier_email:
            carrier = aliased(User)
            query = query.join(carrier, Proposal.carrier_id == carrier.id).where(
                carrier.email == normalize_email(carrier_email)
            )

        query = query.order_by(Proposal.created_at.desc(), Proposal.id.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_statistics(self, actor: User) -> dict[str, int]:
        """Proposal counts per status for the moderator dashboard."""
        require_moderator(actor)
        result = await self.db.execute(
            select(Proposal.status, func.count(Proposal.id)).group_by(Proposal.status)
        )
        counts = {status.value: 0 for status in ProposalStatus}
        for status, count in result.all():
            counts[ProposalStatus(status).value] = int(count)
        counts["total"] = sum(counts.values())
        return counts

    # -------------------------------------------------------------------------
    # Bidding
    # -------------------------------------------------------------------------

    async def _resolve_carrier(self, actor: User, carrier_id: Optional[int]) -> User:
        if actor.role == UserRole.CARRIER:
            if carrier_id is not None and carrier_id != actor.id:
                raise Forbidden("Carriers can only bid for themselves")
            return actor

        if actor.role == UserRole.NEXUS:
            if carrier_id is None:
                raise ValidationFailed("carrier_id is required when bidding on behalf of a carrier")
            carrier = await self.db.get(User, carrier_id)
            if carrier is None:
                raise NotFound("Carrier not found")
            if carrier.role != UserRole.CARRIER:
                raise ValidationFailed("Bids can only be placed for carriers")
            return carrier

        raise Forbidden("Only carriers can submit proposals")

    async def create_proposal(
        self,
        actor: User,
        load_id: int,
        vehicle: str,
        price: int,
        carrier_id: Optional[int] = None,
    ) -> Proposal:
        """
        Submit a bid on a load.

        Raises:
            Forbidden: actor may not bid (or not for that carrier)
            ValidationFailed: negative price or an active bid already exists
            NotFound: load does not exist
            InvalidTransition: the load already has a winner
        """
        carrier = await self._resolve_carrier(actor, carrier_id)

        if price is None or price < 0:
            raise ValidationFailed("Price must be zero or greater")

        load = await self.db.get(Load, load_id)
        if load is None:
            raise NotFound("Load not found")

        existing = await self.db.execute(
            select(Proposal.status, Proposal.carrier_id).where(
                Proposal.load_id == load_id,
                Proposal.status != ProposalStatus.REJECTED,
            )
        )
        rows = existing.all()
        if any(ProposalStatus(status) == ProposalStatus.APPROVED for status, _ in rows):
            raise InvalidTransition("This load has already been awarded")
        if any(bidder == carrier.id for _, bidder in rows):
            raise ValidationFailed("Carrier already has an active proposal for this load")

        proposal = Proposal(
            load_id=load.id,
            load=load,
            carrier_id=carrier.id,
            carrier=carrier,
            vehicle=(vehicle or "").strip(),
            price=price,
            status=ProposalStatus.PENDING,
            ship_status=ShipStatus.PENDING,
        )
        async with atomic(self.db):
            self.db.add(proposal)

        logger.info(
            "proposal_created",
            proposal_id=proposal.id,
            load_id=load.id,
            carrier_id=carrier.id,
            created_by=actor.id,
            price=price,
        )
        return await self.get_proposal_or_404(proposal.id, refresh=True)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _check_moderation(self, proposal: Proposal, target: ProposalStatus) -> None:
        action = MODERATION_ACTIONS[target]
        if proposal.status not in MODERATION_SOURCES[target]:
            raise InvalidTransition(
                f"Cannot {action} a proposal that is {proposal.status.value}"
            )

    def _plan_status(self, proposal: Proposal, value: ProposalStatus | str) -> Optional[ProposalStatus]:
        try:
            status = ProposalStatus(value)
        except ValueError:
            raise ValidationFailed(f"Unknown status: {value}")
        if status == ProposalStatus.APPROVED:
            raise InvalidTransition("Proposals are approved through winner selection")
        if status == proposal.status:
            return None
        self._check_moderation(proposal, status)
        return status

    def _plan_details(
        self,
        proposal: Proposal,
        vehicle: Optional[str],
        price: Optional[int],
    ) -> dict[str, Any]:
        if proposal.status not in EDITABLE_STATUSES:
            raise InvalidTransition(
                f"Cannot edit a proposal that is {proposal.status.value}"
            )
        if price is not None and price < 0:
            raise ValidationFailed("Price must be zero or greater")

        values: dict[str, Any] = {}
        if vehicle is not None:
            values["vehicle"] = vehicle.strip()
        if price is not None:
            values["price"] = price
        return values

    def _plan_ship_status(self, proposal: Proposal, value: ShipStatus | str) -> Optional[ShipStatus]:
        try:
            next_status = ShipStatus(value)
        except ValueError:
            raise ValidationFailed(f"Unknown ship status: {value}")

        if proposal.status != ProposalStatus.APPROVED:
            raise InvalidTransition("Shipment tracking starts once the proposal is approved")

        current = proposal.ship_status
        if next_status == current:
            return None
        if SHIP_SEQUENCE.index(next_status) != SHIP_SEQUENCE.index(current) + 1:
            raise InvalidTransition(
                f"Ship status can only advance from {current.value} to the next step"
            )
        return next_status

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _write(
        self,
        proposal: Proposal,
        values: dict[str, Any],
    ) -> tuple[bool, Optional[Thread], Optional[ThreadMessage]]:
        """
        Apply validated changes in a single transaction.

        The UPDATE only matches while status and ship_status still hold the
        values they were validated against. When another request got there
        first nothing is written and the first element is False.
        """
        thread: Thread | None = None
        notice: ThreadMessage | None = None
        async with atomic(self.db):
            result = await self.db.execute(
                update(Proposal)
                .where(
                    Proposal.id == proposal.id,
                    Proposal.status == proposal.status,
                    Proposal.ship_status == proposal.ship_status,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return False, None, None

            if values.get("ship_status") == ShipStatus.DELIVERED:
                thread = await ThreadGate(self.db).require_thread(proposal)
                notice = await MessageStore(self.db).append_system_message(
                    thread, delivery_notice(proposal)
                )
        return True, thread, notice

    async def _commit(
        self,
        actor: User,
        proposal: Proposal,
        values: dict[str, Any],
        event: str,
        **log_fields: Any,
    ) -> Proposal:
        applied, thread, notice = await self._write(proposal, values)
        fresh = await self.get_proposal_or_404(proposal.id, refresh=True)

        if not applied:
            # A concurrent request already made the same change
            if all(getattr(fresh, name) == value for name, value in values.items()):
                return fresh
            raise InvalidTransition("Proposal was changed by another request; reload and retry")

        logger.info(event, proposal_id=proposal.id, updated_by=actor.id, **log_fields)

        if "ship_status" in values and self.broadcaster is not None:
            await broadcast(
                self.broadcaster,
                room_for(proposal.id),
                shipment_updated_event(proposal.id, values["ship_status"].value),
            )
        if notice is not None:
            await MessageStore(self.db, self.broadcaster).announce(thread, notice)
        return fresh

    # -------------------------------------------------------------------------
    # Moderation
    # -------------------------------------------------------------------------

    async def _moderate(self, actor: User, proposal_id: int, target: ProposalStatus) -> Proposal:
        require_moderator(actor)
        proposal = await self.get_proposal_or_404(proposal_id)
        self._check_moderation(proposal, target)
        return await self._commit(
            actor,
            proposal,
            {"status": target},
            f"proposal_{MODERATION_ACTIONS[target]}ed",
            previous_status=proposal.status.value,
        )

    async def filter(self, actor: User, proposal_id: int) -> Proposal:
        """pending -> filtered: the bid passed moderation."""
        return await self._moderate(actor, proposal_id, ProposalStatus.FILTERED)

    async def unfilter(self, actor: User, proposal_id: int) -> Proposal:
        """filtered -> pending."""
        return await self._moderate(actor, proposal_id, ProposalStatus.PENDING)

    async def reject(self, actor: User, proposal_id: int) -> Proposal:
        """pending or filtered -> rejected."""
        return await self._moderate(actor, proposal_id, ProposalStatus.REJECTED)

    # -------------------------------------------------------------------------
    # Bid edits and shipment tracking
    # -------------------------------------------------------------------------

    async def update_details(
        self,
        actor: User,
        proposal_id: int,
        vehicle: Optional[str] = None,
        price: Optional[int] = None,
    ) -> Proposal:
        """Carrier edit of vehicle/price while the bid is still open."""
        proposal, role = await self.get_for_participant(actor, proposal_id)

        fields = [name for name, value in (("vehicle", vehicle), ("price", price)) if value is not None]
        if not fields:
            raise ValidationFailed("Nothing to update")
        check_field_permissions(role, fields)

        values = self._plan_details(proposal, vehicle, price)
        return await self._commit(actor, proposal, values, "proposal_details_updated", fields=fields)

    async def update_ship_status(
        self,
        actor: User,
        proposal_id: int,
        next_status: ShipStatus | str,
    ) -> Proposal:
        """
        Advance shipment tracking by exactly one step.

        Re-issuing the current value is an idempotent no-op. The first move
        to delivered appends a system message to the thread; concurrent
        deliveries of the same proposal post it once.

        Raises:
            Forbidden: actor is not a participant
            InvalidTransition: proposal not approved, or a skip/backwards step
            ValidationFailed: unknown status value
        """
        proposal, role = await self.get_for_participant(actor, proposal_id)
        check_field_permissions(role, ["ship_status"])

        step = self._plan_ship_status(proposal, next_status)
        if step is None:
            return proposal

        return await self._commit(
            actor,
            proposal,
            {"ship_status": step},
            "ship_status_updated",
            previous=proposal.ship_status.value,
            ship_status=step.value,
        )

    async def apply_update(
        self,
        actor: User,
        proposal_id: int,
        fields: dict[str, Any],
    ) -> Proposal:
        """
        Partial update behind PATCH: all fields or none.

        Every supplied field is validated against the stored proposal before
        anything is written, then the changes commit together. status accepts
        filtered, pending and rejected (moderator only); approval only happens
        through winner selection.
        """
        updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        if not updates:
            raise ValidationFailed(
                f"No updatable field supplied (expected one of: {', '.join(UPDATABLE_FIELDS)})"
            )

        proposal, role = await self.get_for_participant(actor, proposal_id)
        check_field_permissions(role, updates.keys())

        values: dict[str, Any] = {}
        if "status" in updates:
            status = self._plan_status(proposal, updates["status"])
            if status is not None:
                values["status"] = status
        if "vehicle" in updates or "price" in updates:
            values.update(
                self._plan_details(proposal, updates.get("vehicle"), updates.get("price"))
            )
        if "ship_status" in updates:
            step = self._plan_ship_status(proposal, updates["ship_status"])
            if step is not None:
                values["ship_status"] = step

        if not values:
            return proposal

        return await self._commit(
            actor,
            proposal,
            values,
            "proposal_updated",
            fields=sorted(values),
            previous_status=proposal.status.value,
            previous_ship_status=proposal.ship_status.value,
        )
