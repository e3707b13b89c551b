"""
Proposal model: a carrier's bid against a load.

A proposal carries two independent state machines:
- status: moderation and selection (pending -> filtered -> approved/rejected)
- ship_status: shipment tracking, only meaningful once approved
"""
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sendix.db.base import Base

if TYPE_CHECKING:
    from sendix.models.commission import Commission
    from sendix.models.load import Load
    from sendix.models.user import User


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class ProposalStatus(str, Enum):
    """Moderation/selection status of a proposal."""
    PENDING = "pending"      # Submitted, awaiting moderation
    FILTERED = "filtered"    # Passed moderation, visible as selectable
    APPROVED = "approved"    # Selected as the winner of its load
    REJECTED = "rejected"    # Rejected by moderator or lost the selection


class ShipStatus(str, Enum):
    """Shipment progress of an approved proposal."""
    PENDING = "pending"
    LOADING = "loading"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


# Fixed forward-only sequence for shipment tracking
SHIP_SEQUENCE: tuple[ShipStatus, ...] = (
    ShipStatus.PENDING,
    ShipStatus.LOADING,
    ShipStatus.IN_TRANSIT,
    ShipStatus.DELIVERED,
)


class Proposal(Base):
    """
    A carrier's bid on a load.

    At most one proposal per load may be approved; the partial unique
    index below backs the selection coordinator at the storage layer.
    """

    __tablename__ = "proposals"
    __table_args__ = (
        Index(
            "uq_proposals_load_approved",
            "load_id",
            unique=True,
            postgresql_where=text("status = 'approved'"),
            sqlite_where=text("status = 'approved'"),
        ),
        Index("ix_proposals_load_carrier", "load_id", "carrier_id"),
    )

    load_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("loads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    carrier_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    vehicle: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    # Smallest currency unit
    price: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[ProposalStatus] = mapped_column(
        SQLEnum(ProposalStatus, native_enum=False, length=20, values_callable=_enum_values),
        default=ProposalStatus.PENDING,
        nullable=False,
        index=True,
    )
    ship_status: Mapped[ShipStatus] = mapped_column(
        SQLEnum(ShipStatus, native_enum=False, length=20, values_callable=_enum_values),
        default=ShipStatus.PENDING,
        nullable=False,
    )

    # Relationships
    load: Mapped["Load"] = relationship(
        "Load",
        back_populates="proposals",
        lazy="joined",
    )
    carrier: Mapped["User"] = relationship(
        "User",
        back_populates="proposals",
        lazy="joined",
    )
    commission: Mapped[Optional["Commission"]] = relationship(
        "Commission",
        back_populates="proposal",
        uselist=False,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Proposal id={self.id} load={self.load_id} carrier={self.carrier_id} status={self.status}>"
