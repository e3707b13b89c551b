"""
Commission model: the platform's fee on an approved proposal.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sendix.db.base import Base

if TYPE_CHECKING:
    from sendix.models.proposal import Proposal


class CommissionStatus(str, Enum):
    """Invoicing state of a commission."""
    PENDING = "pending"
    INVOICED = "invoiced"


class Commission(Base):
    """
    One commission per approved proposal.

    The unique constraint on proposal_id is what keeps concurrent or
    repeated selections from accruing the fee twice.
    """

    __tablename__ = "commissions"

    proposal_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    # round_half_up(price * rate), smallest currency unit
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[CommissionStatus] = mapped_column(
        SQLEnum(
            CommissionStatus,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=CommissionStatus.PENDING,
        nullable=False,
        index=True,
    )
    invoice_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    proposal: Mapped["Proposal"] = relationship(
        "Proposal",
        back_populates="commission",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<Commission id={self.id} proposal={self.proposal_id} amount={self.amount} status={self.status}>"
