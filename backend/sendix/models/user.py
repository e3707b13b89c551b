"""
User model.

Users are registered by the external account service; the core only reads
them to resolve identities and roles.
"""
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sendix.db.base import Base

if TYPE_CHECKING:
    from sendix.models.load import Load
    from sendix.models.proposal import Proposal


class UserRole(str, Enum):
    """Platform role of a user."""
    SHIPPER = "empresa"          # Publishes loads, selects winners
    CARRIER = "transportista"    # Bids on loads, moves shipments
    NEXUS = "sendix"             # Moderates proposals, invoices commissions


class User(Base):
    """A platform account with exactly one role."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    loads: Mapped[list["Load"]] = relationship(
        "Load",
        back_populates="owner",
        lazy="noload",
    )
    proposals: Mapped[list["Proposal"]] = relationship(
        "Proposal",
        back_populates="carrier",
        lazy="noload",
    )

    @property
    def is_moderator(self) -> bool:
        return self.role == UserRole.NEXUS

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
