"""
Load model: a shipper's freight request.

Route and cargo fields are descriptive only; the proposal engine reads
nothing but ownership from a load.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sendix.db.base import Base

if TYPE_CHECKING:
    from sendix.models.proposal import Proposal
    from sendix.models.user import User


class Load(Base):
    """A freight request published by a shipper."""

    __tablename__ = "loads"

    owner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    origin: Mapped[str] = mapped_column(String(200), nullable=False)
    destination: Mapped[str] = mapped_column(String(200), nullable=False)
    cargo_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pickup_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Opaque list of {name, type, preview} items
    attachments: Mapped[Optional[list[Any]]] = mapped_column(JSON, nullable=True)

    owner: Mapped["User"] = relationship(
        "User",
        back_populates="loads",
        lazy="joined",
    )
    proposals: Mapped[list["Proposal"]] = relationship(
        "Proposal",
        back_populates="load",
        lazy="noload",
    )

    @property
    def route(self) -> str:
        return f"{self.origin} -> {self.destination}"

    def __repr__(self) -> str:
        return f"<Load id={self.id} owner={self.owner_id} {self.route}>"
