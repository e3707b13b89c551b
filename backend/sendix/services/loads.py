"""
Minimal load registry.

Loads are owned by the publishing flow; the core only needs to create,
read and list them to anchor proposals.
"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from structlog import get_logger

from sendix.core.errors import NotFound, ValidationFailed
from sendix.db.transaction import atomic
from sendix.models.load import Load
from sendix.models.user import User, UserRole
from sendix.services.access import require_role
from sendix.services.auth import normalize_email

logger = get_logger()


class LoadRegistry:
    """Service for shipper loads."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_load(
        self,
        actor: User,
        origin: str,
        destination: str,
        cargo_type: str,
        description: Optional[str] = None,
        pickup_at: Optional[datetime] = None,
        attachments: Optional[list[Any]] = None,
    ) -> Load:
        """Publish a load. Shippers only."""
        require_role(actor, UserRole.SHIPPER)

        origin, destination, cargo_type = (
            (origin or "").strip(),
            (destination or "").strip(),
            (cargo_type or "").strip(),
        )
        missing = [
            name for name, value in
            (("origin", origin), ("destination", destination), ("cargo_type", cargo_type))
            if not value
        ]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

        load = Load(
            owner_id=actor.id,
            owner=actor,
            origin=origin,
            destination=destination,
            cargo_type=cargo_type,
            description=description,
            pickup_at=pickup_at,
            attachments=attachments,
        )
        async with atomic(self.db):
            self.db.add(load)

        logger.info("load_created", load_id=load.id, owner_id=actor.id)
        return load

    async def get_load(self, load_id: int) -> Load:
        load = await self.db.get(Load, load_id)
        if load is None:
            raise NotFound("Load not found")
        return load

    async def list_loads(self, owner_email: Optional[str] = None) -> list[Load]:
        """All loads, newest first, optionally for one shipper."""
        query = select(Load)
        if owner_email:
            owner = aliased(User)
            query = query.join(owner, Load.owner_id == owner.id).where(
                owner.email == normalize_email(owner_email)
            )
        query = query.order_by(Load.created_at.desc(), Load.id.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())
