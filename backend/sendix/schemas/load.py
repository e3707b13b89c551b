"""
Load Pydantic schemas.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from sendix.core.hashids import encode_id
from sendix.models.load import Load
from sendix.schemas.user import UserSummary, build_user_summary


class LoadCreate(BaseModel):
    """Schema for publishing a load."""
    origin: str = Field(..., max_length=200)
    destination: str = Field(..., max_length=200)
    cargo_type: str = Field(..., max_length=100)
    description: Optional[str] = None
    pickup_at: Optional[datetime] = None
    attachments: Optional[list[Any]] = None


class LoadResponse(BaseModel):
    """Load response schema."""
    id: str
    owner: UserSummary
    origin: str
    destination: str
    cargo_type: str
    description: Optional[str] = None
    pickup_at: Optional[datetime] = None
    attachments: Optional[list[Any]] = None
    created_at: datetime


def build_load_response(load: Load) -> LoadResponse:
    return LoadResponse(
        id=encode_id("load", load.id),
        owner=build_user_summary(load.owner),
        origin=load.origin,
        destination=load.destination,
        cargo_type=load.cargo_type,
        description=load.description,
        pickup_at=load.pickup_at,
        attachments=load.attachments,
        created_at=load.created_at,
    )
