"""
Load endpoints.

- POST /loads - Publish a load (shippers)
- GET /loads - List loads, optionally by owner email
- GET /loads/{load_id} - Get one load
"""
from typing import Optional

from fastapi import APIRouter, Query, status

from sendix.api.deps import CurrentUser, DbSession, decode_or_404
from sendix.schemas.load import LoadCreate, LoadResponse, build_load_response
from sendix.services.loads import LoadRegistry

router = APIRouter()


@router.post("", response_model=LoadResponse, status_code=status.HTTP_201_CREATED)
async def create_load(
    request: LoadCreate,
    current_user: CurrentUser,
    db: DbSession,
):
    """Publish a new load."""
    load = await LoadRegistry(db).create_load(
        current_user,
        origin=request.origin,
        destination=request.destination,
        cargo_type=request.cargo_type,
        description=request.description,
        pickup_at=request.pickup_at,
        attachments=request.attachments,
    )
    return build_load_response(load)


@router.get("", response_model=list[LoadResponse])
async def list_loads(
    current_user: CurrentUser,
    db: DbSession,
    owner_email: Optional[str] = Query(None),
):
    loads = await LoadRegistry(db).list_loads(owner_email=owner_email)
    return [build_load_response(load) for load in loads]


@router.get("/{load_id}", response_model=LoadResponse)
async def get_load(
    load_id: str,
    current_user: CurrentUser,
    db: DbSession,
):
    load = await LoadRegistry(db).get_load(decode_or_404("load", load_id))
    return build_load_response(load)
