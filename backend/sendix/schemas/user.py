"""
User-related Pydantic schemas.
"""
from pydantic import BaseModel

from sendix.core.hashids import encode_id
from sendix.models.user import User


class UserSummary(BaseModel):
    """Public identity of a participant."""
    id: str
    name: str
    email: str
    role: str


def build_user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=encode_id("user", user.id),
        name=user.name,
        email=user.email,
        role=user.role.value,
    )
