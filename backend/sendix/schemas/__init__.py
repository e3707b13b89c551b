"""
Pydantic schemas for API request/response validation.
"""
from sendix.schemas.auth import TokenPayload
from sendix.schemas.chat import (
    MessageListResponse,
    MessageResponse,
    ReadReceiptResponse,
    SendMessageRequest,
    UnreadEntry,
)
from sendix.schemas.commission import (
    CommissionResponse,
    CommissionSummaryResponse,
    CommissionUpdate,
)
from sendix.schemas.load import LoadCreate, LoadResponse
from sendix.schemas.proposal import (
    ProposalCreate,
    ProposalResponse,
    ProposalStatsResponse,
    ProposalUpdate,
)
from sendix.schemas.user import UserSummary

__all__ = [
    "TokenPayload",
    "MessageListResponse",
    "MessageResponse",
    "ReadReceiptResponse",
    "SendMessageRequest",
    "UnreadEntry",
    "CommissionResponse",
    "CommissionSummaryResponse",
    "CommissionUpdate",
    "LoadCreate",
    "LoadResponse",
    "ProposalCreate",
    "ProposalResponse",
    "ProposalStatsResponse",
    "ProposalUpdate",
    "UserSummary",
]
