"""
Chat Pydantic schemas.

Schemas for proposal threads, messages, read receipts and unread counts.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from sendix.core.hashids import encode_id, encode_optional
from sendix.models.thread import ThreadMessage


class MessageSender(BaseModel):
    """Resolved sender of a message."""
    id: str
    name: str
    role: str


class MessageResponse(BaseModel):
    """Schema for a thread message."""
    id: str
    thread_id: str
    proposal_id: Optional[str] = None
    sender: Optional[MessageSender] = None
    text: str
    reply_to_id: Optional[str] = None
    attachments: list[Any] = []
    created_at: datetime
    is_system: bool = False


class MessageListResponse(BaseModel):
    """History of a proposal's thread, or the disabled marker."""
    disabled: bool
    thread_id: Optional[str] = None
    messages: list[MessageResponse] = []


class SendMessageRequest(BaseModel):
    """Schema for posting a message."""
    text: str = ""
    reply_to_id: Optional[str] = None
    attachments: list[Any] = Field(default_factory=list)


class ReadReceiptResponse(BaseModel):
    proposal_id: str
    user_id: str
    last_read_at: datetime
    unread: int = 0


class UnreadEntry(BaseModel):
    unread: int
    last_message_at: Optional[datetime] = None


def build_message_response(
    message: ThreadMessage,
    proposal_id: Optional[int] = None,
) -> MessageResponse:
    """Build the API shape of a message; the sender must already be loaded."""
    sender = None
    if message.sender is not None:
        sender = MessageSender(
            id=encode_id("user", message.sender.id),
            name=message.sender.name,
            role=message.sender.role.value,
        )

    return MessageResponse(
        id=encode_id("message", message.id),
        thread_id=encode_id("thread", message.thread_id),
        proposal_id=encode_optional("proposal", proposal_id),
        sender=sender,
        text=message.text,
        reply_to_id=encode_optional("message", message.reply_to_id),
        attachments=list(message.attachments or []),
        created_at=message.created_at,
        is_system=message.is_system,
    )


def serialize_message(message: ThreadMessage, proposal_id: Optional[int] = None) -> dict[str, Any]:
    """JSON-ready message payload for realtime events."""
    return build_message_response(message, proposal_id).model_dump(mode="json")
