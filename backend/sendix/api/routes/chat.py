"""
Proposal chat endpoints.

- GET /proposals/{proposal_id}/messages - History (disabled until approved)
- POST /proposals/{proposal_id}/messages - Post a message
- POST /proposals/{proposal_id}/read - Mark the thread read
- GET /chat/unread - Unread counts for every open chat of the caller
"""
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Query, status

from sendix.api.deps import BroadcasterDep, CurrentUser, DbSession, decode_or_404
from sendix.core.errors import InvalidReference
from sendix.core.hashids import decode_id, encode_id
from sendix.schemas.chat import (
    MessageListResponse,
    MessageResponse,
    ReadReceiptResponse,
    SendMessageRequest,
    UnreadEntry,
    build_message_response,
)
from sendix.services.messages import MessageStore
from sendix.services.proposals import ProposalService
from sendix.services.reads import ReadTracker
from sendix.services.threads import ThreadGate

router = APIRouter(tags=["Chat"])
logger = structlog.get_logger(__name__)


@router.get("/proposals/{proposal_id}/messages", response_model=MessageListResponse)
async def list_messages(
    proposal_id: str,
    current_user: CurrentUser,
    db: DbSession,
    since: Optional[datetime] = Query(None, description="Only messages after this time"),
):
    """
    Get the thread history of a proposal.

    Returns {disabled: true, messages: []} while the proposal is not
    approved; no thread is created in that case.
    """
    proposal, _ = await ProposalService(db).get_for_participant(
        current_user, decode_or_404("proposal", proposal_id)
    )
    access = await ThreadGate(db).get_or_create_thread(proposal)
    if access.disabled:
        return MessageListResponse(disabled=True, messages=[])

    messages = await MessageStore(db).list_messages(access.thread, since=since)
    return MessageListResponse(
        disabled=False,
        thread_id=encode_id("thread", access.thread.id),
        messages=[build_message_response(m, proposal.id) for m in messages],
    )


@router.post(
    "/proposals/{proposal_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    proposal_id: str,
    request: SendMessageRequest,
    current_user: CurrentUser,
    db: DbSession,
    broadcaster: BroadcasterDep,
):
    """Post a message; 409 while the chat is disabled."""
    proposal, _ = await ProposalService(db).get_for_participant(
        current_user, decode_or_404("proposal", proposal_id)
    )
    thread = await ThreadGate(db).require_thread(proposal)

    reply_to_id = None
    if request.reply_to_id is not None:
        reply_to_id = decode_id("message", request.reply_to_id)
        if reply_to_id is None:
            raise InvalidReference("Reply target is not a message of this thread")

    message = await MessageStore(db, broadcaster).post_message(
        thread,
        current_user,
        request.text,
        reply_to_id=reply_to_id,
        attachments=request.attachments,
    )
    return build_message_response(message, proposal.id)


@router.post("/proposals/{proposal_id}/read", response_model=ReadReceiptResponse)
async def mark_read(
    proposal_id: str,
    current_user: CurrentUser,
    db: DbSession,
    broadcaster: BroadcasterDep,
):
    """Mark the proposal's thread read for the caller and broadcast the receipt."""
    proposal, _ = await ProposalService(db).get_for_participant(
        current_user, decode_or_404("proposal", proposal_id)
    )
    thread = await ThreadGate(db).require_thread(proposal)

    tracker = ReadTracker(db, broadcaster)
    marker = await tracker.mark_read(thread, current_user)
    return ReadReceiptResponse(
        proposal_id=encode_id("proposal", proposal.id),
        user_id=encode_id("user", current_user.id),
        last_read_at=marker.last_read_at,
        unread=await tracker.unread_count(thread, current_user),
    )


@router.get("/chat/unread", response_model=dict[str, UnreadEntry])
async def unread_summary(current_user: CurrentUser, db: DbSession):
    """Map of proposal id to unread count and last message time."""
    summary = await ReadTracker(db).unread_summary(current_user)
    logger.debug("unread_summary", user_id=current_user.id, chats=len(summary))
    return {
        encode_id("proposal", proposal_id): UnreadEntry(**entry)
        for proposal_id, entry in summary.items()
    }
