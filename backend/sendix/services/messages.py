"""
Message store for proposal threads.

Handles:
- Posting participant messages with reply and attachment validation
- Sender-less system messages (delivery notices)
- Ordered history with optional replay from a timestamp
"""
import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from sendix.core.config import settings
from sendix.core.errors import EmptyMessage, InvalidReference, ValidationFailed
from sendix.db.base import utcnow
from sendix.db.transaction import atomic
from sendix.models.thread import Thread, ThreadMessage
from sendix.models.user import User
from sendix.schemas.chat import serialize_message
from sendix.services.reads import ReadTracker
from sendix.services.realtime import Broadcaster, broadcast, message_created_event, room_for

logger = get_logger()


def validate_attachments(attachments: Optional[list[Any]]) -> list[Any]:
    """Enforce the configured count and encoded size limits."""
    attachments = list(attachments or [])
    if len(attachments) > settings.max_message_attachments:
        raise ValidationFailed(
            f"At most {settings.max_message_attachments} attachments per message"
        )
    if attachments:
        size = len(json.dumps(attachments, default=str).encode("utf-8"))
        if size > settings.max_attachment_payload_bytes:
            raise ValidationFailed(
                f"Attachments exceed {settings.max_attachment_payload_bytes} bytes"
            )
    return attachments


class MessageStore:
    """Service for thread messages."""

    def __init__(self, db: AsyncSession, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster

    async def _append(
        self,
        thread: Thread,
        sender: Optional[User],
        text: str,
        reply_to_id: Optional[int] = None,
        attachments: Optional[list[Any]] = None,
    ) -> ThreadMessage:
        message = ThreadMessage(
            thread_id=thread.id,
            sender_id=sender.id if sender else None,
            sender=sender,
            text=text,
            reply_to_id=reply_to_id,
            attachments=attachments or [],
            created_at=utcnow(),
        )
        self.db.add(message)
        await self.db.flush()
        return message

    async def announce(self, thread: Thread, message: ThreadMessage) -> None:
        """Broadcast message.created once the message is committed."""
        if self.broadcaster is None or thread.proposal_id is None:
            return
        await broadcast(
            self.broadcaster,
            room_for(thread.proposal_id),
            message_created_event(
                thread.proposal_id,
                serialize_message(message, thread.proposal_id),
            ),
        )

    async def post_message(
        self,
        thread: Thread,
        sender: User,
        text: str,
        reply_to_id: Optional[int] = None,
        attachments: Optional[list[Any]] = None,
    ) -> ThreadMessage:
        """
        Append a participant message.

        The sender's read marker moves to the message time, so their own
        message never shows up as unread for them.

        Raises:
            EmptyMessage: text is blank after trimming
            InvalidReference: reply target is not a message of this thread
            ValidationFailed: attachments exceed the configured limits
        """
        text = (text or "").strip()
        if not text:
            raise EmptyMessage("Message text cannot be empty")

        attachments = validate_attachments(attachments)

        if reply_to_id is not None:
            target = await self.db.get(ThreadMessage, reply_to_id)
            if target is None or target.thread_id != thread.id:
                raise InvalidReference("Reply target is not a message of this thread")

        async with atomic(self.db):
            message = await self._append(thread, sender, text, reply_to_id, attachments)
            await ReadTracker(self.db).touch(thread.id, sender.id, message.created_at)

        logger.info(
            "message_posted",
            message_id=message.id,
            thread_id=thread.id,
            proposal_id=thread.proposal_id,
            sender_id=sender.id,
        )

        await self.announce(thread, message)
        return message

    async def append_system_message(self, thread: Thread, text: str) -> ThreadMessage:
        """Append a system message inside the caller's transaction."""
        message = await self._append(thread, None, text)
        logger.info("system_message_posted", message_id=message.id, thread_id=thread.id)
        return message

    async def list_messages(
        self,
        thread: Thread,
        since: Optional[datetime] = None,
    ) -> list[ThreadMessage]:
        """Thread history in creation order; ties fall back to insertion order."""
        query = select(ThreadMessage).where(ThreadMessage.thread_id == thread.id)
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            else:
                since = since.astimezone(timezone.utc)
            query = query.where(ThreadMessage.created_at > since)
        query = query.order_by(ThreadMessage.created_at, ThreadMessage.id)

        result = await self.db.execute(query)
        return list(result.scalars().all())
