"""
Tests for read markers and unread counts.
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from sendix.core.hashids import encode_id
from sendix.db.base import utcnow
from sendix.db.transaction import atomic
from sendix.models import Load, Thread
from sendix.services.messages import MessageStore
from sendix.services.reads import ReadTracker


@pytest.mark.asyncio
class TestUnreadCount:

    async def test_counts_messages_from_others(self, db_session, approved_chat, shipper, carrier_a):
        _, thread = approved_chat
        store = MessageStore(db_session)
        await store.post_message(thread, carrier_a, "loaded")
        await store.post_message(thread, carrier_a, "departed")

        tracker = ReadTracker(db_session)

        assert await tracker.unread_count(thread, shipper) == 2
        assert await tracker.unread_count(thread, carrier_a) == 0

    async def test_mark_read_clears_and_new_messages_count_again(
        self, db_session, approved_chat, shipper, carrier_a
    ):
        _, thread = approved_chat
        store = MessageStore(db_session)
        tracker = ReadTracker(db_session)
        await store.post_message(thread, carrier_a, "loaded")

        await tracker.mark_read(thread, shipper)
        assert await tracker.unread_count(thread, shipper) == 0

        await store.post_message(thread, carrier_a, "departed")
        assert await tracker.unread_count(thread, shipper) == 1

    async def test_own_reply_marks_earlier_messages_read(
        self, db_session, approved_chat, shipper, carrier_a
    ):
        _, thread = approved_chat
        store = MessageStore(db_session)
        await store.post_message(thread, carrier_a, "question?")
        await store.post_message(thread, shipper, "answer")

        # Replying moves the shipper's marker past the question
        assert await ReadTracker(db_session).unread_count(thread, shipper) == 0

    async def test_system_messages_count_for_everyone(
        self, db_session, approved_chat, shipper, carrier_a
    ):
        _, thread = approved_chat
        async with atomic(db_session):
            await MessageStore(db_session).append_system_message(thread, "Delivery confirmed")

        tracker = ReadTracker(db_session)
        assert await tracker.unread_count(thread, shipper) == 1
        assert await tracker.unread_count(thread, carrier_a) == 1

    async def test_mark_read_is_repeatable(self, db_session, approved_chat, shipper):
        _, thread = approved_chat
        tracker = ReadTracker(db_session)

        first = await tracker.mark_read(thread, shipper)
        second = await tracker.mark_read(thread, shipper)

        assert first.id == second.id

    async def test_marker_never_moves_back(self, db_session, approved_chat, shipper, carrier_a):
        _, thread = approved_chat
        store = MessageStore(db_session)
        tracker = ReadTracker(db_session)
        await store.post_message(thread, carrier_a, "loaded")
        await tracker.mark_read(thread, shipper)

        async with atomic(db_session):
            await tracker.touch(thread.id, shipper.id, utcnow() - timedelta(hours=1))

        assert await tracker.unread_count(thread, shipper) == 0

        await store.post_message(thread, carrier_a, "departed")
        assert await tracker.unread_count(thread, shipper) == 1

    async def test_mark_read_broadcasts(self, db_session, approved_chat, shipper, broadcaster):
        proposal, thread = approved_chat

        await ReadTracker(db_session, broadcaster).mark_read(thread, shipper)

        [event] = broadcaster.of_type("read.updated")
        assert event["proposal_id"] == encode_id("proposal", proposal.id)
        assert event["user_id"] == encode_id("user", shipper.id)
        assert event["at"]


@pytest.mark.asyncio
class TestUnreadSummary:

    async def test_summary_per_approved_proposal(
        self, db_session, approved_chat, shipper, carrier_a
    ):
        proposal, thread = approved_chat
        await MessageStore(db_session).post_message(thread, carrier_a, "loaded")

        summary = await ReadTracker(db_session).unread_summary(shipper)

        assert list(summary) == [proposal.id]
        assert summary[proposal.id]["unread"] == 1
        assert summary[proposal.id]["last_message_at"] is not None

        carrier_view = await ReadTracker(db_session).unread_summary(carrier_a)
        assert carrier_view[proposal.id]["unread"] == 0

    async def test_summary_omits_proposals_without_chat(
        self, db_session, load, shipper, carrier_b, place_bid
    ):
        await place_bid(carrier_b, load)

        assert await ReadTracker(db_session).unread_summary(shipper) == {}
        assert await ReadTracker(db_session).unread_summary(carrier_b) == {}

    async def test_summary_excludes_other_users_chats(
        self, db_session, approved_chat, other_shipper, carrier_b
    ):
        assert await ReadTracker(db_session).unread_summary(other_shipper) == {}
        assert await ReadTracker(db_session).unread_summary(carrier_b) == {}

    async def test_moderator_sees_every_chat(self, db_session, approved_chat, moderator):
        proposal, _ = approved_chat

        summary = await ReadTracker(db_session).unread_summary(moderator)

        assert summary == {proposal.id: {"unread": 0, "last_message_at": None}}

    async def test_summary_creates_missing_thread(
        self, db_session, approved_chat, shipper
    ):
        proposal, thread = approved_chat
        await db_session.delete(thread)
        await db_session.commit()

        summary = await ReadTracker(db_session).unread_summary(shipper)

        assert summary == {proposal.id: {"unread": 0, "last_message_at": None}}
        result = await db_session.execute(
            select(func.count(Thread.id)).where(Thread.proposal_id == proposal.id)
        )
        assert result.scalar_one() == 1

    async def test_summary_spans_several_loads(
        self, db_session, approved_chat, shipper, carrier_b, place_bid, award
    ):
        first, _ = approved_chat
        other_load = Load(owner_id=shipper.id, origin="Tucuman", destination="Jujuy", cargo_type="Grain")
        db_session.add(other_load)
        await db_session.commit()
        second = await award(shipper, await place_bid(carrier_b, other_load))

        summary = await ReadTracker(db_session).unread_summary(shipper)

        assert set(summary) == {first.id, second.id}
