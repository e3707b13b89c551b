"""
Tests for chat endpoints.
"""
import pytest
from httpx import AsyncClient

from sendix.core.hashids import encode_id


def messages_url(proposal) -> str:
    return f"/api/proposals/{encode_id('proposal', proposal.id)}/messages"


@pytest.mark.asyncio
class TestDisabledChat:

    async def test_history_reports_disabled(self, client: AsyncClient, load, carrier_a, place_bid, carrier_a_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.get(messages_url(proposal), headers=carrier_a_headers)

        assert response.status_code == 200
        assert response.json() == {"disabled": True, "thread_id": None, "messages": []}

    async def test_post_is_conflict(self, client: AsyncClient, load, carrier_a, place_bid, carrier_a_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.post(messages_url(proposal), json={"text": "hi"}, headers=carrier_a_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "thread_disabled"

    async def test_outsider_is_forbidden(self, client: AsyncClient, load, carrier_a, place_bid, carrier_b_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.get(messages_url(proposal), headers=carrier_b_headers)

        assert response.status_code == 403


@pytest.mark.asyncio
class TestOpenChat:

    async def test_post_and_read_back(
        self, client: AsyncClient, approved_chat, carrier_a_headers, shipper_headers, broadcaster
    ):
        proposal, thread = approved_chat

        posted = await client.post(
            messages_url(proposal), json={"text": "Loaded, leaving now"}, headers=carrier_a_headers
        )
        assert posted.status_code == 201
        message = posted.json()
        assert message["sender"]["role"] == "transportista"
        assert message["thread_id"] == encode_id("thread", thread.id)

        history = await client.get(messages_url(proposal), headers=shipper_headers)
        data = history.json()
        assert data["disabled"] is False
        assert [m["id"] for m in data["messages"]] == [message["id"]]

        [event] = broadcaster.of_type("message.created")
        assert event["message"]["id"] == message["id"]

    async def test_reply_and_bad_reply(self, client: AsyncClient, approved_chat, carrier_a_headers, shipper_headers):
        proposal, _ = approved_chat
        question = await client.post(messages_url(proposal), json={"text": "ETA?"}, headers=shipper_headers)

        answer = await client.post(
            messages_url(proposal),
            json={"text": "9am", "reply_to_id": question.json()["id"]},
            headers=carrier_a_headers,
        )
        assert answer.json()["reply_to_id"] == question.json()["id"]

        bad = await client.post(
            messages_url(proposal), json={"text": "?", "reply_to_id": "garbage"}, headers=carrier_a_headers
        )
        assert bad.status_code == 400
        assert bad.json()["error"] == "invalid_reference"

    async def test_blank_text(self, client: AsyncClient, approved_chat, carrier_a_headers):
        proposal, _ = approved_chat

        response = await client.post(messages_url(proposal), json={"text": "   "}, headers=carrier_a_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "validation"

    async def test_unread_and_mark_read(
        self, client: AsyncClient, approved_chat, carrier_a_headers, shipper_headers, broadcaster
    ):
        proposal, _ = approved_chat
        public_id = encode_id("proposal", proposal.id)
        await client.post(messages_url(proposal), json={"text": "one"}, headers=carrier_a_headers)
        await client.post(messages_url(proposal), json={"text": "two"}, headers=carrier_a_headers)

        unread = await client.get("/api/chat/unread", headers=shipper_headers)
        assert unread.json()[public_id]["unread"] == 2
        assert unread.json()[public_id]["last_message_at"] is not None

        receipt = await client.post(f"/api/proposals/{public_id}/read", headers=shipper_headers)
        assert receipt.status_code == 200
        assert receipt.json()["unread"] == 0
        assert broadcaster.of_type("read.updated")

        after = await client.get("/api/chat/unread", headers=shipper_headers)
        assert after.json()[public_id]["unread"] == 0

    async def test_since_filter(self, client: AsyncClient, approved_chat, carrier_a_headers):
        proposal, _ = approved_chat
        first = await client.post(messages_url(proposal), json={"text": "a"}, headers=carrier_a_headers)
        await client.post(messages_url(proposal), json={"text": "b"}, headers=carrier_a_headers)

        response = await client.get(
            messages_url(proposal), params={"since": first.json()["created_at"]}, headers=carrier_a_headers
        )

        assert [m["text"] for m in response.json()["messages"]] == ["b"]
