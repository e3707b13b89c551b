"""
Tests for proposal endpoints.
"""
import pytest
from httpx import AsyncClient

from sendix.core.hashids import encode_id


def pid(proposal) -> str:
    return encode_id("proposal", proposal.id)


@pytest.mark.asyncio
class TestCreateProposal:

    async def test_carrier_bids(self, client: AsyncClient, load, carrier_a_headers):
        response = await client.post(
            "/api/proposals",
            json={"load_id": encode_id("load", load.id), "vehicle": "Scania R450", "price": 10000},
            headers=carrier_a_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["ship_status"] == "pending"
        assert data["carrier"]["name"] == "Rutas del Sur"
        assert data["load"]["owner"]["name"] == "Acme Foods"
        assert data["commission"] is None

    async def test_requires_auth(self, client: AsyncClient, load):
        response = await client.post(
            "/api/proposals",
            json={"load_id": encode_id("load", load.id), "vehicle": "x", "price": 1},
        )
        assert response.status_code == 401

    async def test_negative_price_is_validation_error(self, client: AsyncClient, load, carrier_a_headers):
        response = await client.post(
            "/api/proposals",
            json={"load_id": encode_id("load", load.id), "vehicle": "x", "price": -5},
            headers=carrier_a_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation"

    async def test_unknown_load(self, client: AsyncClient, carrier_a_headers):
        response = await client.post(
            "/api/proposals",
            json={"load_id": "nope", "vehicle": "x", "price": 1},
            headers=carrier_a_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_shipper_cannot_bid(self, client: AsyncClient, load, shipper_headers):
        response = await client.post(
            "/api/proposals",
            json={"load_id": encode_id("load", load.id), "vehicle": "x", "price": 1},
            headers=shipper_headers,
        )

        assert response.status_code == 403


@pytest.mark.asyncio
class TestReadProposals:

    async def test_get_as_participant(self, client: AsyncClient, load, carrier_a, place_bid, shipper_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.get(f"/api/proposals/{pid(proposal)}", headers=shipper_headers)

        assert response.status_code == 200
        assert response.json()["id"] == pid(proposal)

    async def test_get_as_outsider(self, client: AsyncClient, load, carrier_a, place_bid, carrier_b_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.get(f"/api/proposals/{pid(proposal)}", headers=carrier_b_headers)

        assert response.status_code == 403

    async def test_list_is_scoped(
        self, client: AsyncClient, load, carrier_a, carrier_b, place_bid, carrier_a_headers, shipper_headers
    ):
        mine = await place_bid(carrier_a, load)
        await place_bid(carrier_b, load)

        as_carrier = await client.get("/api/proposals", headers=carrier_a_headers)
        as_owner = await client.get(
            "/api/proposals", params={"load_id": encode_id("load", load.id)}, headers=shipper_headers
        )

        assert [p["id"] for p in as_carrier.json()] == [pid(mine)]
        assert len(as_owner.json()) == 2

    async def test_stats_for_moderator(self, client: AsyncClient, load, carrier_a, place_bid, moderator_headers):
        await place_bid(carrier_a, load)

        response = await client.get("/api/proposals/stats", headers=moderator_headers)

        assert response.status_code == 200
        assert response.json()["pending"] == 1
        assert response.json()["total"] == 1

    async def test_stats_forbidden_for_carrier(self, client: AsyncClient, carrier_a_headers):
        response = await client.get("/api/proposals/stats", headers=carrier_a_headers)
        assert response.status_code == 403


@pytest.mark.asyncio
class TestModerationAndSelection:

    async def test_filter_then_select(
        self, client: AsyncClient, load, carrier_a, carrier_b, place_bid, moderator_headers, shipper_headers,
        broadcaster,
    ):
        p1 = await place_bid(carrier_a, load)
        p2 = await place_bid(carrier_b, load)

        filtered = await client.post(f"/api/proposals/{pid(p1)}/filter", headers=moderator_headers)
        assert filtered.json()["status"] == "filtered"

        selected = await client.post(f"/api/proposals/{pid(p1)}/select", headers=shipper_headers)
        assert selected.status_code == 200
        data = selected.json()
        assert data["status"] == "approved"
        assert data["commission"]["amount"] == 1000
        assert data["commission"]["status"] == "pending"

        loser = await client.get(f"/api/proposals/{pid(p2)}", headers=shipper_headers)
        assert loser.json()["status"] == "rejected"

        again = await client.post(f"/api/proposals/{pid(p2)}/select", headers=shipper_headers)
        assert again.status_code == 400
        assert again.json()["error"] == "invalid_transition"

    async def test_select_by_non_owner(self, client: AsyncClient, load, carrier_a, place_bid, carrier_a_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.post(f"/api/proposals/{pid(proposal)}/select", headers=carrier_a_headers)

        assert response.status_code == 403

    async def test_reject_requires_moderator(self, client: AsyncClient, load, carrier_a, place_bid, shipper_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.post(f"/api/proposals/{pid(proposal)}/reject", headers=shipper_headers)

        assert response.status_code == 403


@pytest.mark.asyncio
class TestPatchProposal:

    async def test_carrier_edits_price(self, client: AsyncClient, load, carrier_a, place_bid, carrier_a_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.patch(
            f"/api/proposals/{pid(proposal)}", json={"price": 9500, "vehicle": "Volvo FH"}, headers=carrier_a_headers
        )

        assert response.status_code == 200
        assert (response.json()["price"], response.json()["vehicle"]) == (9500, "Volvo FH")

    async def test_shipper_cannot_edit_price(self, client: AsyncClient, load, carrier_a, place_bid, shipper_headers):
        proposal = await place_bid(carrier_a, load)

        response = await client.patch(
            f"/api/proposals/{pid(proposal)}", json={"price": 1}, headers=shipper_headers
        )

        assert response.status_code == 403

    async def test_ship_status_walk(self, client: AsyncClient, approved_chat, carrier_a_headers, broadcaster):
        proposal, _ = approved_chat

        skipped = await client.patch(
            f"/api/proposals/{pid(proposal)}", json={"ship_status": "delivered"}, headers=carrier_a_headers
        )
        assert skipped.status_code == 400

        for step in ("loading", "in_transit", "delivered"):
            response = await client.patch(
                f"/api/proposals/{pid(proposal)}", json={"ship_status": step}, headers=carrier_a_headers
            )
            assert response.status_code == 200
            assert response.json()["ship_status"] == step

        assert [e["ship_status"] for e in broadcaster.of_type("shipment.updated")] == ["loading", "in_transit", "delivered"]

        history = await client.get(f"/api/proposals/{pid(proposal)}/messages", headers=carrier_a_headers)
        [notice] = history.json()["messages"]
        assert notice["is_system"] is True
        assert notice["sender"] is None

    async def test_status_approved_is_refused(
        self, client: AsyncClient, load, carrier_a, place_bid, moderator_headers
    ):
        proposal = await place_bid(carrier_a, load)

        response = await client.patch(
            f"/api/proposals/{pid(proposal)}", json={"status": "approved"}, headers=moderator_headers
        )

        assert response.status_code == 400
