"""
API Integration Tests — GRN Workflow.

Drives a receipt from draft to approved over HTTP and checks the error
envelope for each failure kind.
"""

import pytest
from httpx import AsyncClient

GRNS = "/api/v1/grns"


async def _create(client: AsyncClient, po_ref: str, **extra) -> dict:
    response = await client.post(f"{GRNS}/", json={"purchase_order_ref": po_ref, **extra})
    assert response.status_code == 201, response.text
    return response.json()


async def _receive_all(client: AsyncClient, grn: dict, quantity: float, quality: str = "approved") -> dict:
    for item in grn["items"]:
        path = f"{GRNS}/{grn['receipt_id']}/items/{item['grn_item_id']}"
        response = await client.patch(path, json={"received_quantity": quantity})
        assert response.status_code == 200, response.text
        response = await client.post(f"{path}/quality", json={"quality_status": quality})
        assert response.status_code == 200, response.text
    return response.json()


async def _status(client: AsyncClient, grn: dict, status: str, **extra):
    return await client.post(f"{GRNS}/{grn['receipt_id']}/status", json={"status": status, **extra})


@pytest.mark.asyncio
class TestGRNCrud:

    async def test_list_empty(self, client: AsyncClient):
        response = await client.get(f"{GRNS}/")
        assert response.status_code == 200
        assert response.json() == []

    async def test_create_from_po_number(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number, received_location="Dock 1")
        assert grn["status"] == "draft"
        assert grn["receipt_number"].startswith("GRN-")
        assert grn["purchase_order_ref"] == str(seeded_db["shirt_po"].po_id)
        assert grn["received_location"] == "Dock 1"

        item = grn["items"][0]
        assert item["item_name"] == "Cotton Shirt"
        assert item["ordered_quantity"] == 100
        assert item["received_quantity"] == 0
        assert item["quality_status"] == "pending"
        assert item["color"] == "Blue"
        assert item["image_url"] == "https://cdn.example.com/shirt-blue.png"

    async def test_create_without_po_is_422(self, client: AsyncClient):
        response = await client.post(f"{GRNS}/", json={})
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["kind"] == "validation_error"
        assert error["field"] == "purchase_order_ref"

    async def test_create_unknown_po_is_422(self, client: AsyncClient, seeded_db):
        response = await client.post(f"{GRNS}/", json={"purchase_order_ref": "PO-NOPE"})
        assert response.status_code == 422
        assert "not found" in response.json()["error"]["message"]

    async def test_get_and_list(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _create(client, seeded_db["mixed_po"].po_number)

        response = await client.get(f"{GRNS}/{grn['receipt_id']}")
        assert response.status_code == 200
        assert response.json()["receipt_number"] == grn["receipt_number"]

        response = await client.get(f"{GRNS}/", params={"purchase_order_ref": grn["purchase_order_ref"]})
        assert [g["receipt_id"] for g in response.json()] == [grn["receipt_id"]]

        response = await client.get(f"{GRNS}/", params={"status": "draft"})
        assert len(response.json()) == 2

    async def test_get_missing_is_404(self, client: AsyncClient):
        response = await client.get(f"{GRNS}/00000000-0000-0000-0000-000000000099")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"

    async def test_patch_header(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        response = await client.patch(
            f"{GRNS}/{grn['receipt_id']}",
            json={"inspection_notes": "Cartons wet on arrival", "receipt_date": "2026-03-06"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["inspection_notes"] == "Cartons wet on arrival"
        assert data["receipt_date"] == "2026-03-06"

    async def test_over_allocated_split_is_422_with_line(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        item_id = grn["items"][0]["grn_item_id"]
        response = await client.patch(
            f"{GRNS}/{grn['receipt_id']}/items/{item_id}",
            json={"received_quantity": 10, "approved_quantity": 8, "rejected_quantity": 5},
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["kind"] == "validation_error"
        assert error["line_id"] == item_id

    async def test_totals_follow_line_edits(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _receive_all(client, grn, 100)

        response = await client.get(f"{GRNS}/{grn['receipt_id']}/totals")
        assert response.status_code == 200
        totals = response.json()
        assert totals["items_received"] == 1
        assert totals["items_approved"] == 1
        assert totals["quantity_approved"] == 100
        assert totals["amount_received"] == 1375.0
        assert totals["amount_approved"] == 1375.0


@pytest.mark.asyncio
class TestGRNLifecycle:

    async def test_draft_to_approved_updates_inventory(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _receive_all(client, grn, 100)

        response = await _status(client, grn, "received")
        assert response.status_code == 200
        assert response.json()["grn"]["received_by"] == "auth0|test-user-id"

        assert (await _status(client, grn, "under_inspection")).status_code == 200

        response = await _status(client, grn, "approved")
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["previous_status"] == "under_inspection"
        assert data["grn"]["status"] == "approved"
        assert data["grn"]["approved_by"] == "auth0|test-user-id"
        assert data["consolidation"]["bin_code"] == "RCV-01"
        assert len(data["consolidation"]["added"]) == 1

        response = await client.get("/api/v1/inventory/", params={"bin_code": "RCV-01"})
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["quantity"] == 100
        assert rows[0]["bin_code"] == "RCV-01"
        assert rows[0]["item_ref"] == str(seeded_db["catalog_item"].item_id)

        response = await client.get(f"{GRNS}/{grn['receipt_id']}/logs")
        logs = response.json()
        assert len(logs) == 1
        assert logs[0]["action"] == "added"
        assert logs[0]["reference_number"] == grn["receipt_number"]

    async def test_second_receipt_consolidates(self, client: AsyncClient, seeded_db):
        for quantity in (60, 40):
            grn = await _create(client, seeded_db["shirt_po"].po_number)
            await _receive_all(client, grn, quantity)
            await _status(client, grn, "received")
            response = await _status(client, grn, "approved")
            assert response.status_code == 200, response.text

        assert len(response.json()["consolidation"]["consolidated"]) == 1
        rows = (await client.get("/api/v1/inventory/")).json()
        assert [row["quantity"] for row in rows] == [100]

    async def test_explicit_bin_code(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _receive_all(client, grn, 10)
        await _status(client, grn, "received")
        response = await _status(client, grn, "approved", bin_code="STO-01")
        assert response.status_code == 200
        assert response.json()["consolidation"]["bin_code"] == "STO-01"

    async def test_unknown_bin_is_422(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _receive_all(client, grn, 10)
        await _status(client, grn, "received")
        response = await _status(client, grn, "approved", bin_code="NOPE")
        assert response.status_code == 422
        assert response.json()["error"]["field"] == "bin_code"

    async def test_invalid_transition_is_409(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        response = await _status(client, grn, "approved")
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["kind"] == "invalid_transition"
        assert (error["current"], error["requested"]) == ("draft", "approved")

    async def test_approval_without_approved_lines_is_422(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _status(client, grn, "received")
        response = await _status(client, grn, "approved")
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "precondition_not_met"

    async def test_terminal_receipt_is_locked(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _receive_all(client, grn, 5, quality="damaged")
        await _status(client, grn, "received")
        response = await _status(client, grn, "rejected", rejection_reason="Crushed cartons")
        assert response.status_code == 200
        assert response.json()["grn"]["rejection_reason"] == "Crushed cartons"

        response = await client.patch(f"{GRNS}/{grn['receipt_id']}", json={"inspection_notes": "late edit"})
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "receipt_locked"

        rows = (await client.get("/api/v1/inventory/")).json()
        assert rows == []

    async def test_consolidate_retry_skips_logged_lines(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        await _receive_all(client, grn, 100)
        await _status(client, grn, "received")
        await _status(client, grn, "approved")

        response = await client.post(f"{GRNS}/{grn['receipt_id']}/consolidate", json={})
        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] == [grn["items"][0]["grn_item_id"]]
        assert data["added"] == [] and data["consolidated"] == []

    async def test_consolidate_draft_is_422(self, client: AsyncClient, seeded_db):
        grn = await _create(client, seeded_db["shirt_po"].po_number)
        response = await client.post(f"{GRNS}/{grn['receipt_id']}/consolidate")
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "precondition_not_met"
