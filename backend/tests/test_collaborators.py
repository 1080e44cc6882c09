"""
Unit Tests — Purchasing and catalog collaborator clients.

Remote services are replaced with httpx.MockTransport handlers.
"""

from types import SimpleNamespace

import httpx
import pytest

from integrations.catalog import CatalogEntry, CatalogSource, HttpCatalogSource, enrich_line, parse_catalog_entry
from integrations.purchasing import HttpPurchasingSource, parse_purchase_order
from supply_chain.errors import CollaboratorError

PO_PAYLOAD = {
    "po_id": "po-77",
    "po_number": "PO-2026-0077",
    "status": "ordered",
    "supplier_id": "sup-1",
    "supplier_name": "Acme Textiles",
    "items": [
        {
            "po_item_id": "poi-1",
            "item_kind": "fabric",
            "item_ref": "cat-9",
            "item_code": "LIN-NAT",
            "item_name": "Linen",
            "quantity": "25.5",
            "unit_of_measure": "m",
            "unit_price": 4,
            "tax_rate": None,
            "attributes": {"color": "Natural"},
        },
        {"id": "poi-2", "item_name": "Labels", "quantity": 200},
    ],
}


def _transport(routes: dict[str, httpx.Response], seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return routes.get(request.url.path, httpx.Response(404))

    return httpx.MockTransport(handler)


class TestPurchasingPayload:
    def test_parse_maps_lines_and_defaults(self):
        po = parse_purchase_order(PO_PAYLOAD)
        assert (po.po_ref, po.po_number, po.supplier_ref) == ("po-77", "PO-2026-0077", "sup-1")

        linen, labels = po.lines
        assert linen.ordered_quantity == 25.5
        assert linen.item_ref == "cat-9"
        assert linen.tax_rate == 0.0
        assert linen.attributes == {"color": "Natural"}
        assert labels.po_item_ref == "poi-2"
        assert labels.line_number == 2
        assert labels.item_kind == "item"
        assert labels.unit_of_measure == "pcs"

    def test_parse_rejects_missing_fields(self):
        with pytest.raises(CollaboratorError) as exc_info:
            parse_purchase_order({"po_id": "x", "items": []})
        assert exc_info.value.collaborator == "purchasing"


@pytest.mark.asyncio
class TestHttpPurchasingSource:

    async def test_get_purchase_order(self):
        seen = []
        source = HttpPurchasingSource(
            "https://purchasing.example.com/api/",
            api_token="secret",
            transport=_transport({"/api/purchase-orders/PO-2026-0077": httpx.Response(200, json=PO_PAYLOAD)}, seen),
        )
        po = await source.get_purchase_order("PO-2026-0077")
        assert po.po_number == "PO-2026-0077"
        assert len(po.lines) == 2
        assert seen[0].headers["Authorization"] == "Bearer secret"

    async def test_missing_order_is_none(self):
        source = HttpPurchasingSource("https://purchasing.example.com", transport=_transport({}))
        assert await source.get_purchase_order("PO-NOPE") is None

    async def test_server_error_is_collaborator_failure(self):
        source = HttpPurchasingSource(
            "https://purchasing.example.com",
            transport=_transport({"/purchase-orders/PO-1": httpx.Response(500)}),
        )
        with pytest.raises(CollaboratorError) as exc_info:
            await source.get_purchase_order("PO-1")
        assert exc_info.value.field == "purchase_order_ref"
        assert exc_info.value.to_dict()["kind"] == "collaborator_failure"

    async def test_transport_errors_are_retried_then_raised(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        source = HttpPurchasingSource("https://purchasing.example.com", transport=httpx.MockTransport(handler))
        with pytest.raises(CollaboratorError):
            await source.get_purchase_order("PO-1")
        assert len(attempts) == 3

    async def test_list_receivable_orders(self):
        seen = []
        rows = [
            {"po_id": "po-1", "po_number": "PO-1", "status": "ordered", "expected_delivery": "2026-03-10", "line_count": 4},
            {"id": "po-2", "po_number": "PO-2", "items": [{}, {}]},
        ]
        source = HttpPurchasingSource(
            "https://purchasing.example.com",
            transport=_transport({"/purchase-orders": httpx.Response(200, json={"purchase_orders": rows})}, seen),
        )
        orders = await source.list_receivable_orders()
        assert [(o.po_ref, o.line_count) for o in orders] == [("po-1", 4), ("po-2", 2)]
        assert orders[0].expected_delivery.isoformat() == "2026-03-10"
        assert orders[1].status == "approved"
        assert seen[0].url.params["status"] == "approved,ordered,partially_received"

    async def test_malformed_list_is_collaborator_failure(self):
        source = HttpPurchasingSource(
            "https://purchasing.example.com",
            transport=_transport({"/purchase-orders": httpx.Response(200, json=[{"status": "ordered"}])}),
        )
        with pytest.raises(CollaboratorError):
            await source.list_receivable_orders()


class StubCatalog(CatalogSource):
    def __init__(self, by_ref=None, by_name=None, error=None):
        self.by_ref = by_ref or {}
        self.by_name = by_name or []
        self.error = error

    async def get_item(self, item_ref):
        if self.error:
            raise self.error
        return self.by_ref.get(item_ref)

    async def search_by_name(self, name):
        if self.error:
            raise self.error
        return self.by_name


def _line(item_ref=None, item_name="Linen", item_code=None):
    return SimpleNamespace(item_ref=item_ref, item_name=item_name, item_code=item_code, image_url=None, catalog_name=None)


LINEN = CatalogEntry(
    item_ref="cat-9",
    item_kind="fabric",
    item_code="LIN-NAT",
    name="Linen",
    color="Natural",
    image_url="https://cdn.example.com/linen.png",
    unit_of_measure="m",
)


@pytest.mark.asyncio
class TestEnrichment:

    async def test_enrich_by_reference(self):
        line = _line(item_ref="cat-9")
        assert await enrich_line(line, StubCatalog(by_ref={"cat-9": LINEN})) is True
        assert line.image_url == "https://cdn.example.com/linen.png"
        assert line.catalog_name == "Linen"
        assert line.item_code == "LIN-NAT"

    async def test_enrich_by_exact_name_only(self):
        near_miss = CatalogEntry(item_ref="cat-1", item_kind="fabric", item_code="LIN-2", name="Linen Blend")
        line = _line(item_name=" linen ")
        assert await enrich_line(line, StubCatalog(by_name=[near_miss, LINEN])) is True
        assert line.catalog_name == "Linen"

        line = _line(item_name="Linen Twill")
        assert await enrich_line(line, StubCatalog(by_name=[near_miss, LINEN])) is False
        assert line.image_url is None

    async def test_existing_item_code_is_kept(self):
        line = _line(item_ref="cat-9", item_code="MY-CODE")
        await enrich_line(line, StubCatalog(by_ref={"cat-9": LINEN}))
        assert line.item_code == "MY-CODE"

    async def test_catalog_outage_degrades_gracefully(self):
        line = _line(item_ref="cat-9")
        catalog = StubCatalog(error=CollaboratorError("catalog", "Catalog service unavailable"))
        assert await enrich_line(line, catalog) is False
        assert line.image_url is None

    async def test_no_catalog_configured(self):
        assert await enrich_line(_line(), None) is False

    async def test_http_catalog_round_trip(self):
        payload = {"item_id": "cat-9", "item_kind": "fabric", "item_code": "LIN-NAT", "name": "Linen"}
        catalog = HttpCatalogSource(
            "https://catalog.example.com",
            transport=_transport(
                {
                    "/items/cat-9": httpx.Response(200, json=payload),
                    "/items": httpx.Response(200, json={"items": [payload]}),
                }
            ),
        )
        assert (await catalog.get_item("cat-9")).item_code == "LIN-NAT"
        assert await catalog.get_item("cat-404") is None
        assert [e.name for e in await catalog.search_by_name("Linen")] == ["Linen"]

    async def test_http_catalog_error(self):
        catalog = HttpCatalogSource(
            "https://catalog.example.com", transport=_transport({"/items/cat-9": httpx.Response(503)})
        )
        with pytest.raises(CollaboratorError):
            await catalog.get_item("cat-9")


def test_parse_catalog_entry_requires_code_and_name():
    with pytest.raises(CollaboratorError):
        parse_catalog_entry({"id": "cat-1"})
