"""
Test Configuration — Fixtures for async DB, test client, and receiving data.

Each test gets its own in-memory SQLite database. Receiving services commit
and roll back on their own, so isolation comes from a fresh schema rather
than an outer transaction.
"""

from datetime import date, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db
from api.main import app
from core import config as config_module
from db.models import Bin, CatalogItem, PurchaseOrder, PurchaseOrderItem, Supplier
from db.session import Base
from integrations.catalog import DatabaseCatalogSource
from integrations.identity import Actor
from integrations.purchasing import DatabasePurchasingSource

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Tests that tweak env vars must not leak a cached Settings instance."""
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()


@pytest.fixture
async def test_engine():
    """Create a test database engine and build all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session = AsyncSession(bind=test_engine, expire_on_commit=False)
    yield session
    await session.close()


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {
        "sub": "auth0|test-user-id",
        "email": "receiver@example.com",
        "name": "Test Receiver",
    }


@pytest.fixture
def actor(mock_user):
    return Actor(user_id=mock_user["sub"], email=mock_user["email"], name=mock_user["name"])


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def purchasing(test_db):
    return DatabasePurchasingSource(test_db)


@pytest.fixture
def catalog(test_db):
    return DatabaseCatalogSource(test_db)


@pytest.fixture
def make_purchase_order(test_db):
    """Factory: persist a receivable PO built from line dicts."""
    counter = {"n": 0}

    async def _make(supplier: Supplier, lines: list[dict], status: str = "ordered") -> PurchaseOrder:
        counter["n"] += 1
        po = PurchaseOrder(
            po_number=f"PO-TEST-{counter['n']:04d}",
            supplier_id=supplier.supplier_id,
            order_date=date(2026, 3, 1),
            expected_delivery=date(2026, 3, 10),
            status=status,
        )
        for index, line in enumerate(lines, start=1):
            po.items.append(
                PurchaseOrderItem(
                    line_number=index,
                    item_kind=line.get("item_kind", "item"),
                    catalog_item_id=line.get("catalog_item_id"),
                    item_code=line.get("item_code"),
                    item_name=line["item_name"],
                    quantity=line["quantity"],
                    unit_of_measure=line.get("unit_of_measure", "pcs"),
                    unit_price=line.get("unit_price", 0.0),
                    tax_rate=line.get("tax_rate", 0.0),
                    attributes=line.get("attributes", {}),
                )
            )
        test_db.add(po)
        await test_db.commit()
        return po

    return _make


@pytest.fixture
async def seeded_db(test_db, make_purchase_order):
    """Supplier, catalog item, receiving bin and two receivable POs.

    PO 1: one catalog line, 100 pcs of a blue cotton shirt.
    PO 2: denim fabric (10 m, no catalog entry) and buttons (5 pcs).
    """
    supplier = Supplier(supplier_code="SUP-001", name="Acme Textiles", contact_email="orders@acme.example")
    shirt = CatalogItem(
        item_kind="product",
        item_code="SHIRT-BLU",
        name="Cotton Shirt",
        color="Blue",
        image_url="https://cdn.example.com/shirt-blue.png",
    )
    receiving_bin = Bin(bin_code="RCV-01", location_type="receiving_zone", description="Dock 1")
    storage_bin = Bin(bin_code="STO-01", location_type="storage_zone")
    test_db.add_all([supplier, shirt, receiving_bin, storage_bin])
    await test_db.commit()

    shirt_po = await make_purchase_order(
        supplier,
        [
            {
                "item_kind": "product",
                "catalog_item_id": shirt.item_id,
                "item_code": "SHIRT-BLU",
                "item_name": "Cotton Shirt",
                "quantity": 100,
                "unit_price": 12.5,
                "tax_rate": 10.0,
                "attributes": {"color": "Blue"},
            }
        ],
    )
    mixed_po = await make_purchase_order(
        supplier,
        [
            {
                "item_kind": "fabric",
                "item_code": "DEN-IND",
                "item_name": "Denim Fabric",
                "quantity": 10,
                "unit_of_measure": "m",
                "unit_price": 8.0,
                "attributes": {"color": "Indigo", "gsm": 320},
            },
            {
                "item_kind": "item",
                "item_name": "Buttons",
                "quantity": 5,
                "unit_price": 0.5,
            },
        ],
    )

    return {
        "supplier": supplier,
        "catalog_item": shirt,
        "bin": receiving_bin,
        "storage_bin": storage_bin,
        "shirt_po": shirt_po,
        "mixed_po": mixed_po,
    }


@pytest.fixture
def record_lines(test_db, actor):
    """Factory: set received quantity and quality status on lines, keyed by item name."""
    from supply_chain import receiving

    async def _record(receipt, dispositions: dict[str, tuple[float, str]]):
        for line in list(receipt.items):
            if line.item_name not in dispositions:
                continue
            quantity, quality = dispositions[line.item_name]
            receipt = await receiving.update_line_item(
                test_db, receipt.receipt_id, line.grn_item_id, {"received_quantity": quantity}, actor
            )
            receipt = await receiving.set_line_quality(
                test_db, receipt.receipt_id, line.grn_item_id, quality, actor
            )
        return receipt

    return _record


@pytest.fixture
def advance(test_db, actor):
    """Factory: walk a receipt through several statuses in order."""
    from supply_chain import receiving

    async def _advance(receipt, *statuses: str, **kwargs):
        outcome = None
        for status in statuses:
            outcome = await receiving.transition_receipt(test_db, receipt.receipt_id, status, actor, **kwargs)
        return outcome

    return _advance


@pytest.fixture
def new_receipt(test_db, purchasing, catalog, actor):
    """Factory: draft GRN for a PO, numbered as of 5 March 2026."""
    from supply_chain import receiving

    async def _new(po, **kwargs):
        kwargs.setdefault("now", datetime(2026, 3, 5, 9, 0))
        return await receiving.create_receipt(test_db, purchasing, actor, po.po_number, catalog=catalog, **kwargs)

    return _new
