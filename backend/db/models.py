"""
Goods Receiving Database Models

Tables:
  Receiving (1-2):
  1. goods_receipts        - GRN header, status workflow, persisted totals
  2. grn_items             - Expected-vs-received line items with quality disposition

  Warehouse Ledger (3-5):
  3. bins                  - Physical storage locations (receiving/storage/dispatch zones)
  4. warehouse_inventory   - One live row per (item identity, bin, stock status, unit)
  5. inventory_logs        - Append-only audit of ledger mutations (idempotency record)

  Collaborator Stand-ins (6-10):
  6. suppliers             - Supplier directory
  7. catalog_items         - Item catalog used for display enrichment
  8. purchase_orders       - POs a receipt can be recorded against
  9. purchase_order_items  - Expected PO lines
  10. document_sequences   - Store-side document number counters
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def UUID(as_uuid=True):
    return GUID()


from sqlalchemy.orm import relationship

from db.session import Base

ITEM_KINDS = ("fabric", "item", "product")
GRN_STATUSES = ("draft", "received", "under_inspection", "approved", "rejected", "partially_approved")
QUALITY_STATUSES = ("pending", "approved", "rejected", "damaged")
STOCK_STATUSES = ("received", "in_storage", "ready_to_dispatch", "dispatched", "quarantined")
BIN_LOCATION_TYPES = ("receiving_zone", "storage_zone", "dispatch_zone")


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ─── 1. Goods Receipts ──────────────────────────────────────────────────────


class GoodsReceipt(Base):
    """GRN header: one per physical delivery against one purchase order."""

    __tablename__ = "goods_receipts"

    receipt_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    receipt_number = Column(String(50), nullable=False, unique=True)
    purchase_order_ref = Column(String(64), nullable=False)
    purchase_order_number = Column(String(64))
    supplier_ref = Column(String(64))
    receipt_date = Column(Date, nullable=False)
    received_date = Column(DateTime)
    received_location = Column(String(255))
    status = Column(String(30), nullable=False, default="draft")

    # Totals — recomputed on every line mutation (supply_chain/totals.py)
    total_items_received = Column(Integer, nullable=False, default=0)
    total_items_approved = Column(Integer, nullable=False, default=0)
    total_items_rejected = Column(Integer, nullable=False, default=0)
    total_amount_received = Column(Float, nullable=False, default=0.0)
    total_amount_approved = Column(Float, nullable=False, default=0.0)
    total_quantity_received = Column(Float, nullable=False, default=0.0)
    total_quantity_approved = Column(Float, nullable=False, default=0.0)
    total_quantity_rejected = Column(Float, nullable=False, default=0.0)

    # Identity stamps — set by status transitions, never by clients
    created_by = Column(String(255))
    received_by = Column(String(255))
    quality_inspector = Column(String(255))
    inspection_date = Column(DateTime)
    approved_by = Column(String(255))
    approved_at = Column(DateTime)

    inspection_notes = Column(Text)
    rejection_reason = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_goods_receipts_po", "purchase_order_ref"),
        Index("ix_goods_receipts_status", "status"),
        CheckConstraint(_in_clause("status", GRN_STATUSES), name="ck_grn_status"),
    )

    items = relationship(
        "GRNItem",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="GRNItem.line_number",
    )


# ─── 2. GRN Items ───────────────────────────────────────────────────────────


class GRNItem(Base):
    """One expected-item-vs-received-quantity pairing within a receipt.

    `attributes` is the explicit optional-attribute map (color, gsm,
    material_grade, ...) used for display and for ledger identity matching.
    """

    __tablename__ = "grn_items"

    grn_item_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    grn_id = Column(UUID(as_uuid=True), ForeignKey("goods_receipts.receipt_id"), nullable=False)
    line_number = Column(Integer, nullable=False, default=1)
    po_item_ref = Column(String(64))
    item_kind = Column(String(20), nullable=False, default="item")
    item_ref = Column(String(64))  # Null when the line is not a catalog item
    item_code = Column(String(100))
    item_name = Column(String(255), nullable=False)
    unit_of_measure = Column(String(20), nullable=False, default="pcs")

    ordered_quantity = Column(Float, nullable=False, default=0.0)
    received_quantity = Column(Float, nullable=False, default=0.0)
    approved_quantity = Column(Float, nullable=False, default=0.0)
    rejected_quantity = Column(Float, nullable=False, default=0.0)

    unit_price = Column(Float, nullable=False, default=0.0)
    tax_rate = Column(Float, nullable=False, default=0.0)  # Percent
    subtotal = Column(Float, nullable=False, default=0.0)
    tax_amount = Column(Float, nullable=False, default=0.0)
    line_total = Column(Float, nullable=False, default=0.0)

    quality_status = Column(String(20), nullable=False, default="pending")
    batch_number = Column(String(100))
    expiry_date = Column(Date)
    condition_notes = Column(Text)
    inspection_notes = Column(Text)
    attributes = Column(JSON, nullable=False, default=dict)

    # Display metadata backfilled from the catalog
    image_url = Column(String(1024))
    catalog_name = Column(String(255))

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_grn_items_grn", "grn_id"),
        CheckConstraint(_in_clause("item_kind", ITEM_KINDS), name="ck_grn_item_kind"),
        CheckConstraint(_in_clause("quality_status", QUALITY_STATUSES), name="ck_grn_item_quality_status"),
        CheckConstraint(
            "received_quantity >= 0 AND approved_quantity >= 0 AND rejected_quantity >= 0",
            name="ck_grn_item_quantities_non_negative",
        ),
        CheckConstraint(
            "approved_quantity + rejected_quantity <= received_quantity",
            name="ck_grn_item_split_within_received",
        ),
    )

    receipt = relationship("GoodsReceipt", back_populates="items")

    @property
    def color(self) -> str | None:
        value = (self.attributes or {}).get("color")
        return str(value) if value not in (None, "") else None


# ─── 3. Bins ────────────────────────────────────────────────────────────────


class Bin(Base):
    __tablename__ = "bins"

    bin_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bin_code = Column(String(50), nullable=False, unique=True)
    location_type = Column(String(30), nullable=False, default="storage_zone")
    description = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_bins_location_type", "location_type", "is_active"),
        CheckConstraint(_in_clause("location_type", BIN_LOCATION_TYPES), name="ck_bin_location_type"),
    )


# ─── 4. Warehouse Inventory (ledger) ────────────────────────────────────────


class WarehouseInventory(Base):
    """Single source of truth for on-hand quantity of one item identity in one bin.

    Quantity changes go through a conditional update on `version`
    (inventory/consolidation.py). `identity_key` is the exact identity tuple,
    unique so two concurrent first receipts cannot both insert a row.
    """

    __tablename__ = "warehouse_inventory"

    inventory_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_kind = Column(String(20), nullable=False)
    item_ref = Column(String(64))
    item_code = Column(String(100), nullable=False)
    item_name = Column(String(255), nullable=False)
    color = Column(String(100))
    bin_id = Column(UUID(as_uuid=True), ForeignKey("bins.bin_id"), nullable=False)
    stock_status = Column(String(30), nullable=False, default="received")
    unit = Column(String(20), nullable=False, default="pcs")
    quantity = Column(Float, nullable=False, default=0.0)
    version = Column(Integer, nullable=False, default=1)
    identity_key = Column(String(700), nullable=False, unique=True)

    # Originating receipt line (first receipt that created this row)
    grn_id = Column(UUID(as_uuid=True), ForeignKey("goods_receipts.receipt_id"))
    grn_item_id = Column(UUID(as_uuid=True), ForeignKey("grn_items.grn_item_id"))
    received_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_warehouse_inventory_ref", "item_ref", "bin_id", "stock_status", "unit"),
        Index("ix_warehouse_inventory_code_name", "item_code", "item_name", "bin_id", "stock_status", "unit"),
        CheckConstraint("quantity >= 0", name="ck_warehouse_inventory_qty_positive"),
        CheckConstraint(_in_clause("item_kind", ITEM_KINDS), name="ck_warehouse_inventory_kind"),
        CheckConstraint(_in_clause("stock_status", STOCK_STATUSES), name="ck_warehouse_inventory_status"),
    )

    bin = relationship("Bin")


# ─── 5. Inventory Logs ──────────────────────────────────────────────────────


class InventoryLog(Base):
    """Append-only audit record of one ledger mutation.

    Exactly one row per (receipt line, ledger row): the consolidation engine
    checks for it before touching the ledger, which makes retries safe.
    """

    __tablename__ = "inventory_logs"

    log_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    warehouse_inventory_id = Column(
        UUID(as_uuid=True), ForeignKey("warehouse_inventory.inventory_id"), nullable=False
    )
    grn_id = Column(UUID(as_uuid=True), ForeignKey("goods_receipts.receipt_id"))
    grn_item_id = Column(UUID(as_uuid=True), ForeignKey("grn_items.grn_item_id"))
    item_kind = Column(String(20), nullable=False)
    item_ref = Column(String(64))
    item_code = Column(String(100), nullable=False)
    item_name = Column(String(255), nullable=False)
    color = Column(String(100))
    quantity = Column(Float, nullable=False)  # Delta applied to the ledger row
    old_quantity = Column(Float, nullable=False)
    new_quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False)
    bin_id = Column(UUID(as_uuid=True), ForeignKey("bins.bin_id"))
    stock_status = Column(String(30), nullable=False)
    action = Column(String(20), nullable=False)
    reference_type = Column(String(20), nullable=False, default="GRN")
    reference_number = Column(String(50))
    notes = Column(Text)
    created_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("grn_item_id", "warehouse_inventory_id", name="uq_inventory_log_line_row"),
        Index("ix_inventory_logs_grn", "grn_id"),
        Index("ix_inventory_logs_inventory", "warehouse_inventory_id", "created_at"),
        CheckConstraint("action IN ('added', 'consolidated')", name="ck_inventory_log_action"),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Collaborator stand-ins (6-10)
# ═══════════════════════════════════════════════════════════════════════════


# ─── 6. Suppliers ───────────────────────────────────────────────────────────


class Supplier(Base):
    __tablename__ = "suppliers"

    supplier_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    supplier_code = Column(String(50), unique=True)
    name = Column(String(255), nullable=False)
    contact_email = Column(String(255))
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# ─── 7. Catalog Items ───────────────────────────────────────────────────────


class CatalogItem(Base):
    __tablename__ = "catalog_items"

    item_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_kind = Column(String(20), nullable=False, default="item")
    item_code = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    color = Column(String(100))
    image_url = Column(String(1024))
    unit_of_measure = Column(String(20), nullable=False, default="pcs")
    current_stock = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_catalog_items_name", "name"),
        CheckConstraint(_in_clause("item_kind", ITEM_KINDS), name="ck_catalog_item_kind"),
    )


# ─── 8. Purchase Orders ─────────────────────────────────────────────────────


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    po_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    po_number = Column(String(50), nullable=False, unique=True)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("suppliers.supplier_id"), nullable=False)
    order_date = Column(Date, nullable=False)
    expected_delivery = Column(Date)
    status = Column(String(30), nullable=False, default="draft")
    total_amount = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_po_status", "status"),
        CheckConstraint(
            "status IN ('draft', 'approved', 'ordered', 'partially_received', 'received', 'cancelled')",
            name="ck_po_status",
        ),
    )

    items = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.line_number",
    )
    supplier = relationship("Supplier")


# ─── 9. Purchase Order Items ────────────────────────────────────────────────


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    po_item_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    po_id = Column(UUID(as_uuid=True), ForeignKey("purchase_orders.po_id"), nullable=False)
    line_number = Column(Integer, nullable=False, default=1)
    item_kind = Column(String(20), nullable=False, default="item")
    catalog_item_id = Column(UUID(as_uuid=True), ForeignKey("catalog_items.item_id"), nullable=True)
    item_code = Column(String(100))
    item_name = Column(String(255), nullable=False)
    quantity = Column(Float, nullable=False)
    unit_of_measure = Column(String(20), nullable=False, default="pcs")
    unit_price = Column(Float, nullable=False, default=0.0)
    tax_rate = Column(Float, nullable=False, default=0.0)
    attributes = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_po_items_po", "po_id"),
        CheckConstraint("quantity > 0", name="ck_po_item_quantity_positive"),
        CheckConstraint(_in_clause("item_kind", ITEM_KINDS), name="ck_po_item_kind"),
    )

    purchase_order = relationship("PurchaseOrder", back_populates="items")


# ─── 10. Document Sequences ─────────────────────────────────────────────────


class DocumentSequence(Base):
    """Per-prefix, per-year counter for store-assigned document numbers."""

    __tablename__ = "document_sequences"

    sequence_key = Column(String(50), primary_key=True)  # e.g. "GRN-2026"
    current_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
