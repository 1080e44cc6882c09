"""
Receiving schema - receipts, warehouse ledger and collaborator stand-ins

Revision ID: 001
Revises: None
Create Date: 2026-03-01
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from db.models import (
    BIN_LOCATION_TYPES,
    GRN_STATUSES,
    GUID,
    ITEM_KINDS,
    QUALITY_STATUSES,
    STOCK_STATUSES,
)

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _in(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def upgrade() -> None:
    # 1. Suppliers
    op.create_table(
        "suppliers",
        sa.Column("supplier_id", GUID(), primary_key=True),
        sa.Column("supplier_code", sa.String(50), unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 2. Catalog items
    op.create_table(
        "catalog_items",
        sa.Column("item_id", GUID(), primary_key=True),
        sa.Column("item_kind", sa.String(20), nullable=False, server_default="item"),
        sa.Column("item_code", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("color", sa.String(100)),
        sa.Column("image_url", sa.String(1024)),
        sa.Column("unit_of_measure", sa.String(20), nullable=False, server_default="pcs"),
        sa.Column("current_stock", sa.Float, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(_in("item_kind", ITEM_KINDS), name="ck_catalog_item_kind"),
    )
    op.create_index("ix_catalog_items_name", "catalog_items", ["name"])

    # 3. Purchase orders
    op.create_table(
        "purchase_orders",
        sa.Column("po_id", GUID(), primary_key=True),
        sa.Column("po_number", sa.String(50), nullable=False, unique=True),
        sa.Column("supplier_id", GUID(), sa.ForeignKey("suppliers.supplier_id"), nullable=False),
        sa.Column("order_date", sa.Date, nullable=False),
        sa.Column("expected_delivery", sa.Date),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("total_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('draft', 'approved', 'ordered', 'partially_received', 'received', 'cancelled')",
            name="ck_po_status",
        ),
    )
    op.create_index("ix_po_status", "purchase_orders", ["status"])

    # 4. Purchase order items
    op.create_table(
        "purchase_order_items",
        sa.Column("po_item_id", GUID(), primary_key=True),
        sa.Column("po_id", GUID(), sa.ForeignKey("purchase_orders.po_id"), nullable=False),
        sa.Column("line_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("item_kind", sa.String(20), nullable=False, server_default="item"),
        sa.Column("catalog_item_id", GUID(), sa.ForeignKey("catalog_items.item_id")),
        sa.Column("item_code", sa.String(100)),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Float, nullable=False),
        sa.Column("unit_of_measure", sa.String(20), nullable=False, server_default="pcs"),
        sa.Column("unit_price", sa.Float, nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("attributes", sa.JSON, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_po_item_quantity_positive"),
        sa.CheckConstraint(_in("item_kind", ITEM_KINDS), name="ck_po_item_kind"),
    )
    op.create_index("ix_po_items_po", "purchase_order_items", ["po_id"])

    # 5. Goods receipts
    op.create_table(
        "goods_receipts",
        sa.Column("receipt_id", GUID(), primary_key=True),
        sa.Column("receipt_number", sa.String(50), nullable=False, unique=True),
        sa.Column("purchase_order_ref", sa.String(64), nullable=False),
        sa.Column("purchase_order_number", sa.String(64)),
        sa.Column("supplier_ref", sa.String(64)),
        sa.Column("receipt_date", sa.Date, nullable=False),
        sa.Column("received_date", sa.DateTime),
        sa.Column("received_location", sa.String(255)),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("total_items_received", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_items_approved", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_items_rejected", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_amount_received", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_amount_approved", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_quantity_received", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_quantity_approved", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_quantity_rejected", sa.Float, nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(255)),
        sa.Column("received_by", sa.String(255)),
        sa.Column("quality_inspector", sa.String(255)),
        sa.Column("inspection_date", sa.DateTime),
        sa.Column("approved_by", sa.String(255)),
        sa.Column("approved_at", sa.DateTime),
        sa.Column("inspection_notes", sa.Text),
        sa.Column("rejection_reason", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(_in("status", GRN_STATUSES), name="ck_grn_status"),
    )
    op.create_index("ix_goods_receipts_po", "goods_receipts", ["purchase_order_ref"])
    op.create_index("ix_goods_receipts_status", "goods_receipts", ["status"])

    # 6. GRN items
    op.create_table(
        "grn_items",
        sa.Column("grn_item_id", GUID(), primary_key=True),
        sa.Column("grn_id", GUID(), sa.ForeignKey("goods_receipts.receipt_id"), nullable=False),
        sa.Column("line_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("po_item_ref", sa.String(64)),
        sa.Column("item_kind", sa.String(20), nullable=False, server_default="item"),
        sa.Column("item_ref", sa.String(64)),
        sa.Column("item_code", sa.String(100)),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("unit_of_measure", sa.String(20), nullable=False, server_default="pcs"),
        sa.Column("ordered_quantity", sa.Float, nullable=False, server_default="0"),
        sa.Column("received_quantity", sa.Float, nullable=False, server_default="0"),
        sa.Column("approved_quantity", sa.Float, nullable=False, server_default="0"),
        sa.Column("rejected_quantity", sa.Float, nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Float, nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("subtotal", sa.Float, nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("line_total", sa.Float, nullable=False, server_default="0"),
        sa.Column("quality_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("batch_number", sa.String(100)),
        sa.Column("expiry_date", sa.Date),
        sa.Column("condition_notes", sa.Text),
        sa.Column("inspection_notes", sa.Text),
        sa.Column("attributes", sa.JSON, nullable=False),
        sa.Column("image_url", sa.String(1024)),
        sa.Column("catalog_name", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(_in("item_kind", ITEM_KINDS), name="ck_grn_item_kind"),
        sa.CheckConstraint(_in("quality_status", QUALITY_STATUSES), name="ck_grn_item_quality_status"),
        sa.CheckConstraint(
            "received_quantity >= 0 AND approved_quantity >= 0 AND rejected_quantity >= 0",
            name="ck_grn_item_quantities_non_negative",
        ),
        sa.CheckConstraint(
            "approved_quantity + rejected_quantity <= received_quantity",
            name="ck_grn_item_split_within_received",
        ),
    )
    op.create_index("ix_grn_items_grn", "grn_items", ["grn_id"])

    # 7. Bins
    op.create_table(
        "bins",
        sa.Column("bin_id", GUID(), primary_key=True),
        sa.Column("bin_code", sa.String(50), nullable=False, unique=True),
        sa.Column("location_type", sa.String(30), nullable=False, server_default="storage_zone"),
        sa.Column("description", sa.String(255)),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(_in("location_type", BIN_LOCATION_TYPES), name="ck_bin_location_type"),
    )
    op.create_index("ix_bins_location_type", "bins", ["location_type", "is_active"])

    # 8. Warehouse inventory (ledger)
    op.create_table(
        "warehouse_inventory",
        sa.Column("inventory_id", GUID(), primary_key=True),
        sa.Column("item_kind", sa.String(20), nullable=False),
        sa.Column("item_ref", sa.String(64)),
        sa.Column("item_code", sa.String(100), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("color", sa.String(100)),
        sa.Column("bin_id", GUID(), sa.ForeignKey("bins.bin_id"), nullable=False),
        sa.Column("stock_status", sa.String(30), nullable=False, server_default="received"),
        sa.Column("unit", sa.String(20), nullable=False, server_default="pcs"),
        sa.Column("quantity", sa.Float, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("identity_key", sa.String(700), nullable=False, unique=True),
        sa.Column("grn_id", GUID(), sa.ForeignKey("goods_receipts.receipt_id")),
        sa.Column("grn_item_id", GUID(), sa.ForeignKey("grn_items.grn_item_id")),
        sa.Column("received_date", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity >= 0", name="ck_warehouse_inventory_qty_positive"),
        sa.CheckConstraint(_in("item_kind", ITEM_KINDS), name="ck_warehouse_inventory_kind"),
        sa.CheckConstraint(_in("stock_status", STOCK_STATUSES), name="ck_warehouse_inventory_status"),
    )
    op.create_index(
        "ix_warehouse_inventory_ref", "warehouse_inventory", ["item_ref", "bin_id", "stock_status", "unit"]
    )
    op.create_index(
        "ix_warehouse_inventory_code_name",
        "warehouse_inventory",
        ["item_code", "item_name", "bin_id", "stock_status", "unit"],
    )

    # 9. Inventory logs
    op.create_table(
        "inventory_logs",
        sa.Column("log_id", GUID(), primary_key=True),
        sa.Column(
            "warehouse_inventory_id", GUID(), sa.ForeignKey("warehouse_inventory.inventory_id"), nullable=False
        ),
        sa.Column("grn_id", GUID(), sa.ForeignKey("goods_receipts.receipt_id")),
        sa.Column("grn_item_id", GUID(), sa.ForeignKey("grn_items.grn_item_id")),
        sa.Column("item_kind", sa.String(20), nullable=False),
        sa.Column("item_ref", sa.String(64)),
        sa.Column("item_code", sa.String(100), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("color", sa.String(100)),
        sa.Column("quantity", sa.Float, nullable=False),
        sa.Column("old_quantity", sa.Float, nullable=False),
        sa.Column("new_quantity", sa.Float, nullable=False),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("bin_id", GUID(), sa.ForeignKey("bins.bin_id")),
        sa.Column("stock_status", sa.String(30), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("reference_type", sa.String(20), nullable=False, server_default="GRN"),
        sa.Column("reference_number", sa.String(50)),
        sa.Column("notes", sa.Text),
        sa.Column("created_by", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("grn_item_id", "warehouse_inventory_id", name="uq_inventory_log_line_row"),
        sa.CheckConstraint("action IN ('added', 'consolidated')", name="ck_inventory_log_action"),
    )
    op.create_index("ix_inventory_logs_grn", "inventory_logs", ["grn_id"])
    op.create_index("ix_inventory_logs_inventory", "inventory_logs", ["warehouse_inventory_id", "created_at"])

    # 10. Document sequences
    op.create_table(
        "document_sequences",
        sa.Column("sequence_key", sa.String(50), primary_key=True),
        sa.Column("current_value", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    tables = [
        "document_sequences",
        "inventory_logs",
        "warehouse_inventory",
        "bins",
        "grn_items",
        "goods_receipts",
        "purchase_order_items",
        "purchase_orders",
        "catalog_items",
        "suppliers",
    ]
    for table in tables:
        op.drop_table(table)
