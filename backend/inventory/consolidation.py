"""
Inventory Consolidation Engine — merge approved GRN lines into the warehouse ledger.

Called when a GRN enters `approved` or `partially_approved`, and again on
any retry of that operation. For each approved line:

1. Idempotency guard: a log entry for the line means a prior run already
   applied it → skip.
2. Identity resolution, first match wins:
     a. same item_ref + kind + bin + stock status + unit
     b. same (item_code, item_name) + kind + bin + stock status + unit, with
        compatible colours (equal, or either absent)
     c. no match → create a ledger row seeded with the approved quantity
3. Merge via a versioned conditional UPDATE; a lost race re-reads and retries.
4. Exactly one inventory_logs row (added | consolidated) in the same
   SAVEPOINT as the ledger write.

Each line runs in its own SAVEPOINT: a database failure on one line is
reported in the result and leaves the other lines untouched.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from core.config import get_settings
from db.models import Bin, GoodsReceipt, GRNItem, InventoryLog, WarehouseInventory
from integrations.identity import Actor
from supply_chain.errors import ConcurrencyConflictError
from supply_chain.quality import QualityStatus

logger = structlog.get_logger()


# ─── Result types ───────────────────────────────────────────────────────────


@dataclass
class LineOutcome:
    line_id: uuid.UUID
    ledger_row_id: uuid.UUID
    action: str  # added | consolidated
    quantity: float
    old_quantity: float
    new_quantity: float


@dataclass
class LineFailure:
    line_id: uuid.UUID
    item_name: str
    error: str


@dataclass
class ConsolidationResult:
    bin_id: uuid.UUID
    bin_code: str
    added: list[LineOutcome] = field(default_factory=list)
    consolidated: list[LineOutcome] = field(default_factory=list)
    skipped: list[uuid.UUID] = field(default_factory=list)
    failed: list[LineFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def applied(self) -> list[LineOutcome]:
        return self.added + self.consolidated

    def as_dict(self) -> dict:
        def _outcome(o: LineOutcome) -> dict:
            return {
                "line_id": str(o.line_id),
                "ledger_row_id": str(o.ledger_row_id),
                "action": o.action,
                "quantity": o.quantity,
                "old_quantity": o.old_quantity,
                "new_quantity": o.new_quantity,
            }

        return {
            "bin_id": str(self.bin_id),
            "bin_code": self.bin_code,
            "added": [_outcome(o) for o in self.added],
            "consolidated": [_outcome(o) for o in self.consolidated],
            "skipped": [str(line_id) for line_id in self.skipped],
            "failed": [
                {"line_id": str(f.line_id), "item_name": f.item_name, "error": f.error} for f in self.failed
            ],
        }


# ─── Identity ───────────────────────────────────────────────────────────────


def normalize_color(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value.casefold() or None


def colors_compatible(line_color: str | None, row_color: str | None) -> bool:
    """Equal colours, or either side unset. Two different colours never merge."""
    a, b = normalize_color(line_color), normalize_color(row_color)
    return a is None or b is None or a == b


@dataclass(frozen=True)
class LedgerIdentity:
    item_kind: str
    item_ref: str | None
    item_code: str
    item_name: str
    color: str | None
    bin_id: uuid.UUID
    stock_status: str
    unit: str

    @property
    def key(self) -> str:
        return "|".join(
            [
                self.item_kind,
                self.item_ref or "",
                self.item_code,
                self.item_name,
                normalize_color(self.color) or "",
                str(self.bin_id),
                self.stock_status,
                self.unit,
            ]
        )


def line_identity(line: GRNItem, bin_id: uuid.UUID, stock_status: str, default_unit: str = "pcs") -> LedgerIdentity:
    color = line.color.strip() if line.color else None
    return LedgerIdentity(
        item_kind=line.item_kind,
        item_ref=line.item_ref or None,
        item_code=line.item_code or line.item_name,
        item_name=line.item_name,
        color=color or None,
        bin_id=bin_id,
        stock_status=stock_status,
        unit=line.unit_of_measure or default_unit,
    )


def consolidation_candidates(lines) -> list[GRNItem]:
    """Lines eligible for the ledger: approved with a positive approved quantity."""
    return [
        line
        for line in lines
        if line.quality_status == QualityStatus.APPROVED.value and (line.approved_quantity or 0) > 0
    ]


# ─── Ledger access ──────────────────────────────────────────────────────────


async def has_log_entry(db: AsyncSession, line_id: uuid.UUID) -> bool:
    result = await db.execute(select(InventoryLog.log_id).where(InventoryLog.grn_item_id == line_id).limit(1))
    return result.first() is not None


async def find_matching_row(db: AsyncSession, identity: LedgerIdentity) -> WarehouseInventory | None:
    """Resolve the ledger row an approved line merges into, if any."""
    scope = (
        WarehouseInventory.item_kind == identity.item_kind,
        WarehouseInventory.bin_id == identity.bin_id,
        WarehouseInventory.stock_status == identity.stock_status,
        WarehouseInventory.unit == identity.unit,
    )

    if identity.item_ref:
        row = await _best_colour_match(
            db, identity, select(WarehouseInventory).where(WarehouseInventory.item_ref == identity.item_ref, *scope)
        )
        if row is not None:
            return row

    query = select(WarehouseInventory).where(
        WarehouseInventory.item_code == identity.item_code,
        WarehouseInventory.item_name == identity.item_name,
        *scope,
    )
    if identity.item_ref:
        # Never fold a catalog item into a row that belongs to another catalog item.
        query = query.where(WarehouseInventory.item_ref.is_(None))
    return await _best_colour_match(db, identity, query)


async def _best_colour_match(db: AsyncSession, identity: LedgerIdentity, query) -> WarehouseInventory | None:
    """Oldest colour-compatible row, exact colour first."""
    result = await db.execute(
        query.order_by(WarehouseInventory.created_at).execution_options(populate_existing=True)
    )
    candidates = [row for row in result.scalars().all() if colors_compatible(identity.color, row.color)]
    if not candidates:
        return None

    wanted = normalize_color(identity.color)
    candidates.sort(key=lambda row: 0 if normalize_color(row.color) == wanted else 1)
    return candidates[0]


async def _reload_row(db: AsyncSession, inventory_id: uuid.UUID) -> WarehouseInventory:
    result = await db.execute(
        select(WarehouseInventory)
        .where(WarehouseInventory.inventory_id == inventory_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def merge_quantity(
    db: AsyncSession,
    row: WarehouseInventory,
    delta: float,
    max_retries: int,
) -> tuple[float, float]:
    """Read-merge-write against one ledger row, serialized on `version`.

    Returns (old_quantity, new_quantity). The UPDATE only lands if the row
    still carries the version that was read; otherwise re-read and retry.
    """
    for attempt in range(max_retries):
        if attempt:
            row = await _reload_row(db, row.inventory_id)

        old_quantity = float(row.quantity or 0.0)
        new_quantity = old_quantity + delta
        read_version = row.version

        result = await db.execute(
            update(WarehouseInventory)
            .where(
                WarehouseInventory.inventory_id == row.inventory_id,
                WarehouseInventory.version == read_version,
            )
            .values(quantity=new_quantity, version=read_version + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            set_committed_value(row, "quantity", new_quantity)
            set_committed_value(row, "version", read_version + 1)
            return old_quantity, new_quantity

        logger.info(
            "consolidation.retry",
            inventory_id=str(row.inventory_id),
            attempt=attempt + 1,
            read_version=read_version,
        )

    raise ConcurrencyConflictError(
        f"Ledger row {row.inventory_id} kept changing; gave up after {max_retries} attempts",
        field="quantity",
    )


async def _insert_row(
    db: AsyncSession,
    identity: LedgerIdentity,
    line: GRNItem,
    receipt: GoodsReceipt,
    quantity: float,
) -> WarehouseInventory | None:
    """Create the ledger row, or return None if a concurrent insert won."""
    row = WarehouseInventory(
        item_kind=identity.item_kind,
        item_ref=identity.item_ref,
        item_code=identity.item_code,
        item_name=identity.item_name,
        color=identity.color,
        bin_id=identity.bin_id,
        stock_status=identity.stock_status,
        unit=identity.unit,
        quantity=quantity,
        version=1,
        identity_key=identity.key,
        grn_id=receipt.receipt_id,
        grn_item_id=line.grn_item_id,
        received_date=datetime.utcnow(),
        notes=f"Auto-placed from GRN {receipt.receipt_number}",
    )
    try:
        async with db.begin_nested():
            db.add(row)
            await db.flush()
    except IntegrityError:
        return None
    return row


async def _write_log_entry(
    db: AsyncSession,
    *,
    row: WarehouseInventory,
    line: GRNItem,
    receipt: GoodsReceipt,
    action: str,
    quantity: float,
    old_quantity: float,
    new_quantity: float,
    actor: Actor,
) -> InventoryLog:
    note = f"Added {quantity:g} {row.unit} from GRN {receipt.receipt_number}"
    if action == "consolidated":
        note += " - Consolidated with existing inventory"

    entry = InventoryLog(
        warehouse_inventory_id=row.inventory_id,
        grn_id=receipt.receipt_id,
        grn_item_id=line.grn_item_id,
        item_kind=row.item_kind,
        item_ref=row.item_ref,
        item_code=row.item_code,
        item_name=row.item_name,
        color=row.color,
        quantity=quantity,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        unit=row.unit,
        bin_id=row.bin_id,
        stock_status=row.stock_status,
        action=action,
        reference_type="GRN",
        reference_number=receipt.receipt_number,
        notes=note,
        created_by=actor.user_id,
    )
    db.add(entry)
    await db.flush()
    return entry


async def _consolidate_line(
    db: AsyncSession,
    *,
    line: GRNItem,
    receipt: GoodsReceipt,
    bin_: Bin,
    stock_status: str,
    actor: Actor,
    max_retries: int,
    default_unit: str,
) -> LineOutcome | None:
    if await has_log_entry(db, line.grn_item_id):
        return None

    quantity = float(line.approved_quantity)
    identity = line_identity(line, bin_.bin_id, stock_status, default_unit)

    for _ in range(max_retries):
        row = await find_matching_row(db, identity)
        if row is not None:
            old_quantity, new_quantity = await merge_quantity(db, row, quantity, max_retries)
            action = "consolidated"
            break
        row = await _insert_row(db, identity, line, receipt, quantity)
        if row is not None:
            old_quantity, new_quantity = 0.0, quantity
            action = "added"
            break
        logger.info("consolidation.insert_race", line_id=str(line.grn_item_id), identity_key=identity.key)
    else:
        raise ConcurrencyConflictError(
            f"Could not settle a ledger row for '{line.item_name}'",
            line_id=line.grn_item_id,
        )

    await _write_log_entry(
        db,
        row=row,
        line=line,
        receipt=receipt,
        action=action,
        quantity=quantity,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        actor=actor,
    )
    return LineOutcome(
        line_id=line.grn_item_id,
        ledger_row_id=row.inventory_id,
        action=action,
        quantity=quantity,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
    )


# ─── Entry point ────────────────────────────────────────────────────────────


async def consolidate_lines(
    db: AsyncSession,
    receipt: GoodsReceipt,
    lines,
    bin_: Bin,
    actor: Actor,
    stock_status: str | None = None,
    max_retries: int | None = None,
) -> ConsolidationResult:
    """Consolidate every eligible line; never commits.

    The caller owns the transaction: it commits the successful savepoints
    together with (or without) the status write.
    """
    settings = get_settings()
    stock_status = stock_status or settings.receiving_stock_status
    max_retries = max_retries or settings.consolidation_max_retries

    result = ConsolidationResult(bin_id=bin_.bin_id, bin_code=bin_.bin_code)

    for line in consolidation_candidates(lines):
        line_id = line.grn_item_id
        item_name = line.item_name
        try:
            async with db.begin_nested():
                outcome = await _consolidate_line(
                    db,
                    line=line,
                    receipt=receipt,
                    bin_=bin_,
                    stock_status=stock_status,
                    actor=actor,
                    max_retries=max_retries,
                    default_unit=settings.receiving_default_unit,
                )
        except (SQLAlchemyError, ConcurrencyConflictError) as exc:
            logger.error(
                "consolidation.line_failed",
                grn_id=str(receipt.receipt_id),
                line_id=str(line_id),
                item_name=item_name,
                error=str(exc),
            )
            result.failed.append(LineFailure(line_id=line_id, item_name=item_name, error=str(exc)))
            continue

        if outcome is None:
            result.skipped.append(line_id)
            logger.info("consolidation.line_skipped", line_id=str(line_id), reason="already_logged")
        elif outcome.action == "added":
            result.added.append(outcome)
            logger.info(
                "consolidation.line_added",
                line_id=str(line_id),
                inventory_id=str(outcome.ledger_row_id),
                quantity=outcome.quantity,
                bin_code=bin_.bin_code,
            )
        else:
            result.consolidated.append(outcome)
            logger.info(
                "consolidation.line_consolidated",
                line_id=str(line_id),
                inventory_id=str(outcome.ledger_row_id),
                old_quantity=outcome.old_quantity,
                new_quantity=outcome.new_quantity,
                bin_code=bin_.bin_code,
            )

    return result
