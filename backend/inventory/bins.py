"""
Receiving bin resolution.

Newly approved stock lands in one bin chosen by policy: an explicitly
requested bin code, else the first active bin of the configured receiving
location type. Failing to resolve a bin is a hard error raised before any
ledger write, so consolidation never silently drops items.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import BIN_LOCATION_TYPES, Bin
from supply_chain.errors import ReceiptValidationError, ReceivingBinNotFoundError

logger = structlog.get_logger()


async def resolve_receiving_bin(
    db: AsyncSession,
    bin_code: str | None = None,
    location_type: str | None = None,
) -> Bin:
    if bin_code:
        result = await db.execute(select(Bin).where(Bin.bin_code == bin_code).limit(1))
        bin_ = result.scalar_one_or_none()
        if bin_ is None or not bin_.is_active:
            raise ReceivingBinNotFoundError(f"Bin '{bin_code}' not found or inactive", field="bin_code")
        return bin_

    location_type = location_type or get_settings().receiving_bin_location_type
    result = await db.execute(
        select(Bin)
        .where(Bin.location_type == location_type, Bin.is_active.is_(True))
        .order_by(Bin.bin_code)
        .limit(1)
    )
    bin_ = result.scalar_one_or_none()
    if bin_ is None:
        logger.warning("bins.receiving_bin_missing", location_type=location_type)
        raise ReceivingBinNotFoundError(
            f"No active '{location_type}' bins found. Create a receiving zone bin first.",
            field="bin_code",
        )
    return bin_


async def create_bin(
    db: AsyncSession,
    bin_code: str,
    location_type: str,
    description: str | None = None,
) -> Bin:
    if location_type not in BIN_LOCATION_TYPES:
        raise ReceiptValidationError(
            f"Invalid location type '{location_type}'. Valid types: {', '.join(BIN_LOCATION_TYPES)}",
            field="location_type",
        )
    existing = await db.execute(select(Bin.bin_id).where(Bin.bin_code == bin_code))
    if existing.first() is not None:
        raise ReceiptValidationError(f"Bin '{bin_code}' already exists", field="bin_code")

    bin_ = Bin(bin_code=bin_code, location_type=location_type, description=description)
    db.add(bin_)
    await db.commit()
    await db.refresh(bin_)
    logger.info("bins.created", bin_code=bin_code, location_type=location_type)
    return bin_
