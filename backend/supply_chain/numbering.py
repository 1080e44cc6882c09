"""
Receipt number assignment.

Numbers are store-assigned on insert, continuous within a calendar year:
`{PREFIX}-{YYYY}-{NNNNN}`, e.g. GRN-2026-00001. The counter row is bumped
with a single UPDATE so two concurrent creates never draw the same value.
"""

from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import DocumentSequence

logger = structlog.get_logger()

SEQUENCE_PADDING = 5


def format_document_number(prefix: str, year: int, value: int) -> str:
    return f"{prefix}-{year}-{value:0{SEQUENCE_PADDING}d}"


async def _bump(db: AsyncSession, key: str) -> bool:
    result = await db.execute(
        update(DocumentSequence)
        .where(DocumentSequence.sequence_key == key)
        .values(current_value=DocumentSequence.current_value + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def next_receipt_number(db: AsyncSession, prefix: str = "GRN", now: datetime | None = None) -> str:
    """Draw the next receipt number. Participates in the caller's transaction."""
    now = now or datetime.utcnow()
    key = f"{prefix}-{now.year}"

    if not await _bump(db, key):
        try:
            async with db.begin_nested():
                db.add(DocumentSequence(sequence_key=key, current_value=1))
                await db.flush()
        except IntegrityError:
            # Another request opened the year first.
            if not await _bump(db, key):
                raise
        else:
            logger.info("numbering.sequence_opened", sequence_key=key)

    result = await db.execute(
        select(DocumentSequence.current_value)
        .where(DocumentSequence.sequence_key == key)
        .execution_options(populate_existing=True)
    )
    value = result.scalar_one()
    return format_document_number(prefix, now.year, value)
