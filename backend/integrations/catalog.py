"""
Catalog collaborator — display metadata for received items.

Enrichment is best effort: a catalog outage never blocks receiving, the
line simply proceeds without an image or catalog name.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from db.models import CatalogItem
from supply_chain.errors import CollaboratorError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CatalogEntry:
    item_ref: str
    item_kind: str
    item_code: str
    name: str
    color: str | None = None
    image_url: str | None = None
    unit_of_measure: str = "pcs"


class CatalogSource(ABC):
    @abstractmethod
    async def get_item(self, item_ref: str) -> CatalogEntry | None: ...

    @abstractmethod
    async def search_by_name(self, name: str) -> list[CatalogEntry]: ...


def _entry_from_row(row: CatalogItem) -> CatalogEntry:
    return CatalogEntry(
        item_ref=str(row.item_id),
        item_kind=row.item_kind,
        item_code=row.item_code,
        name=row.name,
        color=row.color,
        image_url=row.image_url,
        unit_of_measure=row.unit_of_measure,
    )


class DatabaseCatalogSource(CatalogSource):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_item(self, item_ref: str) -> CatalogEntry | None:
        try:
            condition = CatalogItem.item_id == uuid.UUID(str(item_ref))
        except ValueError:
            condition = CatalogItem.item_code == item_ref
        result = await self.db.execute(select(CatalogItem).where(condition))
        row = result.scalar_one_or_none()
        return _entry_from_row(row) if row else None

    async def search_by_name(self, name: str) -> list[CatalogEntry]:
        needle = name.strip().lower()
        if not needle:
            return []
        result = await self.db.execute(
            select(CatalogItem)
            .where(or_(func.lower(CatalogItem.name) == needle, func.lower(CatalogItem.item_code) == needle))
            .order_by(CatalogItem.item_code)
            .limit(10)
        )
        return [_entry_from_row(row) for row in result.scalars().all()]


def parse_catalog_entry(payload: dict[str, Any]) -> CatalogEntry:
    try:
        return CatalogEntry(
            item_ref=str(payload.get("item_id") or payload["id"]),
            item_kind=payload.get("item_kind", "item"),
            item_code=payload["item_code"],
            name=payload["name"],
            color=payload.get("color"),
            image_url=payload.get("image_url"),
            unit_of_measure=payload.get("unit_of_measure") or "pcs",
        )
    except (KeyError, TypeError) as exc:
        raise CollaboratorError("catalog", f"Malformed catalog payload: {exc}") from exc


class HttpCatalogSource(CatalogSource):
    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {"Accept": "application/json"}
        if api_token:
            self.headers["Authorization"] = f"Bearer {api_token}"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        reraise=True,
    )
    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            return await client.get(path, params=params)

    async def get_item(self, item_ref: str) -> CatalogEntry | None:
        try:
            response = await self._get(f"/items/{item_ref}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CollaboratorError("catalog", f"Catalog service unavailable: {exc}") from exc
        return parse_catalog_entry(payload)

    async def search_by_name(self, name: str) -> list[CatalogEntry]:
        try:
            response = await self._get("/items", params={"name": name})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CollaboratorError("catalog", f"Catalog service unavailable: {exc}") from exc
        rows = payload.get("items", []) if isinstance(payload, dict) else payload
        return [parse_catalog_entry(row) for row in rows]


async def enrich_line(line, catalog: CatalogSource | None) -> bool:
    """Backfill image_url / catalog_name on a receipt line. Returns True if enriched."""
    if catalog is None:
        return False
    try:
        entry = await catalog.get_item(line.item_ref) if line.item_ref else None
        if entry is None:
            wanted = line.item_name.strip().casefold()
            entry = next(
                (e for e in await catalog.search_by_name(line.item_name) if e.name.strip().casefold() == wanted),
                None,
            )
    except CollaboratorError as exc:
        logger.warning(
            "catalog.enrichment_failed",
            item_ref=line.item_ref,
            item_name=line.item_name,
            error=exc.message,
        )
        return False

    if entry is None:
        return False
    line.image_url = entry.image_url
    line.catalog_name = entry.name
    if not line.item_code:
        line.item_code = entry.item_code
    return True
