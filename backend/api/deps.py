"""
Goods Receiving API Dependencies

Dependency injection for DB sessions, auth / acting identity, collaborator
sources and the inventory event bus.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.notifications import InventoryEventBus, get_event_bus as _get_event_bus
from core.config import get_settings
from core.security import decode_access_token
from db.session import AsyncSessionLocal
from integrations.catalog import CatalogSource, DatabaseCatalogSource, HttpCatalogSource
from integrations.identity import Actor, actor_from_claims
from integrations.purchasing import DatabasePurchasingSource, HttpPurchasingSource, PurchasingSource
from supply_chain.errors import ReceiptValidationError

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {"sub": "dev-user", "email": "dev@receiving.local", "name": "Dev User"}

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_actor(user: dict = Depends(get_current_user)) -> Actor:
    """The acting identity stamped onto received_by / approved_by."""
    try:
        return actor_from_claims(user)
    except ReceiptValidationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message) from exc


async def get_purchasing_source(db: AsyncSession = Depends(get_db)) -> PurchasingSource:
    runtime = get_settings()
    if runtime.purchasing_api_url:
        return HttpPurchasingSource(
            runtime.purchasing_api_url,
            api_token=runtime.collaborator_api_token,
            timeout=runtime.collaborator_timeout_seconds,
        )
    return DatabasePurchasingSource(db)


async def get_catalog_source(db: AsyncSession = Depends(get_db)) -> CatalogSource:
    runtime = get_settings()
    if runtime.catalog_api_url:
        return HttpCatalogSource(
            runtime.catalog_api_url,
            api_token=runtime.collaborator_api_token,
            timeout=runtime.collaborator_timeout_seconds,
        )
    return DatabaseCatalogSource(db)


def get_event_bus() -> InventoryEventBus:
    return _get_event_bus()
