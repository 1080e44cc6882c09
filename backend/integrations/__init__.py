"""
Collaborator adapters package.

Receiving depends on three outside collaborators, each behind a small
interface so the workflow is source-agnostic:
  - Purchasing  (purchase orders + lines)    integrations.purchasing
  - Catalog     (display metadata)           integrations.catalog
  - Identity    (acting user for stamps)     integrations.identity

Usage:
    from integrations import DatabasePurchasingSource, HttpPurchasingSource

    purchasing = HttpPurchasingSource(settings.purchasing_api_url)
    po = await purchasing.get_purchase_order("PO-2026-0001")
"""

from integrations.catalog import (
    CatalogEntry,
    CatalogSource,
    DatabaseCatalogSource,
    HttpCatalogSource,
    enrich_line,
)
from integrations.identity import Actor, actor_from_claims
from integrations.purchasing import (
    DatabasePurchasingSource,
    HttpPurchasingSource,
    PurchaseOrderLine,
    PurchaseOrderSnapshot,
    PurchaseOrderSummary,
    PurchasingSource,
)

__all__ = [
    "Actor",
    "actor_from_claims",
    "CatalogEntry",
    "CatalogSource",
    "DatabaseCatalogSource",
    "HttpCatalogSource",
    "enrich_line",
    "PurchaseOrderLine",
    "PurchaseOrderSnapshot",
    "PurchaseOrderSummary",
    "PurchasingSource",
    "DatabasePurchasingSource",
    "HttpPurchasingSource",
]
