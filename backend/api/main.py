"""
Goods Receiving API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from alerts.notifications import RedisEventPublisher, get_event_bus
from core.config import get_settings
from supply_chain.errors import ReceivingError

settings = get_settings()
logger = structlog.get_logger()

ERROR_STATUS_CODES = {
    "not_found": 404,
    "invalid_transition": 409,
    "concurrency_conflict": 409,
    "validation_error": 422,
    "receipt_locked": 422,
    "precondition_not_met": 422,
    "collaborator_failure": 502,
    "consolidation_failure": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Goods Receiving API starting up", version=settings.app_version)
    unsubscribe = None
    if settings.inventory_events_enabled:
        publisher = RedisEventPublisher(settings.redis_url, settings.inventory_event_channel)
        unsubscribe = get_event_bus().subscribe(publisher)
        logger.info("events.redis_relay_registered", channel=settings.inventory_event_channel)
    yield
    if unsubscribe is not None:
        unsubscribe()
    logger.info("Goods Receiving API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Goods receipt workflow and warehouse inventory consolidation",
    lifespan=lifespan,
)


@app.exception_handler(ReceivingError)
async def receiving_error_handler(request: Request, exc: ReceivingError):
    status_code = ERROR_STATUS_CODES.get(exc.kind, 400)
    log = logger.error if status_code >= 500 else logger.info
    log("api.receiving_error", path=request.url.path, kind=exc.kind, message=exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from alerts.websocket import router as ws_router
from api.v1.routers import inventory, purchase_orders, receipts

app.include_router(receipts.router)
app.include_router(inventory.router)
app.include_router(purchase_orders.router)
app.include_router(ws_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
