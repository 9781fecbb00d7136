"""Main FastAPI application for the NannyGold booking core"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nannygold.api import bookings, health, invoices, payments, profiles, reassignments
from nannygold.config import settings
from nannygold.db.database import close_db, init_db
from nannygold.errors import register_exception_handlers
from nannygold.middleware.logging import LoggingMiddleware
from nannygold.middleware.request_id import RequestIDMiddleware
from nannygold.utils.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting NannyGold booking API...")

    config_report = settings.validate_configuration()
    for warning in config_report["warnings"]:
        logger.warning(f"Configuration: {warning}")
    for error in config_report["errors"]:
        logger.error(f"Configuration: {error}")

    await init_db()
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down NannyGold booking API...")
    await close_db()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="NannyGold Booking API",
    description="""
    ## Childcare marketplace booking core

    Matches clients with nannies, keeps bookings staffed when a nanny declines,
    and bills long-term placements monthly through Paystack.

    ### Key Features
    - **Revenue split**: placement fees, tiered commissions and short-term booking fees
    - **Booking lifecycle**: guarded status transitions with admin escalation
    - **Reassignment**: automatic replacement with client choice among alternatives
    - **Payments**: authorize on the 25th, capture on the 1st, payment advice per period
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.app_debug else None,
    redoc_url="/redoc" if settings.app_debug else None,
)

# Configure middleware (order matters - last added runs first)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)


@app.get("/status", response_class=JSONResponse)
async def api_status() -> dict[str, Any]:
    """API status endpoint for programmatic access"""
    return {
        "name": "NannyGold Booking API",
        "version": "0.1.0",
        "status": "operational",
        "payments": settings.is_payments_configured(),
        "docs": "/docs" if settings.app_debug else None,
    }


app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(
    bookings.router,
    prefix="/api/v1/bookings",
    tags=["bookings"]
)
app.include_router(
    reassignments.router,
    prefix="/api/v1/reassignments",
    tags=["reassignments"]
)
app.include_router(
    payments.router,
    prefix="/api/v1/payments",
    tags=["payments"]
)
app.include_router(
    invoices.router,
    prefix="/api/v1/invoices",
    tags=["invoices"]
)
app.include_router(
    profiles.router,
    prefix="/api/v1/profiles",
    tags=["profiles"]
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nannygold.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )
