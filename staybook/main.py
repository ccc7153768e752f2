"""StayBook: FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from staybook.api.v1.bookings import router as bookings_router
from staybook.api.v1.coupons import router as coupons_router
from staybook.api.v1.loyalty import router as loyalty_router
from staybook.api.v1.webhooks import router as webhooks_router
from staybook.config import settings
from staybook.database import create_engine_from_settings, create_session_factory
from staybook.errors import StayBookError, staybook_error_handler
from staybook.payments.gateway import StripePaymentGateway
from staybook.payments.reconciler import WebhookReconciler

# Configure root logger so all staybook.* loggers output to stderr.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the shared engine, gateway and reconciler once per process."""
    engine = create_engine_from_settings(settings)
    session_factory = create_session_factory(engine)
    gateway = StripePaymentGateway.from_settings(settings)

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.gateway = gateway
    app.state.reconciler = WebhookReconciler(session_factory, gateway)
    yield
    # Shutdown: dispose engine connections
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Booking lifecycle and payment reconciliation service for rental stays.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(StayBookError, staybook_error_handler)

# Routers
app.include_router(bookings_router)
app.include_router(coupons_router)
app.include_router(loyalty_router)
app.include_router(webhooks_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}
