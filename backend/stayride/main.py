"""StayRide booking engine — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stayride.api.v1.bookings import router as bookings_router
from stayride.api.v1.payments import router as payments_router
from stayride.api.v1.payouts import router as payouts_router
from stayride.api.v1.trips import router as trips_router
from stayride.api.v1.webhooks import router as webhooks_router
from stayride.config import settings
from stayride.errors import BookingEngineError

# Configure root logger so all stayride.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    if settings.maintenance_mode:
        logger.warning("Starting in maintenance mode: mutating routes are limited to admins")
    yield
    # Shutdown — dispose engine connections
    from stayride.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Reservation and payment reconciliation engine for stays, rides and combined trips.",
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


@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    """Translate domain errors raised by services into JSON responses."""
    if exc.status_code >= 500:
        logger.warning("%s %s failed upstream: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Routers
app.include_router(bookings_router)
app.include_router(payments_router)
app.include_router(webhooks_router)
app.include_router(trips_router)
app.include_router(payouts_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
