"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — creates tables, builds the catalog and payment
     clients, and tears them down again on shutdown
  2. Middleware — CORS, and a request id bound to every log event
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn djei.main:app --reload
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from djei.config import settings
from djei.database import engine, Base
from djei.exceptions import register_exception_handlers
from djei.log import bind_request_id, configure_logging, get_logger
from djei.routers import music, payments, roles, tokens
from djei.services.catalog_service import SpotifyCatalog
from djei.services.payment_service import StripePayments

configure_logging(settings.DEBUG)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Creates all database tables if they don't exist, and builds the
      integration clients stored on app.state (see dependencies.get_catalog
      and dependencies.get_payments).

    Shutdown:
      Closes the catalog's HTTP connections and disposes of the engine.
    """
    # --- Startup ---
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.catalog = SpotifyCatalog.from_settings()
    app.state.payments = StripePayments.from_settings()
    logger.info(
        "startup",
        catalog_configured=app.state.catalog.configured,
        payments_configured=app.state.payments.configured,
    )
    yield
    # --- Shutdown ---
    await app.state.catalog.aclose()
    await engine.dispose()


# Create the FastAPI application instance
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Backend API for DJEI: role profiles, token ledger, music catalog and payments",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Propagate X-Request-ID and log one `request` event per call."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(tokens.router, prefix="/tokens", tags=["Tokens"])
app.include_router(roles.router, prefix="/role", tags=["Role"])
app.include_router(music.router, prefix="/music/spotify", tags=["Music"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for load balancers and orchestrators."""
    return {"status": "ok", "version": settings.APP_VERSION}
