"""Rental store API: FastAPI entry point.

Registers middleware, error handlers, routers, and lifecycle hooks. The
rental vertical is mounted under /api.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import RequestContextMiddleware
from core.database import close_db, init_db
from core.errors import register_error_handlers
from core.observability.logging_setup import setup_logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

VERSION = "0.1.0"
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
CREATE_TABLES = os.getenv("DB_CREATE_TABLES", "false").lower() == "true"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    from verticals.rental.config import config
    from verticals.rental.router import order_limiter

    setup_logging()
    if CREATE_TABLES:
        await init_db()
    order_limiter.start(config.rate_limit.sweep_interval_seconds)

    logger.info("Rental API started (version %s)", VERSION)
    yield
    await order_limiter.stop()
    await close_db()
    logger.info("Rental API shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Rental Store",
    description="Rental catalog, bundles, orders and stock availability",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request id + access log
app.add_middleware(RequestContextMiddleware)

register_error_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from verticals.rental.router import router as rental_router  # noqa: E402

app.include_router(rental_router, prefix="/api", tags=["Rental"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.get("/")
async def root():
    return {
        "name": "Rental Store",
        "version": VERSION,
        "docs": "/docs",
    }
