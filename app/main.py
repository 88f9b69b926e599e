"""
Natural Order — FastAPI application entry point.

Configures logging, middleware and the API routers. Interactive docs are
only served while ``DEBUG`` is on.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api import collection, matches, notifications

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Matches", "description": "Trade matches, their cards and the trade lifecycle."},
    {"name": "Collection", "description": "Pausing collection items offered for trade."},
    {"name": "Notifications", "description": "In-app notifications about trades."},
]


def configure_logging(level: str) -> None:
    """Route stdlib logging to stdout at *level*."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    from app.database import engine

    configure_logging(settings.LOG_LEVEL)
    logger.info("%s %s starting (%s)", settings.APP_NAME, settings.APP_VERSION, settings.APP_ENV)

    yield

    # Shutdown: close connections
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Trade matching for Magic: The Gathering players near each other.",
    version=settings.APP_VERSION,
    openapi_tags=OPENAPI_TAGS,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

# --- Routers ---
app.include_router(matches.router, prefix="/api/v1/matches", tags=["Matches"])
app.include_router(collection.router, prefix="/api/v1/collection", tags=["Collection"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["Notifications"])


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.APP_ENV,
    }
