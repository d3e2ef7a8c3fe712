"""
StemHub Review API

FastAPI application for stage reviews, consensus and version promotion.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stemhub.api.routes import health, review
from stemhub.config import settings
from stemhub.db import close_db, init_db

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)

    try:
        await init_db()
    except Exception as e:
        logger.error("❌ Failed to initialize database: %s", e)
        raise

    # Production: refuse a missing DB password
    if not settings.debug and settings.database_url and "postgres" in settings.database_url:
        if not (settings.db_password or "").strip():
            raise RuntimeError(
                "Production requires STEMHUB_DB_PASSWORD to be set. "
                "Generate one with: openssl rand -hex 16"
            )

    yield

    logger.info("Shutting down...")
    await close_db()


app = FastAPI(
    title="StemHub Review API",
    version=settings.app_version,
    description=(
        "Reviewer fan-out, consensus and promotion of upstream proposals into a "
        "stage's immutable version history.\n\n"
        "## Authentication\n\n"
        "The identity gateway forwards the verified user id in the `X-User-ID` header. "
        "Every `/stemhub` endpoint requires it."
    ),
    lifespan=lifespan,
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(review.router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
