"""
Cove Matching API Server

FastAPI server for the intention, pool and match lifecycle.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from cove.api.routes import router, limiter as routes_limiter
from cove.database import db
from cove.models.schemas import HealthResponse

# LOG_LEVEL env var, INFO when unset or unknown
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up Cove Matching API...")

    # Tables normally come from alembic; this covers a fresh local database
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down Cove Matching API...")
    await db.engine.dispose()


app = FastAPI(
    title="Cove Matching API",
    description="API for matching intentions, the matching pool, and match lifecycle",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate limits are declared per route in cove.api.routes
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware, origins configured via ALLOWED_ORIGINS env var
allowed_origins = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    """Liveness check."""
    return {"status": "ok", "message": "Cove Matching API is running"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
