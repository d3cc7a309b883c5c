"""Bounded archive – FastAPI application entry-point."""

from contextlib import asynccontextmanager
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from src.archiver.config import ARCHIVE_DIR, settings
from src.archiver.router import archive, health

# Configure logging from settings
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Lifespan: report the archive budget on startup
# ──────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    usage = archive.get_archiver().usage()
    logger.info(
        "🚀 Archive %s – %d/%d files, %d/%d bytes",
        ARCHIVE_DIR, usage.entry_count, usage.max_count,
        usage.total_bytes, usage.max_bytes,
    )
    yield
    logger.info("🛑 Shutting down.")


# ──────────────────────────────────────────────
# Application factory
# ──────────────────────────────────────────────
app = FastAPI(
    title="Bounded Archive API",
    description="Archive files into a directory bounded by total size and file count.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS middleware (configured from environment variables) ──
app.add_middleware(
    middleware_class=CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_methods_list,
    allow_headers=settings.cors_headers_list,
)

logger.info("CORS configured with origins: %s", settings.cors_origins_list)

# ── register routers ──
app.get('/')(lambda: {"message": "Welcome to the Bounded Archive API! Visit /docs for API documentation."})
app.include_router(health.router)
app.include_router(archive.router)
