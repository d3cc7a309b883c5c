"""Router – liveness and archive readiness."""

import os

from fastapi import APIRouter, HTTPException

from src.archiver.config import ARCHIVE_DIR

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe."""
    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check() -> dict:
    """Readiness probe – the archive directory must be readable and writable."""
    if not ARCHIVE_DIR.is_dir() or not os.access(ARCHIVE_DIR, os.R_OK | os.W_OK | os.X_OK):
        raise HTTPException(status_code=503, detail=f"Archive directory {ARCHIVE_DIR} unavailable")
    return {"status": "ready", "archive": str(ARCHIVE_DIR)}
