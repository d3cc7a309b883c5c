"""Router – archive admission and listing."""

import logging
import shutil
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from src.archiver.config import ARCHIVE_DIR, STAGING_DIR, settings
from src.archiver.errors import (
    ArchiveAdmissionError,
    ArchiveError,
    ArchiveIOError,
    EmptyArchiveExhausted,
)
from src.archiver.schemas.archive import ArchiveListing, ArchiveOutcome
from src.archiver.services.archive_service import Archiver

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Archive"])


def get_archiver() -> Archiver:
    """Archiver bound to the configured directory and budget."""
    return Archiver(
        ARCHIVE_DIR,
        max_size_bytes=settings.archive_max_size_bytes,
        max_file_count=settings.archive_max_file_count,
    )


@router.post("/archive", response_model=ArchiveOutcome)
async def archive_file(
    file: UploadFile = File(...),
    archiver: Archiver = Depends(get_archiver),
) -> ArchiveOutcome:
    """
    Upload a file and admit it into the archive.

    The oldest archived files are evicted first when the archive would
    exceed its size or file-count budget.  A file with the same name as
    an existing entry replaces it.

    Returns
    -------
    ArchiveOutcome with:
        - filename : name of the archived entry
        - size     : file size in bytes
        - evicted  : names of the entries deleted to make room
        - usage    : archive occupancy after admission
    """
    # ── validate file name ──
    filename = Path(file.filename or "").name
    if not filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    # ── read file content ──
    content = await file.read()
    file_size = len(content)

    if file_size > settings.max_upload_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large ({file_size} bytes). "
                   f"Maximum size: {settings.max_upload_size} bytes.",
        )

    # ── stage under its own directory so the base name survives ──
    staging = Path(tempfile.mkdtemp(dir=STAGING_DIR))
    staged_path = staging / filename

    try:
        with open(staged_path, "wb") as f:
            f.write(content)
        return archiver.archive(staged_path)
    except EmptyArchiveExhausted as exc:
        raise HTTPException(status_code=413, detail=str(exc))
    except ArchiveAdmissionError as exc:
        raise HTTPException(
            status_code=500,
            detail={"message": str(exc), "evicted": exc.evicted},
        )
    except ArchiveIOError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    except ArchiveError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    finally:
        shutil.rmtree(staging, ignore_errors=True)


@router.get("/archive", response_model=ArchiveListing)
def list_archive(archiver: Archiver = Depends(get_archiver)) -> ArchiveListing:
    """Return archived files (oldest first) with the current usage."""
    try:
        return ArchiveListing(entries=archiver.entries(), usage=archiver.usage())
    except ArchiveIOError as exc:
        logger.error("Could not list archive: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))
