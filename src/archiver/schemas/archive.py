from datetime import datetime

from pydantic import BaseModel


class ArchiveUsage(BaseModel):
    """Current occupancy of the archive directory against its budget."""
    entry_count: int
    total_bytes: int
    max_bytes: int
    max_count: int


class ArchiveEntry(BaseModel):
    """Single top-level file in the archive directory."""
    name: str
    size: int
    modified: datetime


class ArchiveOutcome(BaseModel):
    """Result of a successful admission."""
    filename: str
    size: int
    evicted: list[str]
    usage: ArchiveUsage


class ArchiveListing(BaseModel):
    """Response schema for GET /archive."""
    entries: list[ArchiveEntry]
    usage: ArchiveUsage
