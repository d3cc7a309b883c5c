"""Archive error taxonomy."""

from __future__ import annotations

from collections.abc import Sequence


class ArchiveError(Exception):
    """Base class for every archive failure."""


class ArchiveIOError(ArchiveError):
    """Listing, sizing, deleting or moving inside the archive failed."""


class EmptyArchiveExhausted(ArchiveError):
    """The incoming file does not fit even into an empty archive."""

    def __init__(self, message: str, *, incoming_size: int, max_bytes: int, max_count: int) -> None:
        super().__init__(message)
        self.incoming_size = incoming_size
        self.max_bytes = max_bytes
        self.max_count = max_count


class ArchiveAdmissionError(ArchiveIOError):
    """
    The final move failed after eviction already took place.

    Evicted entries are gone for good; ``evicted`` lists their names so
    the caller can tell this apart from a failure that touched nothing.
    """

    def __init__(self, message: str, *, evicted: Sequence[str]) -> None:
        super().__init__(message)
        self.evicted = list(evicted)
