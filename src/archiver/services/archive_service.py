"""Service layer – bounded archive directory.

The directory on disk is the only source of truth: occupancy is measured
again after every eviction, so changes made by other processes between
two iterations are picked up.  Within one process, admissions into the
same directory are serialized by a per-directory lock; across processes
no guarantee is given.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path

from src.archiver.errors import (
    ArchiveAdmissionError,
    ArchiveError,
    ArchiveIOError,
    EmptyArchiveExhausted,
)
from src.archiver.schemas.archive import ArchiveEntry, ArchiveOutcome, ArchiveUsage

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# In-process locks  (resolved archive dir → lock)
# ──────────────────────────────────────────────
_directory_locks: dict[Path, threading.Lock] = {}
_registry_lock = threading.Lock()


def _lock_for(directory: Path) -> threading.Lock:
    with _registry_lock:
        return _directory_locks.setdefault(directory, threading.Lock())


def _raise(exc: OSError) -> None:
    raise exc


class Archiver:
    """
    Admit files into a directory bounded by total size and file count.

    Before a file is moved in, the oldest top-level files (by modification
    time) are deleted until ``entries + 1 <= max_count`` and
    ``total_bytes + incoming < max_bytes``.  Sizes are measured over the
    whole tree, but only top-level regular files are counted and evicted.
    """

    def __init__(self, archive_path: str | Path, max_size_bytes: int, max_file_count: int) -> None:
        if max_size_bytes <= 0:
            raise ValueError(f"max_size_bytes must be positive, got {max_size_bytes}")
        if max_file_count <= 0:
            raise ValueError(f"max_file_count must be positive, got {max_file_count}")
        self._archive_path = Path(archive_path)
        self._max_bytes = max_size_bytes
        self._max_count = max_file_count

    def __repr__(self) -> str:
        return (
            f"Archiver(archive_path={str(self._archive_path)!r}, "
            f"max_size_bytes={self._max_bytes}, max_file_count={self._max_count})"
        )

    @property
    def archive_path(self) -> Path:
        return self._archive_path

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def max_count(self) -> int:
        return self._max_count

    # ──────────────────────────────────────────────
    # Public operations
    # ──────────────────────────────────────────────
    def archive(self, file: str | Path) -> ArchiveOutcome:
        """
        Move *file* into the archive, evicting the oldest entries first.

        An existing entry with the same name is replaced.  Evicted files
        are deleted permanently.

        Raises
        ------
        ArchiveIOError         – the directory or the file cannot be read,
                                 or an eviction fails.
        EmptyArchiveExhausted  – *file* exceeds the byte budget on its own;
                                 nothing is deleted in that case.
        ArchiveAdmissionError  – the final move failed (evictions stand).
        ArchiveError           – *file* already lives inside the archive.
        """
        source = Path(file)
        if not self._archive_path.is_dir():
            raise ArchiveIOError(f"Archive directory {self._archive_path} does not exist")
        if not source.is_file():
            raise ArchiveIOError(f"Cannot archive {source}: not an existing regular file")
        if self._archive_path.resolve() in source.resolve().parents:
            raise ArchiveError(f"Cannot archive {source}: it is already inside {self._archive_path}")

        target = self._archive_path / source.name
        if target.is_dir():
            raise ArchiveIOError(f"Cannot archive {source}: {target} is a directory")

        try:
            incoming_size = source.stat().st_size
        except OSError as exc:
            raise ArchiveIOError(f"Could not read size of {source}") from exc

        with _lock_for(self._archive_path.resolve()):
            evicted = self._make_room(incoming_size)
            self._admit(source, target, evicted)
            usage = self.usage()

        logger.info(
            "📦 Archived %s (%d bytes, %d evicted) – %d/%d files, %d/%d bytes",
            target.name, incoming_size, len(evicted),
            usage.entry_count, usage.max_count, usage.total_bytes, usage.max_bytes,
        )
        return ArchiveOutcome(
            filename=target.name,
            size=incoming_size,
            evicted=evicted,
            usage=usage,
        )

    def usage(self) -> ArchiveUsage:
        """Measure the archive directory as it is on disk right now."""
        return ArchiveUsage(
            entry_count=len(self._list_files()),
            total_bytes=self._measure_bytes(),
            max_bytes=self._max_bytes,
            max_count=self._max_count,
        )

    def entries(self) -> list[ArchiveEntry]:
        """Top-level files, oldest first."""
        files = sorted(self._list_files(), key=lambda item: item[1].st_mtime_ns)
        return [
            ArchiveEntry(
                name=path.name,
                size=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
            for path, stat in files
        ]

    # ──────────────────────────────────────────────
    # Eviction & admission
    # ──────────────────────────────────────────────
    def _over_budget(self, entry_count: int, total_bytes: int, incoming_size: int) -> bool:
        # The count includes the incoming file; `>` leaves exactly max_count entries
        # after admission, where `>=` would evict one entry too many.
        return entry_count + 1 > self._max_count or total_bytes + incoming_size >= self._max_bytes

    def _exhausted(self, incoming_size: int) -> EmptyArchiveExhausted:
        logger.warning(
            "File of %d bytes cannot fit into archive %s (max %d bytes)",
            incoming_size, self._archive_path, self._max_bytes,
        )
        return EmptyArchiveExhausted(
            f"A file of {incoming_size} bytes does not fit into {self._archive_path} "
            f"even after evicting every entry (max {self._max_bytes} bytes)",
            incoming_size=incoming_size,
            max_bytes=self._max_bytes,
            max_count=self._max_count,
        )

    def _make_room(self, incoming_size: int) -> list[str]:
        files = self._list_files()
        total_bytes = self._measure_bytes()

        # Bytes in nested directories or links can never be evicted.
        unevictable = total_bytes - sum(stat.st_size for _, stat in files)
        if unevictable + incoming_size >= self._max_bytes:
            raise self._exhausted(incoming_size)

        evicted: list[str] = []
        while self._over_budget(len(files), total_bytes, incoming_size):
            if not files:
                raise self._exhausted(incoming_size)

            # min() keeps the first of equal timestamps in listing order
            oldest, stat = min(files, key=lambda item: item[1].st_mtime_ns)
            try:
                oldest.unlink()
            except OSError as exc:
                logger.error("Could not evict %s: %s", oldest, exc)
                raise ArchiveIOError(f"Could not evict {oldest}") from exc
            evicted.append(oldest.name)
            logger.info("🗑️  Evicted old file: %s (%d bytes)", oldest.name, stat.st_size)

            files = self._list_files()
            total_bytes = self._measure_bytes()
        return evicted

    def _admit(self, source: Path, target: Path, evicted: list[str]) -> None:
        try:
            shutil.move(str(source), str(target))
        except OSError as exc:
            logger.exception("Could not move %s to %s", source, self._archive_path)
            raise ArchiveAdmissionError(
                f"Could not move {source} into {self._archive_path} "
                f"after evicting {len(evicted)} file(s)",
                evicted=evicted,
            ) from exc

    # ──────────────────────────────────────────────
    # Directory measurement
    # ──────────────────────────────────────────────
    def _list_files(self) -> list[tuple[Path, os.stat_result]]:
        """Regular files directly inside the archive directory."""
        try:
            with os.scandir(self._archive_path) as it:
                return [
                    (Path(entry.path), entry.stat(follow_symlinks=False))
                    for entry in it
                    if entry.is_file(follow_symlinks=False)
                ]
        except OSError as exc:
            raise ArchiveIOError(f"Could not list archive directory {self._archive_path}") from exc

    def _measure_bytes(self) -> int:
        """Total size of every file below the archive directory, recursively."""
        total = 0
        try:
            for root, _dirs, names in os.walk(self._archive_path, onerror=_raise):
                for name in names:
                    total += os.stat(os.path.join(root, name), follow_symlinks=False).st_size
        except OSError as exc:
            raise ArchiveIOError(f"Could not measure archive directory {self._archive_path}") from exc
        return total
