"""Tests for the Bounded Archive API endpoints."""

import io
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.archiver.config import STAGING_DIR
from src.archiver.main import app
from src.archiver.router import archive as archive_router
from src.archiver.router.archive import get_archiver
from src.archiver.services.archive_service import Archiver

client = TestClient(app)


@pytest.fixture
def archive_dir(tmp_path: Path) -> Iterator[Path]:
    """Point the API at a small, empty archive for the duration of a test."""
    directory = tmp_path / "archive"
    directory.mkdir()
    app.dependency_overrides[get_archiver] = lambda: Archiver(directory, 100, 3)
    yield directory
    app.dependency_overrides.clear()


def upload(name: str, content: bytes):
    return client.post(
        "/archive",
        files={"file": (name, io.BytesIO(content), "application/octet-stream")},
    )


# ──────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────
def test_health_check() -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# ──────────────────────────────────────────────
# POST /archive
# ──────────────────────────────────────────────
def test_archive_success(archive_dir: Path) -> None:
    response = upload("report.csv", b"a,b\n1,2\n")

    assert response.status_code == 200
    data = response.json()
    assert data["filename"] == "report.csv"
    assert data["size"] == 8
    assert data["evicted"] == []
    assert data["usage"] == {"entry_count": 1, "total_bytes": 8, "max_bytes": 100, "max_count": 3}
    assert (archive_dir / "report.csv").read_bytes() == b"a,b\n1,2\n"


def test_archive_evicts_oldest(archive_dir: Path) -> None:
    for i, name in enumerate(["a.txt", "b.txt", "c.txt"]):
        path = archive_dir / name
        path.write_bytes(b"x" * 10)
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))

    response = upload("d.txt", b"y" * 10)

    assert response.status_code == 200
    assert response.json()["evicted"] == ["a.txt"]
    assert sorted(p.name for p in archive_dir.iterdir()) == ["b.txt", "c.txt", "d.txt"]


def test_archive_strips_directories_from_filename(archive_dir: Path) -> None:
    response = upload("../../escape.txt", b"data")

    assert response.status_code == 200
    assert response.json()["filename"] == "escape.txt"
    assert (archive_dir / "escape.txt").exists()


def test_archive_file_too_large_for_budget(archive_dir: Path) -> None:
    response = upload("huge.bin", b"z" * 150)

    assert response.status_code == 413
    assert "does not fit" in response.json()["detail"]
    assert list(archive_dir.iterdir()) == []


def test_archive_no_file() -> None:
    response = client.post("/archive")
    assert response.status_code == 422  # Validation error


# ──────────────────────────────────────────────
# GET /archive
# ──────────────────────────────────────────────
def test_list_archive(archive_dir: Path) -> None:
    upload("one.txt", b"1")
    upload("two.txt", b"22")

    response = client.get("/archive")

    assert response.status_code == 200
    data = response.json()
    assert {entry["name"] for entry in data["entries"]} == {"one.txt", "two.txt"}
    assert data["usage"]["entry_count"] == 2
    assert data["usage"]["total_bytes"] == 3


def test_readiness_check() -> None:
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_staging_is_cleaned_when_write_fails(archive_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    before = set(STAGING_DIR.iterdir())

    def broken_open(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(archive_router, "open", broken_open, raising=False)

    with pytest.raises(OSError):
        upload("report.csv", b"data")

    assert set(STAGING_DIR.iterdir()) == before
    assert list(archive_dir.iterdir()) == []


def test_list_archive_unreadable_directory(tmp_path: Path) -> None:
    app.dependency_overrides[get_archiver] = lambda: Archiver(tmp_path / "missing", 100, 3)
    try:
        response = client.get("/archive")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert "Could not list" in response.json()["detail"]
