from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def _init_catalog_from_test_fixtures() -> None:
    """Initialize the catalog from `tests/assets` and forbid the built-in fallback.

    This keeps tests hermetic and independent of the repo's real catalog.
    """

    os.environ["ROULETTE_STRICT_CATALOG"] = "1"

    from roulette.catalog.singleton import init_catalog, reset_catalog_for_tests

    reset_catalog_for_tests()

    # Point the loader at a fake project root: tests/ contains an assets/ dir.
    test_root = Path(__file__).resolve().parent
    init_catalog(project_root=test_root)


@pytest.fixture()
def catalog():
    from roulette.catalog.singleton import get_catalog

    return get_catalog()


@pytest.fixture()
def store(tmp_path: Path, catalog):
    """A loaded store backed by a JSON file in a temp dir."""

    from roulette.state_store import FileSnapshotWriter, StateStore

    s = StateStore(writer=FileSnapshotWriter(tmp_path / "state.json"))
    s.load(catalog=catalog)
    return s


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator:
    """TestClient with a fresh file-backed session per test."""

    from fastapi.testclient import TestClient

    from roulette.main import app

    monkeypatch.setenv("ROULETTE_STATE_BACKEND", "file")
    monkeypatch.setenv("ROULETTE_STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("ROULETTE_HEARTBEAT_SECONDS", "3600")

    with TestClient(app) as c:
        yield c
