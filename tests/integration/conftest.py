"""Pytest fixtures for tests running against a real database schema."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest
from alembic.config import Config


_PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

ALEMBIC_CONFIG_PATH = _PROJECT_ROOT / "infra/migrations/alembic.ini"


@pytest.fixture
def sqlite_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point Alembic at a throwaway SQLite file."""

    database_url = f"sqlite:///{tmp_path / 'alembic.sqlite'}"
    monkeypatch.setenv("ALEMBIC_DATABASE_URL", database_url)
    return database_url


@pytest.fixture
def alembic_config(sqlite_url: str) -> Config:
    return Config(str(ALEMBIC_CONFIG_PATH))
