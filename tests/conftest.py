"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator

import pytest

from src.core import db_client
from src.core.config import settings


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch) -> AsyncIterator[str]:
    """Point the document store at a fresh SQLite file with the schema created."""
    db_path = str(tmp_path / "chorely-test.db")
    monkeypatch.setattr(settings, "sqlite_db_path", db_path)

    await db_client.init_db()
    yield db_path

    db_client.clear_listeners()
    await db_client.close_connection()
