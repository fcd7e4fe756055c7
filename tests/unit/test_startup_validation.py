"""Tests for document store validation at startup."""

import pytest

from src.core import db_client
from src.core.config import settings
from src.main import validate_document_store


@pytest.mark.unit
class TestValidateDocumentStore:
    async def test_valid_store_passes(self, sqlite_db):
        await validate_document_store()

        assert await db_client.get_full_list(collection="Users") == []

    async def test_creates_missing_schema(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "nested" / "fresh.db"))

        try:
            await validate_document_store()
            created = await db_client.create_record(collection="Users", data={"Name": "Alice"}, record_id="alice")
        finally:
            await db_client.close_connection()

        assert created["id"] == "alice"

    async def test_unusable_path_exits(self, tmp_path, monkeypatch):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        monkeypatch.setattr(settings, "sqlite_db_path", str(blocker / "chorely.db"))

        with pytest.raises(SystemExit) as exc_info:
            await validate_document_store()

        assert exc_info.value.code == 1
