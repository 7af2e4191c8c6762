"""Tests for SQLite storage."""

import os
import sys
import tempfile

import pytest
import pytest_asyncio

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pagerules.core.errors import PersistenceError
from pagerules.core.storage import SQLiteStorage


@pytest_asyncio.fixture
async def sqlite_storage():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = SQLiteStorage(os.path.join(tmpdir, "nested", "pagerules.db"))
        await storage.initialize()
        yield storage
        await storage.close()


class TestSQLiteStorage:
    """Test the key-value store."""

    @pytest.mark.asyncio
    async def test_rules_default_to_empty(self, sqlite_storage):
        assert await sqlite_storage.load_rules() == []

    @pytest.mark.asyncio
    async def test_rules_replace_whole_list(self, sqlite_storage):
        await sqlite_storage.save_rules([{"id": "rule_1"}, {"id": "rule_2"}])
        await sqlite_storage.save_rules([{"id": "rule_2"}])
        assert await sqlite_storage.load_rules() == [{"id": "rule_2"}]

    @pytest.mark.asyncio
    async def test_blobs(self, sqlite_storage):
        await sqlite_storage.save_blob("saved_1", {"url": "https://example.com/", "tags": ["a"]})
        await sqlite_storage.save_blob("saved_2", {"url": "https://example.com/2"})
        await sqlite_storage.save_rules([])

        assert (await sqlite_storage.load_blob("saved_1"))["tags"] == ["a"]
        assert await sqlite_storage.load_blob("missing") is None
        assert await sqlite_storage.list_keys("saved_") == ["saved_1", "saved_2"]

    @pytest.mark.asyncio
    async def test_unserializable_value(self, sqlite_storage):
        with pytest.raises(PersistenceError) as exc_info:
            await sqlite_storage.save_blob("bad", {"value": object()})
        assert exc_info.value.context["key"] == "bad"

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = SQLiteStorage(os.path.join(tmpdir, "pagerules.db"))
            with pytest.raises(PersistenceError):
                await storage.load_rules()

    @pytest.mark.asyncio
    async def test_corrupt_row_raises_persistence_error(self, sqlite_storage):
        await sqlite_storage._db.execute(
            "INSERT INTO kv_store (key, value_json, updated_at) VALUES (?, ?, ?)",
            ("automation_rules", "{not json", 0),
        )
        await sqlite_storage._db.commit()

        with pytest.raises(PersistenceError) as exc_info:
            await sqlite_storage.load_rules()
        assert exc_info.value.context["key"] == "automation_rules"
