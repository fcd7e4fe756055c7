"""Tests for the SQLite document store."""

import asyncio

import pytest

from src.core import db_client


COLLECTION = "chores/group/123456"


@pytest.mark.unit
class TestParseFilter:
    def test_equality_reads_json_field(self):
        where, params = db_client.parse_filter('seriesId = "abc"')

        assert where == "json_extract(data, '$.seriesId') = ?"
        assert params == ["abc"]

    def test_numeric_values_are_typed(self):
        _, params = db_client.parse_filter("groupKey = '123456'")

        assert params == [123456]

    def test_and_with_or_group(self):
        where, params = db_client.parse_filter('(groupKey = "1" || GroupKey = "1") && Name != "x"')

        assert " OR " in where
        assert " AND " in where
        assert params == [1, 1, "x"]

    def test_meta_fields_are_columns(self):
        where, _ = db_client.parse_filter('created >= "2025-01-01"')

        assert where == "created >= ?"

    def test_invalid_field_rejected(self):
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            db_client.parse_filter("Name; DROP TABLE documents")

    def test_sort_prefix(self):
        assert db_client.parse_sort("-Date") == "json_extract(data, '$.Date') DESC, id ASC"
        assert db_client.parse_sort("") == "created ASC, id ASC"


@pytest.mark.unit
class TestSanitizeParam:
    def test_escapes_double_quotes(self):
        """Test sanitize_param escapes quotes with a backslash like json.dumps."""
        assert db_client.sanitize_param('s1" || true || "') == r's1\" || true || \"'

    def test_sanitized_value_cannot_add_conditions(self):
        series_id = db_client.sanitize_param('s1" || seriesId != "')

        where, params = db_client.parse_filter(f'seriesId = "{series_id}"')

        assert " OR " not in where
        assert len(params) == 1


@pytest.mark.unit
class TestCollectionNames:
    def test_group_scoped_path_is_valid(self):
        db_client._validate_collection_name("chores/group/123456")

    @pytest.mark.parametrize("name", ["", "chores//x", "chores/group/12 3", "../etc"])
    def test_invalid_paths(self, name):
        with pytest.raises(ValueError, match="Invalid collection name"):
            db_client._validate_collection_name(name)


@pytest.mark.unit
class TestCrud:
    async def test_create_and_get(self, sqlite_db):
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "Dishes", "votes": 0})

        fetched = await db_client.get_record(collection=COLLECTION, record_id=created["id"])

        assert fetched["Name"] == "Dishes"
        assert fetched["votes"] == 0
        assert fetched["created"] == created["created"]

    async def test_create_with_explicit_id(self, sqlite_db):
        await db_client.create_record(collection="Users", data={"Name": "Alice"}, record_id="alice")

        with pytest.raises(db_client.DatabaseError, match="already exists"):
            await db_client.create_record(collection="Users", data={"Name": "Alice"}, record_id="alice")

    async def test_get_missing_raises_not_found(self, sqlite_db):
        with pytest.raises(db_client.RecordNotFoundError):
            await db_client.get_record(collection=COLLECTION, record_id="missing")

    async def test_set_record_replaces_all_fields(self, sqlite_db):
        created = await db_client.create_record(
            collection=COLLECTION,
            data={"Name": "Dishes", "completedBy": "Alice"},
        )

        updated = await db_client.set_record(collection=COLLECTION, record_id=created["id"], data={"Name": "Trash"})

        assert updated["Name"] == "Trash"
        assert "completedBy" not in updated

    async def test_set_missing_raises_not_found(self, sqlite_db):
        with pytest.raises(db_client.RecordNotFoundError):
            await db_client.set_record(collection=COLLECTION, record_id="missing", data={"Name": "x"})

    async def test_update_record_merges(self, sqlite_db):
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "Dishes", "votes": 1})

        updated = await db_client.update_record(collection=COLLECTION, record_id=created["id"], data={"votes": 2})

        assert updated["Name"] == "Dishes"
        assert updated["votes"] == 2

    async def test_delete_record(self, sqlite_db):
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "Dishes"})

        await db_client.delete_record(collection=COLLECTION, record_id=created["id"])

        with pytest.raises(db_client.RecordNotFoundError):
            await db_client.get_record(collection=COLLECTION, record_id=created["id"])

    async def test_collections_are_isolated(self, sqlite_db):
        await db_client.create_record(collection="chores/group/111111", data={"Name": "A"})
        await db_client.create_record(collection="chores/group/222222", data={"Name": "B"})

        records = await db_client.get_full_list(collection="chores/group/111111")

        assert [r["Name"] for r in records] == ["A"]

    async def test_filtered_full_list(self, sqlite_db):
        for name, series in [("A", "s1"), ("B", "s2"), ("C", "s1")]:
            await db_client.create_record(collection=COLLECTION, data={"Name": name, "seriesId": series})

        records = await db_client.get_full_list(collection=COLLECTION, filter_query='seriesId = "s1"', sort="Name")

        assert [r["Name"] for r in records] == ["A", "C"]

    async def test_list_records_paginates(self, sqlite_db):
        for i in range(5):
            await db_client.create_record(collection=COLLECTION, data={"Name": f"chore-{i}"})

        page = await db_client.list_records(collection=COLLECTION, page=2, per_page=2, sort="Name")

        assert [r["Name"] for r in page] == ["chore-2", "chore-3"]


@pytest.mark.unit
class TestTransactions:
    async def test_run_transaction_applies_update(self, sqlite_db):
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "Dishes", "votes": 0})

        result = await db_client.run_transaction(
            collection=COLLECTION,
            record_id=created["id"],
            update_fn=lambda doc: {**doc, "votes": doc["votes"] + 1},
        )

        assert result["votes"] == 1

    async def test_run_transaction_none_leaves_document(self, sqlite_db):
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "Dishes", "votes": 3})

        result = await db_client.run_transaction(collection=COLLECTION, record_id=created["id"], update_fn=lambda _: None)

        assert result["votes"] == 3
        assert result["updated"] == created["updated"]

    async def test_concurrent_increments_are_not_lost(self, sqlite_db):
        """Test concurrent read-modify-write transactions serialize."""
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "Dishes", "votes": 0})

        async def increment() -> None:
            await db_client.run_transaction(
                collection=COLLECTION,
                record_id=created["id"],
                update_fn=lambda doc: {**doc, "votes": doc["votes"] + 1},
            )

        await asyncio.gather(*(increment() for _ in range(10)))

        record = await db_client.get_record(collection=COLLECTION, record_id=created["id"])
        assert record["votes"] == 10

    async def test_failed_update_rolls_back(self, sqlite_db):
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "Dishes", "votes": 0})

        def explode(_doc):
            raise ValueError("boom")

        with pytest.raises(db_client.DatabaseError):
            await db_client.run_transaction(collection=COLLECTION, record_id=created["id"], update_fn=explode)

        record = await db_client.get_record(collection=COLLECTION, record_id=created["id"])
        assert record["votes"] == 0

    async def test_batch_delete(self, sqlite_db):
        ids = [(await db_client.create_record(collection=COLLECTION, data={"Name": str(i)}))["id"] for i in range(3)]

        deleted = await db_client.batch_delete_records(collection=COLLECTION, record_ids=ids[:2])

        remaining = await db_client.get_full_list(collection=COLLECTION)
        assert deleted == 2
        assert [r["id"] for r in remaining] == [ids[2]]

    async def test_batch_delete_empty(self, sqlite_db):
        assert await db_client.batch_delete_records(collection=COLLECTION, record_ids=[]) == 0


@pytest.mark.unit
class TestListeners:
    async def test_initial_snapshot_and_updates(self, sqlite_db):
        snapshots: list[list[str]] = []

        def on_change(records):
            snapshots.append([r["Name"] for r in records])

        await db_client.create_record(collection=COLLECTION, data={"Name": "A"})
        registration = await db_client.add_listener(collection=COLLECTION, callback=on_change)
        await db_client.create_record(collection=COLLECTION, data={"Name": "B"})

        assert snapshots == [["A"], ["A", "B"]]
        registration.remove()

    async def test_removed_listener_stops_receiving(self, sqlite_db):
        snapshots = []

        async def on_change(records):
            snapshots.append(len(records))

        registration = await db_client.add_listener(collection=COLLECTION, callback=on_change)
        registration.remove()
        await db_client.create_record(collection=COLLECTION, data={"Name": "A"})

        assert snapshots == [0]
        assert registration.active is False

    async def test_failing_listener_does_not_fail_write(self, sqlite_db):
        calls = []

        def on_change(records):
            calls.append(len(records))
            if len(records) > 0:
                raise RuntimeError("subscriber broke")

        await db_client.add_listener(collection=COLLECTION, callback=on_change)
        created = await db_client.create_record(collection=COLLECTION, data={"Name": "A"})

        assert created["Name"] == "A"
        assert calls == [0, 1]

    async def test_other_collections_do_not_notify(self, sqlite_db):
        calls = []
        await db_client.add_listener(collection=COLLECTION, callback=lambda records: calls.append(len(records)))

        await db_client.create_record(collection="chores/group/654321", data={"Name": "A"})

        assert calls == [0]
