"""Unit tests for chore_service module."""

from datetime import date

import pytest

from src.core.db_client import DatabaseError, TransactionConflictError
from src.core.errors import ErrorKind
from src.core.schema import chores_collection
from src.domain.chore import Chore, ChoreView, PriorityLevel, RepetitionTime
from src.domain.create_models import ChoreCreate
from src.domain.member import Member, ProfileColor
from src.services import chore_service


GROUP = "123456"


@pytest.mark.unit
class TestNewChore:
    async def test_single_member_group_is_auto_approved(self, patched_db, member_factory):
        await member_factory("alice")

        result = await chore_service.new_chore(
            data=ChoreCreate(name="Dishes", date="2025-01-01"),
            group_key=GROUP,
            created_by="alice",
        )

        assert result.ok
        assert result.value.proposal is False
        assert result.value.day == "Wednesday"
        assert result.value.votes == 0
        assert result.value.created_by == "alice"
        assert result.value.series_id == ""

    async def test_multi_member_group_needs_approval(self, patched_db, member_factory):
        await member_factory("alice")
        await member_factory("bob")

        result = await chore_service.new_chore(
            data=ChoreCreate(name="Dishes", date="2025-01-01"),
            group_key=GROUP,
            created_by="alice",
        )

        assert result.value.proposal is True

    async def test_repeating_chore_gets_series_id(self, patched_db, member_factory):
        await member_factory("alice")
        await member_factory("bob")

        result = await chore_service.new_chore(
            data=ChoreCreate(name="Trash", date="2025-01-01", repetition_time=RepetitionTime.WEEKLY),
            group_key=GROUP,
            created_by="alice",
        )

        assert result.value.series_id != ""
        # Proposals are not expanded until approved
        assert len(await patched_db.get_full_list(collection=chores_collection(GROUP))) == 1

    async def test_auto_approved_repeating_chore_generates_series(self, patched_db, member_factory):
        await member_factory("alice")

        result = await chore_service.new_chore(
            data=ChoreCreate(name="Trash", date="2025-01-01", repetition_time=RepetitionTime.MONTHLY),
            group_key=GROUP,
            created_by="alice",
        )

        records = await patched_db.get_full_list(collection=chores_collection(GROUP))
        assert len(records) == 13
        assert {r["seriesId"] for r in records} == {result.value.series_id}

    async def test_stored_document_uses_persisted_names(self, patched_db, member_factory):
        await member_factory("alice")

        result = await chore_service.new_chore(
            data=ChoreCreate(name="Dishes", date="2025-01-01", priority_level=PriorityLevel.HIGH, assigned_users=["alice"]),
            group_key=GROUP,
            created_by="alice",
        )

        stored = await patched_db.get_record(collection=chores_collection(GROUP), record_id=result.value.id)
        assert stored["Name"] == "Dishes"
        assert stored["PriorityLevel"] == "high"
        assert stored["TimeLength"] == 30
        assert stored["assignedUsers"] == ["alice"]
        assert stored["proposal"] is False


@pytest.mark.unit
class TestCrud:
    async def test_create_and_get(self, patched_db):
        created = await chore_service.create_chore(chore=Chore(name="Dishes", date="2025-01-01"), group_key=GROUP)

        fetched = await chore_service.get_chore(chore_id=created.value.id, group_key=GROUP)

        assert fetched.ok
        assert fetched.value == created.value

    async def test_get_missing(self, patched_db):
        result = await chore_service.get_chore(chore_id="missing", group_key=GROUP)

        assert not result.ok
        assert result.error == ErrorKind.NOT_FOUND

    async def test_edit_overwrites(self, patched_db, chore_factory):
        record = await chore_factory(Name="Dishes", completedBy="Alice", completed=True)

        edited = Chore(name="Dishes v2", date="2025-02-01")
        result = await chore_service.edit_chore(chore_id=record["id"], chore=edited, group_key=GROUP)

        stored = await patched_db.get_record(collection=chores_collection(GROUP), record_id=record["id"])
        assert result.ok
        assert stored["Name"] == "Dishes v2"
        assert stored["completed"] is False
        assert "completedBy" not in stored

    async def test_edit_missing_reports_failure(self, patched_db):
        result = await chore_service.edit_chore(chore_id="missing", chore=Chore(name="x"), group_key=GROUP)

        assert result.ok is False
        assert result.error == ErrorKind.NOT_FOUND

    async def test_delete_does_not_cascade(self, patched_db, chore_factory):
        first = await chore_factory(seriesId="s1", Date="2025-01-01")
        await chore_factory(seriesId="s1", Date="2025-01-08")

        result = await chore_service.delete_chore(chore_id=first["id"], group_key=GROUP)

        remaining = await patched_db.get_full_list(collection=chores_collection(GROUP))
        assert result.ok
        assert len(remaining) == 1

    async def test_list_drops_documents_without_name(self, patched_db, chore_factory):
        await chore_factory(Name="Dishes")
        await patched_db.create_record(collection=chores_collection(GROUP), data={"Date": "2025-01-01"})

        result = await chore_service.list_chores(group_key=GROUP)

        assert [c.name for c in result.value] == ["Dishes"]

    async def test_list_keeps_documents_with_non_list_assignees(self, patched_db, chore_factory):
        await chore_factory(Name="Dishes")
        await patched_db.create_record(collection=chores_collection(GROUP), data={"Name": "Bad", "assignedUsers": 7})

        result = await chore_service.list_chores(group_key=GROUP)

        assert result.ok
        assert sorted(c.name for c in result.value) == ["Bad", "Dishes"]
        assert {c.assigned_users for c in result.value} == {()}

    async def test_create_reports_transport_failure(self, patched_db, monkeypatch):
        async def broken(**_kwargs):
            raise DatabaseError("Failed to create record in chores/group/123456: disk I/O error")

        monkeypatch.setattr("src.core.db_client.create_record", broken)

        result = await chore_service.create_chore(chore=Chore(name="Dishes"), group_key=GROUP)

        assert result.ok is False
        assert result.error == ErrorKind.TRANSPORT_FAILURE

    async def test_create_classifies_database_error(self, patched_db, monkeypatch):
        async def locked(**_kwargs):
            raise TransactionConflictError("database is locked")

        monkeypatch.setattr("src.core.db_client.create_record", locked)

        result = await chore_service.create_chore(chore=Chore(name="Dishes"), group_key=GROUP)

        assert result.ok is False
        assert result.error == ErrorKind.WRITE_CONFLICT


@pytest.mark.unit
class TestSubscribe:
    async def test_delivers_full_snapshots(self, patched_db, chore_factory):
        await chore_factory(Name="Dishes")
        snapshots = []

        async def on_change(chores):
            snapshots.append(tuple(c.name for c in chores))

        subscription = await chore_service.subscribe_chores(group_key=GROUP, on_change=on_change)
        await chore_factory(Name="Trash")

        assert snapshots == [("Dishes",), ("Dishes", "Trash")]
        assert isinstance(subscription.snapshot, tuple)
        subscription.close()

    async def test_close_stops_delivery(self, patched_db, chore_factory):
        snapshots = []
        subscription = await chore_service.subscribe_chores(group_key=GROUP, on_change=snapshots.append)

        subscription.close()
        subscription.close()
        await chore_factory(Name="Dishes")

        assert snapshots == [()]
        assert patched_db.listener_count(chores_collection(GROUP)) == 0

    async def test_derived_views(self, patched_db, chore_factory):
        await chore_factory(Name="Later", Date="2025-02-01")
        await chore_factory(Name="Proposal", proposal=True)
        await chore_factory(Name="Sooner", Date="2025-01-01")

        subscription = await chore_service.subscribe_chores(group_key=GROUP)

        assert [c.name for c in subscription.active_chores] == ["Sooner", "Later"]
        assert [c.name for c in subscription.proposals] == ["Proposal"]
        assert len(subscription.sorted_chores) == 3
        subscription.close()


def _chore(name: str, chore_date: str, priority: str = "low", completed: bool = False, **kwargs) -> Chore:
    return Chore(name=name, date=chore_date, priority_level=priority, completed=completed, **kwargs)


@pytest.mark.unit
class TestSortChores:
    def test_incomplete_first_then_date_then_priority(self):
        chores = [
            _chore("done-early", "2025-01-01", "high", completed=True),
            _chore("low-jan2", "2025-01-02", "low"),
            _chore("high-jan2", "2025-01-02", "high"),
            _chore("medium-jan2", "2025-01-02", "medium"),
            _chore("low-jan1", "2025-01-01", "low"),
        ]

        ordered = chore_service.sort_chores(chores)

        assert [c.name for c in ordered] == ["low-jan1", "high-jan2", "medium-jan2", "low-jan2", "done-early"]

    def test_unparseable_date_sorts_as_today(self):
        chores = [
            _chore("tomorrow", "2025-06-02"),
            _chore("garbled", "someday"),
            _chore("yesterday", "2025-05-31"),
        ]

        ordered = chore_service.sort_chores(chores, today=date(2025, 6, 1))

        assert [c.name for c in ordered] == ["yesterday", "garbled", "tomorrow"]


@pytest.mark.unit
class TestViews:
    chores = [
        _chore("mine", "2025-01-01", assigned_users=("alice",)),
        _chore("shared", "2025-01-01", assigned_users=("alice", "bob")),
        _chore("bobs", "2025-01-02", assigned_users=("bob",)),
        _chore("nobody", "2025-01-03"),
        _chore("proposed", "2025-01-01", proposal=True),
    ]

    def test_active_and_pending(self):
        assert [c.name for c in chore_service.active_chores(self.chores)] == [
            "mine",
            "shared",
            "bobs",
            "nobody",
        ]
        assert [c.name for c in chore_service.pending_proposals(self.chores)] == ["proposed"]

    def test_filter_house(self):
        assert len(chore_service.filter_chores(self.chores, view=ChoreView.HOUSE, user_id="alice")) == 5

    def test_filter_mine(self):
        result = chore_service.filter_chores(self.chores, view=ChoreView.MINE, user_id="alice")

        assert [c.name for c in result] == ["mine", "shared"]

    def test_filter_roommates_excludes_unassigned(self):
        result = chore_service.filter_chores(self.chores, view=ChoreView.ROOMMATES, user_id="alice")

        assert [c.name for c in result] == ["bobs"]

    def test_chores_for_date(self):
        result = chore_service.chores_for_date(self.chores, date(2025, 1, 1))

        assert [c.name for c in result] == ["mine", "shared", "proposed"]

    def test_assignee_colors_for_date(self):
        members = [
            Member(id="alice", name="Alice", color=ProfileColor.RED),
            Member(id="bob", name="Bob", color=ProfileColor.BLUE),
        ]

        assert chore_service.assignee_colors_for_date(self.chores, date(2025, 1, 1), members) == ["Red", "Blue"]
        assert chore_service.assignee_colors_for_date(self.chores, date(2025, 1, 3), members) == ["Gray"]
        assert chore_service.assignee_colors_for_date(self.chores, date(2025, 1, 9), members) == []
