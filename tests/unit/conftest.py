"""Pytest configuration and fixtures for unit tests."""

from typing import Any

import pytest

from src.core.schema import USERS_COLLECTION, chores_collection
from tests.unit.mocks import InMemoryDBClient


GROUP_KEY = "123456"


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches src.core.db_client functions to use InMemoryDBClient."""
    for name in (
        "create_record",
        "get_record",
        "set_record",
        "update_record",
        "delete_record",
        "batch_delete_records",
        "run_transaction",
        "list_records",
        "get_full_list",
        "add_listener",
    ):
        monkeypatch.setattr(f"src.core.db_client.{name}", getattr(in_memory_db, name))

    return in_memory_db


@pytest.fixture
def group_key() -> str:
    return GROUP_KEY


@pytest.fixture
def member_factory(patched_db: InMemoryDBClient):
    """Factory for member documents in the Users collection.

    Usage:
        alice = await member_factory("alice", name="Alice", color="Blue")
    """

    async def _create_member(user_id: str, **kwargs: Any) -> dict[str, Any]:
        data = {
            "Name": kwargs.pop("name", user_id.title()),
            "email": kwargs.pop("email", f"{user_id}@test.local"),
            "groupKey": kwargs.pop("group_key", int(GROUP_KEY)),
            "groupName": kwargs.pop("group_name", "Test House"),
            "color": kwargs.pop("color", "Blue"),
            **kwargs,
        }
        return await patched_db.create_record(collection=USERS_COLLECTION, data=data, record_id=user_id)

    return _create_member


@pytest.fixture
def chore_factory(patched_db: InMemoryDBClient):
    """Factory for chore documents in the test group's collection.

    Usage:
        chore = await chore_factory(Name="Dishes", Date="2025-01-01", proposal=True)
    """

    async def _create_chore(**kwargs: Any) -> dict[str, Any]:
        data = {
            "Name": "Dishes",
            "Date": "2025-01-01",
            "Day": "Wednesday",
            "Description": "",
            "PriorityLevel": "low",
            "RepetitionTime": "None",
            "TimeLength": 30,
            "assignedUsers": [],
            "completed": False,
            "votes": 0,
            "voters": [],
            "proposal": False,
            "createdBy": "alice",
            "seriesId": "",
            "Checklist": False,
            "MonthlyRepeatByDate": False,
            "MonthlyRepeatByWeek": False,
            **kwargs,
        }
        return await patched_db.create_record(collection=chores_collection(GROUP_KEY), data=data)

    return _create_chore
