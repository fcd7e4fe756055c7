"""Chore domain models and enums."""

import logging
import datetime as dt
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.core.config import Constants


logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class PriorityLevel(StrEnum):
    """Chore priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RepetitionTime(StrEnum):
    """Repetition period of a chore series."""

    NONE = "None"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"


class ChoreView(StrEnum):
    """Which household chores a list shows."""

    HOUSE = "house"
    MINE = "mine"
    ROOMMATES = "roommates"


PRIORITY_RANK = {
    PriorityLevel.HIGH: 0,
    PriorityLevel.MEDIUM: 1,
    PriorityLevel.LOW: 2,
}


def format_chore_date(day: dt.date) -> str:
    """Format a calendar day the way chore documents store it (yyyy-MM-dd)."""
    return day.strftime(Constants.DATE_FORMAT)


def parse_chore_date(value: str) -> dt.date | None:
    """Parse a stored chore date, returning None if it is not a yyyy-MM-dd day."""
    try:
        return dt.datetime.strptime(value, Constants.DATE_FORMAT).date()
    except (TypeError, ValueError):
        return None


def weekday_label(day: dt.date) -> str:
    """Full English weekday name, independent of the process locale."""
    return WEEKDAY_NAMES[day.weekday()]


class Chore(BaseModel):
    """A household chore as stored in the group's chore collection.

    Python attribute names are snake_case; aliases are the persisted field names,
    which must stay exactly as written for compatibility with existing documents.
    Instances are immutable: derive changed copies with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", exclude=True, description="Document id (not persisted inside the document)")
    name: str = Field(..., alias="Name", min_length=1)
    date: str = Field(default="", alias="Date", description="Calendar day, yyyy-MM-dd")
    day: str = Field(default="", alias="Day", description="Weekday label of the date")
    description: str = Field(default="", alias="Description")
    priority_level: PriorityLevel = Field(default=PriorityLevel.LOW, alias="PriorityLevel")
    repetition_time: str = Field(default=RepetitionTime.NONE, alias="RepetitionTime")
    time_length: int = Field(default=0, alias="TimeLength", description="Duration in minutes")
    assigned_users: tuple[str, ...] = Field(default=(), alias="assignedUsers")
    completed: bool = Field(default=False, alias="completed")
    completed_by: str | None = Field(default=None, alias="completedBy")
    completed_at: str | None = Field(default=None, alias="completedAt")
    votes: int = Field(default=0, alias="votes")
    voters: tuple[str, ...] = Field(default=(), alias="voters")
    proposal: bool = Field(default=False, alias="proposal")
    created_by: str = Field(default="", alias="createdBy")
    series_id: str = Field(default="", alias="seriesId")
    checklist: bool = Field(default=False, alias="Checklist")
    monthly_repeat_by_date: bool = Field(default=False, alias="MonthlyRepeatByDate")
    monthly_repeat_by_week: bool = Field(default=False, alias="MonthlyRepeatByWeek")

    @field_validator("priority_level", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> PriorityLevel:
        """Unknown or missing priorities read as low."""
        if isinstance(v, str) and v.lower() in PriorityLevel.__members__.values():
            return PriorityLevel(v.lower())
        return PriorityLevel.LOW

    @field_validator("repetition_time", mode="before")
    @classmethod
    def normalize_repetition(cls, v: Any) -> str:
        if v is None or v == "":
            return RepetitionTime.NONE
        return str(v)

    @field_validator("voters", mode="before")
    @classmethod
    def unique_voters(cls, v: Any) -> tuple[str, ...]:
        """A user id appears at most once among the voters."""
        if not isinstance(v, list | tuple):
            return ()
        return tuple(dict.fromkeys(str(voter) for voter in v))

    @field_validator("assigned_users", mode="before")
    @classmethod
    def coerce_assignees(cls, v: Any) -> tuple[str, ...]:
        if isinstance(v, str):
            return (v,) if v else ()
        if not isinstance(v, list | tuple):
            return ()
        return tuple(str(user_id) for user_id in v)

    @field_validator("monthly_repeat_by_week", "monthly_repeat_by_date", "checklist", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        """Older clients stored some flags as strings ("" meaning off)."""
        if isinstance(v, str):
            return v.strip().lower() not in ("", "false", "0", "no")
        return bool(v)

    @field_validator("time_length", mode="before")
    @classmethod
    def coerce_time_length(cls, v: Any) -> int:
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0

    @property
    def is_repeating(self) -> bool:
        return self.repetition_time != RepetitionTime.NONE

    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANK[self.priority_level]

    @property
    def calendar_date(self) -> dt.date | None:
        return parse_chore_date(self.date)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Chore | None":
        """Build a chore from a stored document.

        Documents without a string ``Name`` are not chores and yield None; every other
        field falls back to its default when missing or malformed.
        """
        name = record.get("Name")
        if not isinstance(name, str) or not name:
            logger.debug("Dropping chore document without name", extra={"record_id": record.get("id")})
            return None

        data = {key: value for key, value in record.items() if value is not None}
        data["id"] = str(record.get("id", ""))
        for field_name in ("Date", "Day", "Description", "createdBy", "seriesId", "completedBy", "completedAt"):
            if not isinstance(data.get(field_name, ""), str):
                data.pop(field_name)
        for field_name in ("votes",):
            if not isinstance(data.get(field_name, 0), int):
                data.pop(field_name)
        for field_name in ("completed", "proposal"):
            if not isinstance(data.get(field_name, False), bool):
                data.pop(field_name)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.warning("Dropping malformed chore document", extra={"record_id": record.get("id"), "error": str(e)})
            return None

    def to_document(self) -> dict[str, Any]:
        """Serialize to the persisted field names; completion fields only when set."""
        document = self.model_dump(by_alias=True, mode="json")
        if self.completed_by is None:
            document.pop("completedBy")
        if self.completed_at is None:
            document.pop("completedAt")
        return document
