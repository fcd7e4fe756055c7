"""Pydantic models for input used to create records."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.config import Constants
from src.domain.chore import PriorityLevel, RepetitionTime
from src.domain.member import MAX_NAME_LENGTH, ProfileColor


class ChoreCreate(BaseModel):
    """Form input for a new chore."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Chore name")
    date: str = Field(..., description="Calendar day, yyyy-MM-dd")
    description: str = Field(default="", description="Free-text description")
    priority_level: PriorityLevel = Field(default=PriorityLevel.LOW, description="Chore priority")
    repetition_time: RepetitionTime = Field(default=RepetitionTime.NONE, description="Repetition period")
    time_length: int = Field(default=Constants.DEFAULT_NEW_CHORE_MINUTES, ge=0, description="Duration in minutes")
    assigned_users: list[str] = Field(default_factory=list, description="Assigned member ids")
    checklist: bool = Field(default=False)
    monthly_repeat_by_date: bool = Field(default=False)
    monthly_repeat_by_week: bool = Field(default=False)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Chore names must not be blank."""
        v = v.strip()
        if not v:
            msg = "Chore name cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("date")
    @classmethod
    def validate_date_format(cls, v: str) -> str:
        """Dates are stored as fixed-width yyyy-MM-dd strings."""
        if not re.fullmatch(Constants.DATE_PATTERN, v):
            msg = "Date must be in yyyy-MM-dd format (e.g., 2025-01-31)"
            raise ValueError(msg)
        return v


class MemberCreate(BaseModel):
    """Input for registering a member, either founding a new group or joining one by code."""

    name: str = Field(..., description="Display name of the member")
    email: str = Field(default="", description="Email address")
    group_name: str = Field(default="", description="Household name (used when founding a group)")
    group_code: str | None = Field(default=None, description="6-digit code of the group to join")
    color: ProfileColor | None = Field(default=None, description="Profile color (random when omitted)")

    @field_validator("name")
    @classmethod
    def validate_name_usable(cls, v: str) -> str:
        """Validate name is usable - allows Unicode letters, spaces, hyphens, apostrophes."""
        v = v.strip()

        if not v:
            msg = "Name cannot be empty"
            raise ValueError(msg)

        if len(v) > MAX_NAME_LENGTH:
            msg = f"Name too long (max {MAX_NAME_LENGTH} characters)"
            raise ValueError(msg)

        if not re.match(r"^[\w\s'-]+$", v, re.UNICODE):
            msg = "Name can only contain letters, spaces, hyphens, and apostrophes"
            raise ValueError(msg)

        return v
