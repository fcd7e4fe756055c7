"""Member domain models and enums."""

import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.core.config import Constants


logger = logging.getLogger(__name__)

# Constants for validation
MAX_NAME_LENGTH = 50


class ProfileColor(StrEnum):
    """Display color a member picks for their profile."""

    RED = "Red"
    BLUE = "Blue"
    GREEN = "Green"
    YELLOW = "Yellow"
    ORANGE = "Orange"
    PURPLE = "Purple"
    PINK = "Pink"
    CYAN = "Cyan"
    MINT = "Mint"
    TEAL = "Teal"


class Member(BaseModel):
    """A household member profile stored in the Users collection."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", exclude=True, description="User id from the identity provider")
    name: str = Field(default="", alias="Name", description="Display name")
    email: str = Field(default="", alias="email")
    group_key: int | None = Field(default=None, alias="groupKey", description="6-digit household key")
    group_name: str = Field(default="", alias="groupName")
    color: ProfileColor = Field(default=ProfileColor.GREEN, alias="color")

    @field_validator("color", mode="before")
    @classmethod
    def known_color(cls, v: Any) -> ProfileColor:
        """Colors this version does not know read as the default color."""
        if isinstance(v, str) and v in ProfileColor.__members__.values():
            return ProfileColor(v)
        return ProfileColor(Constants.DEFAULT_MEMBER_COLOR)

    @field_validator("group_key", mode="before")
    @classmethod
    def numeric_group_key(cls, v: Any) -> int | None:
        if v is None or v == "":
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @property
    def group_scope(self) -> str | None:
        """Group key as used in collection paths, or None when the member has no group."""
        return str(self.group_key) if self.group_key is not None else None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Member | None":
        """Build a member from a Users document, accepting the legacy ``GroupKey`` field."""
        data = {key: value for key, value in record.items() if value is not None}
        data["id"] = str(record.get("id", ""))
        if "groupKey" not in data and "GroupKey" in data:
            data["groupKey"] = data.pop("GroupKey")
        if not isinstance(data.get("Name", ""), str):
            data.pop("Name")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.warning("Dropping malformed member document", extra={"record_id": record.get("id"), "error": str(e)})
            return None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
