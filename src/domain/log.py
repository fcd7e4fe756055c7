"""Completion log domain model for equity scoring."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChoreLog(BaseModel):
    """Append-only record of one chore completion.

    Log entries are written once when a chore is marked complete and never edited
    or deleted, even if the chore is later un-completed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", exclude=True, description="Unique log ID from database")
    timestamp: str = Field(..., description="When the chore was completed (ISO 8601, UTC)")
    chore_id: str = Field(..., alias="choreId", description="ID of the completed chore")
    chore_name: str = Field(default="", alias="choreName", description="Chore name at completion time")
    user_ids: tuple[str, ...] = Field(default=(), alias="userIds", description="Members credited with the completion")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
