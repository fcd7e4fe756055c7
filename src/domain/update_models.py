"""Update models for request payloads that change existing records."""

from pydantic import BaseModel


class MemberUpdate(BaseModel):
    """Update payload for a member's display name and profile color."""

    name: str | None = None
    color: str | None = None


class VoteCast(BaseModel):
    """A member's vote on a proposed chore."""

    approve: bool
