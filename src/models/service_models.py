"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting derived
statistics into typed objects.
"""

from pydantic import BaseModel


class MemberEquity(BaseModel):
    """Completion statistics of one member over active chores."""

    user_id: str
    assigned: int
    completed: int
    completion_rate: float


class HouseEquity(BaseModel):
    """Completion statistics of the whole household over active chores."""

    total: int
    completed: int
    completion_rate: float


class EquityReport(BaseModel):
    """Member and household completion rates, overall and for recent windows."""

    member: MemberEquity
    house: HouseEquity
    member_week_rate: float
    member_month_rate: float
    house_week_rate: float
    house_month_rate: float


class MemberScore(BaseModel):
    """Completion credits of one member from the completion log."""

    user_id: str
    name: str
    color: str
    score: int
    num_chores: int


class RankedScore(BaseModel):
    """Leaderboard row; tied scores share a rank."""

    rank: int
    is_tied: bool
    member: MemberScore
