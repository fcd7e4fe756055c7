"""Domain models and DTOs."""

from src.domain.chore import Chore, ChoreView, PriorityLevel, RepetitionTime
from src.domain.create_models import ChoreCreate, MemberCreate
from src.domain.log import ChoreLog
from src.domain.member import Member, ProfileColor
from src.domain.update_models import MemberUpdate, VoteCast


__all__ = [
    "Chore",
    "ChoreCreate",
    "ChoreLog",
    "ChoreView",
    "Member",
    "MemberCreate",
    "MemberUpdate",
    "PriorityLevel",
    "ProfileColor",
    "RepetitionTime",
    "VoteCast",
]
