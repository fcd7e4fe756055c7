from src.services import (
    chore_service,
    completion_service,
    equity_service,
    group_service,
    proposal_service,
    recurrence_service,
)


__all__ = [
    "chore_service",
    "completion_service",
    "equity_service",
    "group_service",
    "proposal_service",
    "recurrence_service",
]
