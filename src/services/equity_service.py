"""Equity service for member and household completion statistics.

This module provides functions for:
- Completion rates per member and for the household, over the active chores of a snapshot
- Windowed progress (chores dated within the last 7 or 30 days)
- Leaderboard scores from the completion log, ranked with ties

Key Concepts:
- Active chores: chores that are not awaiting approval. Proposals never count.
- Rate: completed / total, and exactly 0 when there is nothing to count.
- Score: number of completion log entries crediting a member. Un-completing a
  chore does not remove its log entry, so scores only grow.
"""

import logging
from collections import Counter
from collections.abc import Iterable
from datetime import date, timedelta

from src.core.config import Constants
from src.core.errors import ErrorKind, OperationResult
from src.core.logging import span
from src.domain.chore import Chore
from src.models.service_models import EquityReport, HouseEquity, MemberEquity, MemberScore, RankedScore
from src.services import chore_service, completion_service, group_service


logger = logging.getLogger(__name__)


def _rate(completed: int, total: int) -> float:
    return completed / total if total else 0.0


def member_equity(chores: Iterable[Chore], user_id: str) -> MemberEquity:
    """Share of the member's assigned active chores that are completed."""
    assigned = [chore for chore in chore_service.active_chores(chores) if user_id in chore.assigned_users]
    completed = sum(1 for chore in assigned if chore.completed)
    return MemberEquity(
        user_id=user_id,
        assigned=len(assigned),
        completed=completed,
        completion_rate=_rate(completed, len(assigned)),
    )


def house_equity(chores: Iterable[Chore]) -> HouseEquity:
    """Share of all active chores that are completed."""
    active = chore_service.active_chores(chores)
    completed = sum(1 for chore in active if chore.completed)
    return HouseEquity(total=len(active), completed=completed, completion_rate=_rate(completed, len(active)))


def completion_rate(
    chores: Iterable[Chore],
    user_id: str | None = None,
    window_days: int | None = None,
    today: date | None = None,
) -> float:
    """Completion rate over active chores, optionally for one member and a recent window.

    Args:
        chores: Chore snapshot
        user_id: Only count chores assigned to this member
        window_days: Only count chores dated from ``today - window_days`` through ``today``
        today: Reference day (defaults to the current date)

    Returns:
        Completed share in [0, 1]; 0 when no chore qualifies
    """
    selected = chore_service.active_chores(chores)
    if user_id is not None:
        selected = [chore for chore in selected if user_id in chore.assigned_users]
    if window_days is not None:
        end = today or date.today()
        start = end - timedelta(days=window_days)
        selected = [chore for chore in selected if chore.calendar_date and start <= chore.calendar_date <= end]

    completed = sum(1 for chore in selected if chore.completed)
    return _rate(completed, len(selected))


def equity_report(chores: Iterable[Chore], user_id: str, today: date | None = None) -> EquityReport:
    """Overall and windowed equity for one member and their household."""
    snapshot = list(chores)
    return EquityReport(
        member=member_equity(snapshot, user_id),
        house=house_equity(snapshot),
        member_week_rate=completion_rate(snapshot, user_id, Constants.EQUITY_WEEK_DAYS, today),
        member_month_rate=completion_rate(snapshot, user_id, Constants.EQUITY_MONTH_DAYS, today),
        house_week_rate=completion_rate(snapshot, None, Constants.EQUITY_WEEK_DAYS, today),
        house_month_rate=completion_rate(snapshot, None, Constants.EQUITY_MONTH_DAYS, today),
    )


async def member_scores(*, group_key: str) -> OperationResult[list[MemberScore]]:
    """Completion credits of every member, highest score first."""
    with span("equity_service.member_scores"):
        members = await group_service.list_members(group_key=group_key)
        if not members.ok:
            return OperationResult.failure(members.error or ErrorKind.TRANSPORT_FAILURE, members.message)

        logs = await completion_service.list_logs(group_key=group_key)
        if not logs.ok:
            return OperationResult.failure(logs.error or ErrorKind.TRANSPORT_FAILURE, logs.message)

        chores = await chore_service.list_chores(group_key=group_key)
        if not chores.ok:
            return OperationResult.failure(chores.error or ErrorKind.TRANSPORT_FAILURE, chores.message)

        credits = Counter(user_id for entry in logs.value or [] for user_id in entry.user_ids)
        active = chore_service.active_chores(chores.value or [])
        scores = [
            MemberScore(
                user_id=member.id,
                name=member.name,
                color=member.color.value,
                score=credits[member.id],
                num_chores=sum(1 for chore in active if member.id in chore.assigned_users),
            )
            for member in members.value or []
        ]
        scores.sort(key=lambda s: s.score, reverse=True)
        logger.debug("Scored %d members of group %s", len(scores), group_key)
        return OperationResult.success(scores)


def rank_scores(scores: list[MemberScore]) -> list[RankedScore]:
    """Assign competition ranks: equal scores share a rank and the next rank skips.

    Scores 10, 10, 5 rank 1, 1, 3 with the first two flagged as tied.
    """
    ordered = sorted(scores, key=lambda s: s.score, reverse=True)
    counts = Counter(s.score for s in ordered)
    ranked: list[RankedScore] = []
    for index, score in enumerate(ordered):
        if index > 0 and ordered[index - 1].score == score.score:
            rank = ranked[-1].rank
        else:
            rank = index + 1
        ranked.append(RankedScore(rank=rank, is_tied=counts[score.score] > 1, member=score))
    return ranked
