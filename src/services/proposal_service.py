"""Proposal service: household votes and approval of proposed chores."""

import logging
import uuid
from typing import Any

from src.core import db_client
from src.core.config import Constants
from src.core.errors import ErrorKind, OperationResult, failed_result
from src.core.logging import log_with_group_context, span
from src.core.schema import chores_collection
from src.domain.chore import Chore
from src.services import chore_service, recurrence_service


logger = logging.getLogger(__name__)


def _apply_vote(document: dict[str, Any], *, user_id: str, approve: bool) -> dict[str, Any] | None:
    """Compute a chore document after one member's vote, or None if the member already voted."""
    voters = list(document.get("voters") or [])
    if user_id in voters:
        return None

    votes = document.get("votes")
    votes = votes if isinstance(votes, int) else 0
    if approve:
        votes += 1

    updated = {**document, "voters": [*voters, user_id], "votes": votes}
    if votes > Constants.VOTE_QUORUM_THRESHOLD:
        updated["proposal"] = False
    return updated


async def _generate_for_series(*, chore: Chore, group_key: str) -> None:
    if not chore.is_repeating:
        return
    generated = await recurrence_service.generate_occurrences(
        chore=chore,
        group_key=group_key,
        series_id=chore.series_id,
    )
    if not generated.ok:
        logger.warning("Approved chore %s but occurrences failed: %s", chore.id, generated.message)


async def cast_vote(*, chore_id: str, group_key: str, user_id: str, approve: bool) -> OperationResult[Chore]:
    """Record one member's vote on a proposed chore.

    The voter check, the vote increment and the quorum check run in one atomic
    transaction on the chore document, so concurrent votes are neither lost nor
    double counted. A second vote from the same member changes nothing. Once the
    approving votes exceed the quorum threshold the proposal closes; a repeating
    chore closed this way gets its occurrences generated.

    Args:
        chore_id: Proposed chore
        group_key: Group scope
        user_id: Voting member
        approve: True for an approving vote

    Returns:
        The chore after the vote
    """
    with span("proposal_service.cast_vote"):
        before: dict[str, Any] = {}

        def update(document: dict[str, Any]) -> dict[str, Any] | None:
            before.clear()
            before.update(document)
            return _apply_vote(document, user_id=user_id, approve=approve)

        try:
            record = await db_client.run_transaction(
                collection=chores_collection(group_key),
                record_id=chore_id,
                update_fn=update,
            )
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to record vote of %s on chore %s: %s", user_id, chore_id, e)
            return failed_result(e, "cast vote")

        chore = Chore.from_record(record)
        if chore is None:
            return OperationResult.failure(ErrorKind.NOT_FOUND, f"Chore {chore_id} has no name")

        closed_now = bool(before.get("proposal")) and not chore.proposal
        log_with_group_context(
            logger,
            "info",
            "Vote recorded",
            group_key=group_key,
            chore_id=chore_id,
            user_id=user_id,
            votes=chore.votes,
            proposal=chore.proposal,
        )
        if closed_now:
            logger.info("Chore %s reached quorum and is now active", chore_id)
            await _generate_for_series(chore=chore, group_key=group_key)

        return OperationResult.success(chore)


async def approve_chore(*, chore_id: str, group_key: str) -> OperationResult[Chore]:
    """Approve a proposed chore directly, without waiting for votes.

    A repeating chore gets a fresh series id and its occurrences are generated.
    Chores that are no longer proposals are returned unchanged.
    """
    with span("proposal_service.approve_chore"):
        current = await chore_service.get_chore(chore_id=chore_id, group_key=group_key)
        if not current.ok or current.value is None:
            return current
        if not current.value.proposal:
            return OperationResult.success(current.value)

        update: dict[str, Any] = {"proposal": False}
        if current.value.is_repeating:
            update["series_id"] = uuid.uuid4().hex
        approved = current.value.model_copy(update=update)

        result = await chore_service.edit_chore(chore_id=chore_id, chore=approved, group_key=group_key)
        if not result.ok or result.value is None:
            return result

        logger.info("Approved chore %s (group: %s)", chore_id, group_key)
        await _generate_for_series(chore=result.value, group_key=group_key)
        return result


async def reject_chore(*, chore_id: str, group_key: str) -> OperationResult[None]:
    """Reject a proposed chore by deleting it."""
    with span("proposal_service.reject_chore"):
        result = await chore_service.delete_chore(chore_id=chore_id, group_key=group_key)
        if result.ok:
            logger.info("Rejected chore %s (group: %s)", chore_id, group_key)
        return result


async def list_proposals(*, group_key: str) -> OperationResult[list[Chore]]:
    """Chores of a group still awaiting approval, in sort order."""
    with span("proposal_service.list_proposals"):
        result = await chore_service.list_chores(group_key=group_key)
        if not result.ok:
            return result
        return OperationResult.success(chore_service.pending_proposals(result.value or []))
