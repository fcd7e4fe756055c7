"""Completion service: toggling chore completion and the append-only completion log."""

import logging
from datetime import UTC, datetime

from src.core import db_client
from src.core.errors import ErrorKind, OperationResult, failed_result
from src.core.logging import span
from src.core.schema import chore_logs_collection
from src.domain.chore import Chore
from src.domain.log import ChoreLog
from src.services import chore_service, group_service


logger = logging.getLogger(__name__)


async def _append_log(*, chore: Chore, group_key: str, user_ids: tuple[str, ...]) -> None:
    entry = ChoreLog(
        timestamp=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        chore_id=chore.id,
        chore_name=chore.name,
        user_ids=user_ids,
    )
    await db_client.create_record(collection=chore_logs_collection(group_key), data=entry.to_document())


async def toggle_completion(*, chore_id: str, group_key: str, user_id: str) -> OperationResult[Chore]:
    """Flip a chore between completed and not completed.

    Completing records who completed it and when, and appends one completion log
    entry crediting that member. Un-completing overwrites the chore without its
    completion fields; earlier log entries are kept.

    Args:
        chore_id: Chore to toggle
        group_key: Group scope
        user_id: Acting member

    Returns:
        The chore after the toggle
    """
    with span("completion_service.toggle_completion"):
        current = await chore_service.get_chore(chore_id=chore_id, group_key=group_key)
        if not current.ok or current.value is None:
            return current
        chore = current.value

        if chore.completed:
            reopened = chore.model_copy(update={"completed": False, "completed_by": None, "completed_at": None})
            result = await chore_service.edit_chore(chore_id=chore_id, chore=reopened, group_key=group_key)
            if result.ok:
                logger.info("Chore %s marked incomplete by %s", chore_id, user_id)
            return result

        member = await group_service.get_member(user_id=user_id)
        if member.ok and member.value is not None:
            completed_by = member.value.name
        elif member.error == ErrorKind.NOT_FOUND:
            completed_by = user_id
        else:
            return OperationResult.failure(member.error or ErrorKind.TRANSPORT_FAILURE, member.message)

        done = chore.model_copy(
            update={
                "completed": True,
                "completed_by": completed_by,
                "completed_at": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            }
        )
        result = await chore_service.edit_chore(chore_id=chore_id, chore=done, group_key=group_key)
        if not result.ok:
            return result

        try:
            await _append_log(chore=done, group_key=group_key, user_ids=(user_id,))
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Chore %s completed but log entry failed: %s", chore_id, e)
            return OperationResult.success(result.value, f"Completion saved but log entry failed: {e}")

        logger.info("Chore %s completed by %s", chore_id, completed_by)
        return result


async def list_logs(*, group_key: str) -> OperationResult[list[ChoreLog]]:
    """Every completion log entry of a group, oldest first."""
    with span("completion_service.list_logs"):
        try:
            records = await db_client.get_full_list(collection=chore_logs_collection(group_key))
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to list completion logs of group %s: %s", group_key, e)
            return failed_result(e, "list completion logs")

        logs = []
        for record in records:
            try:
                logs.append(ChoreLog.model_validate(record))
            except ValueError as e:
                logger.debug("Dropping malformed log entry %s: %s", record.get("id"), e)
        return OperationResult.success(logs)
