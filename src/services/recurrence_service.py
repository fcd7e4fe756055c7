"""Recurrence service: expand repeating chores into dated occurrences and cascade deletes."""

import logging
import re
from datetime import date

from dateutil.relativedelta import relativedelta

from src.core import db_client
from src.core.config import Constants
from src.core.errors import ErrorKind, OperationResult, failed_result
from src.core.logging import log_with_group_context, span
from src.core.schema import chores_collection
from src.domain.chore import Chore, RepetitionTime, format_chore_date, weekday_label


logger = logging.getLogger(__name__)

_STEPS: dict[str, relativedelta] = {
    RepetitionTime.DAILY: relativedelta(days=1),
    RepetitionTime.WEEKLY: relativedelta(weeks=1),
    RepetitionTime.MONTHLY: relativedelta(months=1),
    RepetitionTime.YEARLY: relativedelta(years=1),
}


def occurrence_dates(start: date, repetition_time: str) -> list[date]:
    """Dates of the occurrences following ``start`` within the recurrence horizon.

    Every occurrence is ``start + n * step`` for n >= 1, so a series that starts on
    the 31st stays on the last day of shorter months instead of drifting. The start
    itself is excluded; the end of the horizon (one year after start) is included.

    Args:
        start: Date of the template occurrence
        repetition_time: One of the repetition periods

    Returns:
        Occurrence dates in ascending order; empty for "None" or unknown periods
    """
    step = _STEPS.get(repetition_time)
    if step is None:
        return []

    horizon = start + relativedelta(years=Constants.RECURRENCE_HORIZON_YEARS)
    dates = []
    n = 1
    while (current := start + step * n) <= horizon:
        dates.append(current)
        n += 1
    return dates


async def generate_occurrences(*, chore: Chore, group_key: str, series_id: str) -> OperationResult[list[Chore]]:
    """Create one chore document per future occurrence of a repeating chore.

    Occurrences copy the descriptive fields of the template and start uncompleted,
    without votes, approved, and tagged with ``series_id``. One document is
    written per occurrence.

    Args:
        chore: Template chore (its own document already exists)
        group_key: Group scope
        series_id: Series id shared by every occurrence

    Returns:
        The created occurrences. Non-repeating chores and unparseable dates are
        no-ops reporting an empty list.
    """
    with span("recurrence_service.generate_occurrences"):
        if not chore.repetition_time or chore.repetition_time == RepetitionTime.NONE:
            return OperationResult.success([])

        start = chore.calendar_date
        if start is None:
            logger.warning("Skipping recurrence for '%s': unparseable date %r", chore.name, chore.date)
            return OperationResult.success([], message="Unparseable chore date")

        if chore.repetition_time not in _STEPS:
            logger.warning("Skipping recurrence for '%s': unknown period %r", chore.name, chore.repetition_time)
            return OperationResult.success([], message="Unknown repetition period")

        collection = chores_collection(group_key)
        template = chore.model_copy(
            update={
                "id": "",
                "completed": False,
                "completed_by": None,
                "completed_at": None,
                "votes": 0,
                "voters": (),
                "proposal": False,
                "series_id": series_id,
            }
        )

        created: list[Chore] = []
        for occurrence_date in occurrence_dates(start, chore.repetition_time):
            occurrence = template.model_copy(
                update={"date": format_chore_date(occurrence_date), "day": weekday_label(occurrence_date)}
            )
            try:
                record = await db_client.create_record(collection=collection, data=occurrence.to_document())
            except (db_client.DatabaseError, ValueError) as e:
                logger.error(
                    "Failed to create occurrence %s of series %s after %d created: %s",
                    occurrence.date,
                    series_id,
                    len(created),
                    e,
                )
                return failed_result(e, "generate occurrences")
            created.append(occurrence.model_copy(update={"id": record["id"]}))

        logger.info("Generated %d occurrences of '%s' (series: %s)", len(created), chore.name, series_id)
        return OperationResult.success(created)


async def delete_future_occurrences(*, series_id: str, from_date: str, group_key: str) -> OperationResult[int]:
    """Delete every occurrence of a series dated on or after ``from_date``.

    Dates are compared as plain ``yyyy-MM-dd`` strings, which order like the days
    they name because the format is fixed-width and zero-padded. All matching
    documents are deleted in one atomic batch.

    Args:
        series_id: Series to cut; empty is a no-op
        from_date: First day to delete, yyyy-MM-dd
        group_key: Group scope

    Returns:
        Number of deleted documents; INVALID_INPUT when ``from_date`` is malformed
    """
    with span("recurrence_service.delete_future_occurrences"):
        if not series_id:
            return OperationResult.success(0)

        if not re.fullmatch(Constants.DATE_PATTERN, from_date):
            return OperationResult.failure(ErrorKind.INVALID_INPUT, f"Date must be in yyyy-MM-dd format: {from_date}")

        collection = chores_collection(group_key)
        try:
            records = await db_client.get_full_list(
                collection=collection,
                filter_query=f'seriesId = "{db_client.sanitize_param(series_id)}"',
            )
            doomed = [
                record["id"]
                for record in records
                if isinstance(record.get("Date"), str) and record["Date"] >= from_date
            ]
            deleted = await db_client.batch_delete_records(collection=collection, record_ids=doomed)
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to delete occurrences of series %s from %s: %s", series_id, from_date, e)
            return failed_result(e, "delete future occurrences")

        log_with_group_context(
            logger,
            "info",
            "Deleted future occurrences",
            group_key=group_key,
            series_id=series_id,
            from_date=from_date,
            deleted=deleted,
        )
        return OperationResult.success(deleted)
