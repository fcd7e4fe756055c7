"""Chore service for group-scoped CRUD, live subscriptions and derived views."""

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import date

from src.core import db_client
from src.core.config import Constants
from src.core.errors import ErrorKind, OperationResult, failed_result
from src.core.logging import span
from src.core.schema import chores_collection
from src.domain.chore import Chore, ChoreView, RepetitionTime, format_chore_date, parse_chore_date, weekday_label
from src.domain.create_models import ChoreCreate
from src.domain.member import Member
from src.services import group_service, recurrence_service
from src.services.subscription import SnapshotHandler, SnapshotSubscription


logger = logging.getLogger(__name__)


async def create_chore(*, chore: Chore, group_key: str) -> OperationResult[Chore]:
    """Persist a new chore document in the group's chore collection.

    Args:
        chore: Chore to store (its ``id`` is ignored; the store assigns one)
        group_key: Group scope

    Returns:
        The stored chore with its new id. Store failures are logged and returned
        as a failed result, never raised.
    """
    with span("chore_service.create_chore"):
        try:
            record = await db_client.create_record(collection=chores_collection(group_key), data=chore.to_document())
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to create chore '%s' in group %s: %s", chore.name, group_key, e)
            return failed_result(e, "create chore")

        logger.info("Created chore: %s (group: %s)", chore.name, group_key)
        return OperationResult.success(chore.model_copy(update={"id": record["id"]}))


async def new_chore(*, data: ChoreCreate, group_key: str, created_by: str) -> OperationResult[Chore]:
    """Create a chore from form input.

    The chore needs household approval when the group has more than one member.
    Repeating chores get a fresh series id; when the chore is approved straight
    away its future occurrences are generated too.

    Args:
        data: Validated form input
        group_key: Group scope
        created_by: User id of the creator

    Returns:
        The stored chore (the template occurrence of its series when repeating)
    """
    with span("chore_service.new_chore"):
        member_count = await group_service.count_members(group_key=group_key)
        if not member_count.ok:
            return OperationResult.failure(member_count.error or ErrorKind.TRANSPORT_FAILURE, member_count.message)

        start = parse_chore_date(data.date)
        if start is None:
            return OperationResult.failure(ErrorKind.INVALID_INPUT, f"Invalid chore date: {data.date}")

        needs_approval = (member_count.value or 0) > 1
        repeating = data.repetition_time != RepetitionTime.NONE
        chore = Chore(
            name=data.name,
            date=format_chore_date(start),
            day=weekday_label(start),
            description=data.description,
            priority_level=data.priority_level,
            repetition_time=data.repetition_time,
            time_length=data.time_length,
            assigned_users=tuple(data.assigned_users),
            votes=0,
            voters=(),
            proposal=needs_approval,
            created_by=created_by,
            series_id=uuid.uuid4().hex if repeating else "",
            checklist=data.checklist,
            monthly_repeat_by_date=data.monthly_repeat_by_date,
            monthly_repeat_by_week=data.monthly_repeat_by_week,
        )

        created = await create_chore(chore=chore, group_key=group_key)
        if not created.ok or created.value is None:
            return created

        if needs_approval:
            logger.info("Chore '%s' awaits household approval (group: %s)", chore.name, group_key)
        elif repeating:
            generated = await recurrence_service.generate_occurrences(
                chore=created.value,
                group_key=group_key,
                series_id=created.value.series_id,
            )
            if not generated.ok:
                logger.warning("Chore '%s' created but occurrences failed: %s", chore.name, generated.message)

        return created


async def edit_chore(*, chore_id: str, chore: Chore, group_key: str) -> OperationResult[Chore]:
    """Overwrite every field of an existing chore.

    Returns:
        The chore as stored; ``.ok`` tells whether the write succeeded
    """
    with span("chore_service.edit_chore"):
        try:
            await db_client.set_record(
                collection=chores_collection(group_key),
                record_id=chore_id,
                data=chore.to_document(),
            )
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to edit chore %s in group %s: %s", chore_id, group_key, e)
            return failed_result(e, "edit chore")

        logger.info("Edited chore %s (group: %s)", chore_id, group_key)
        return OperationResult.success(chore.model_copy(update={"id": chore_id}))


async def delete_chore(*, chore_id: str, group_key: str) -> OperationResult[None]:
    """Delete a single chore. Other occurrences of its series are left alone."""
    with span("chore_service.delete_chore"):
        try:
            await db_client.delete_record(collection=chores_collection(group_key), record_id=chore_id)
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to delete chore %s in group %s: %s", chore_id, group_key, e)
            return failed_result(e, "delete chore")

        logger.info("Deleted chore %s (group: %s)", chore_id, group_key)
        return OperationResult.success()


async def get_chore(*, chore_id: str, group_key: str) -> OperationResult[Chore]:
    """Get a chore by id."""
    with span("chore_service.get_chore"):
        try:
            record = await db_client.get_record(collection=chores_collection(group_key), record_id=chore_id)
        except (db_client.DatabaseError, ValueError) as e:
            logger.warning("Failed to get chore %s in group %s: %s", chore_id, group_key, e)
            return failed_result(e, "get chore")

        chore = Chore.from_record(record)
        if chore is None:
            return OperationResult.failure(ErrorKind.NOT_FOUND, f"Chore {chore_id} has no name")
        return OperationResult.success(chore)


async def list_chores(*, group_key: str) -> OperationResult[list[Chore]]:
    """List every chore of a group. Documents without a name are left out."""
    with span("chore_service.list_chores"):
        try:
            records = await db_client.get_full_list(collection=chores_collection(group_key))
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to list chores of group %s: %s", group_key, e)
            return failed_result(e, "list chores")

        chores = [chore for chore in map(Chore.from_record, records) if chore is not None]
        logger.debug("Retrieved %d chores for group %s", len(chores), group_key)
        return OperationResult.success(chores)


class ChoreSubscription(SnapshotSubscription[Chore]):
    """Live view of a group's chores with the derived lists recomputed per snapshot."""

    @property
    def sorted_chores(self) -> list[Chore]:
        return sort_chores(self.snapshot)

    @property
    def active_chores(self) -> list[Chore]:
        return active_chores(self.snapshot)

    @property
    def proposals(self) -> list[Chore]:
        return pending_proposals(self.snapshot)


async def subscribe_chores(*, group_key: str, on_change: SnapshotHandler | None = None) -> ChoreSubscription:
    """Subscribe to a group's chores.

    ``on_change`` receives the complete current chore tuple once on registration and
    again after every committed change in the group. Release the handle with ``close()``.
    """
    with span("chore_service.subscribe_chores"):
        subscription = ChoreSubscription(
            collection=chores_collection(group_key),
            parse=Chore.from_record,
            on_change=on_change,
        )
        await subscription.open()
        return subscription


def sort_chores(chores: Iterable[Chore], today: date | None = None) -> list[Chore]:
    """Order chores: incomplete first, then by date, then by priority (high first).

    Chores whose date cannot be parsed sort as if they were due today.
    """
    fallback = today or date.today()

    def sort_key(chore: Chore) -> tuple[bool, date, int]:
        return (chore.completed, chore.calendar_date or fallback, chore.priority_rank)

    return sorted(chores, key=sort_key)


def active_chores(chores: Iterable[Chore]) -> list[Chore]:
    """Chores that are not awaiting approval, in sort order."""
    return sort_chores(chore for chore in chores if not chore.proposal)


def pending_proposals(chores: Iterable[Chore]) -> list[Chore]:
    """Chores awaiting household approval, in sort order."""
    return sort_chores(chore for chore in chores if chore.proposal)


def filter_chores(chores: Iterable[Chore], *, view: ChoreView, user_id: str) -> list[Chore]:
    """Restrict chores to one of the household views.

    ``house`` keeps everything, ``mine`` keeps chores assigned to the user and
    ``roommates`` keeps assigned chores the user is not on.
    """
    if view == ChoreView.MINE:
        return [chore for chore in chores if user_id in chore.assigned_users]
    if view == ChoreView.ROOMMATES:
        return [chore for chore in chores if chore.assigned_users and user_id not in chore.assigned_users]
    return list(chores)


def chores_for_date(chores: Iterable[Chore], day: date) -> list[Chore]:
    return [chore for chore in chores if chore.calendar_date == day]


def assignee_colors_for_date(chores: Iterable[Chore], day: date, members: Sequence[Member]) -> list[str]:
    """Distinct profile colors of the members assigned to chores on a day.

    Returns the neutral color alone when the day has chores but none of them is
    assigned to a known member, and an empty list for a day without chores.
    """
    day_chores = chores_for_date(chores, day)
    known = {member.id: member for member in members}
    colors: list[str] = []
    for chore in day_chores:
        for user_id in chore.assigned_users:
            member = known.get(user_id)
            if member is not None and member.color.value not in colors:
                colors.append(member.color.value)

    if not colors and day_chores:
        colors.append(Constants.UNASSIGNED_COLOR)
    return colors
