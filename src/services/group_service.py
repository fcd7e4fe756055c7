"""Group directory: members, group keys and display lookups."""

import logging
import random
import re
from collections.abc import Iterable

from src.core import db_client
from src.core.config import Constants
from src.core.errors import ErrorKind, OperationResult, failed_result
from src.core.logging import span
from src.core.schema import USERS_COLLECTION
from src.domain.member import Member, ProfileColor
from src.services.subscription import SnapshotHandler, SnapshotSubscription


logger = logging.getLogger(__name__)

_GROUP_CODE_PATTERN = re.compile(r"^\d{6}$")


def _members_filter(group_key: str | int) -> str:
    key = db_client.sanitize_param(group_key)
    return f'(groupKey = "{key}" || GroupKey = "{key}")'


def parse_group_code(code: str) -> OperationResult[int]:
    """Validate a group code typed by a user.

    Args:
        code: The code as entered (surrounding whitespace is ignored)

    Returns:
        The numeric group key, or INVALID_INPUT unless the code is a 6-digit number
    """
    candidate = (code or "").strip()
    if not _GROUP_CODE_PATTERN.match(candidate):
        return OperationResult.failure(ErrorKind.INVALID_INPUT, "Group code must be a 6-digit number")

    value = int(candidate)
    if not Constants.GROUP_KEY_MIN <= value <= Constants.GROUP_KEY_MAX:
        return OperationResult.failure(ErrorKind.INVALID_INPUT, "Group code must be a 6-digit number")
    return OperationResult.success(value)


async def get_member(*, user_id: str) -> OperationResult[Member]:
    """Get a member profile by user id."""
    with span("group_service.get_member"):
        try:
            record = await db_client.get_record(collection=USERS_COLLECTION, record_id=user_id)
        except (db_client.DatabaseError, ValueError) as e:
            logger.warning("Failed to get member %s: %s", user_id, e)
            return failed_result(e, "get member")

        member = Member.from_record(record)
        if member is None:
            return OperationResult.failure(ErrorKind.INVALID_INPUT, f"Member record {user_id} is malformed")
        return OperationResult.success(member)


async def resolve_group_key(*, user_id: str) -> OperationResult[str]:
    """Resolve the group key (as a collection scope string) of a user.

    Returns:
        The group key, NOT_FOUND if the user has no profile or no group
    """
    with span("group_service.resolve_group_key"):
        result = await get_member(user_id=user_id)
        if not result.ok or result.value is None:
            return OperationResult.failure(result.error or ErrorKind.NOT_FOUND, result.message)

        scope = result.value.group_scope
        if scope is None:
            return OperationResult.failure(ErrorKind.NOT_FOUND, f"User {user_id} does not belong to a group")
        return OperationResult.success(scope)


async def list_members(*, group_key: str | int) -> OperationResult[list[Member]]:
    """List every member of a group, in registration order."""
    with span("group_service.list_members"):
        try:
            records = await db_client.get_full_list(
                collection=USERS_COLLECTION,
                filter_query=_members_filter(group_key),
            )
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to list members of group %s: %s", group_key, e)
            return failed_result(e, "list members")

        members = [member for member in map(Member.from_record, records) if member is not None]
        logger.debug("Listed %d members of group %s", len(members), group_key)
        return OperationResult.success(members)


async def count_members(*, group_key: str | int) -> OperationResult[int]:
    """Count the members of a group; a group with zero members does not exist."""
    result = await list_members(group_key=group_key)
    if not result.ok:
        return OperationResult.failure(result.error or ErrorKind.TRANSPORT_FAILURE, result.message)
    return OperationResult.success(len(result.value or []))


async def subscribe_members(
    *,
    group_key: str | int,
    on_change: SnapshotHandler | None = None,
) -> SnapshotSubscription[Member]:
    """Subscribe to the member list of a group.

    The current members are delivered before this returns, then again after every
    committed change to the Users collection. Release the handle with ``close()``.
    """
    with span("group_service.subscribe_members"):
        subscription: SnapshotSubscription[Member] = SnapshotSubscription(
            collection=USERS_COLLECTION,
            parse=Member.from_record,
            on_change=on_change,
            filter_query=_members_filter(group_key),
        )
        return await subscription.open()


async def _allocate_group_key() -> OperationResult[int]:
    """Pick a random 6-digit group key that no member uses yet."""
    for _ in range(Constants.GROUP_KEY_MAX_ATTEMPTS):
        candidate = random.randint(Constants.GROUP_KEY_MIN, Constants.GROUP_KEY_MAX)  # noqa: S311
        count = await count_members(group_key=candidate)
        if not count.ok:
            return OperationResult.failure(count.error or ErrorKind.TRANSPORT_FAILURE, count.message)
        if count.value == 0:
            return OperationResult.success(candidate)

    return OperationResult.failure(ErrorKind.WRITE_CONFLICT, "Could not allocate an unused group key")


async def register_member(
    *,
    user_id: str,
    name: str,
    email: str = "",
    group_name: str = "",
    group_key: str | int | None = None,
    color: ProfileColor | None = None,
) -> OperationResult[Member]:
    """Create or replace a member profile, founding a new group or joining an existing one.

    Args:
        user_id: Id asserted by the identity provider
        name: Display name
        email: Email address
        group_name: Household name, used when founding a new group
        group_key: Code of the group to join; None founds a new group
        color: Profile color; a random one when omitted

    Returns:
        The stored member. INVALID_INPUT for a malformed code, NOT_FOUND when no
        member carries the given code.
    """
    with span("group_service.register_member"):
        if not name.strip():
            return OperationResult.failure(ErrorKind.INVALID_INPUT, "Name cannot be empty")

        if group_key is not None:
            parsed = parse_group_code(str(group_key))
            if not parsed.ok or parsed.value is None:
                return OperationResult.failure(ErrorKind.INVALID_INPUT, parsed.message)

            existing = await list_members(group_key=parsed.value)
            if not existing.ok:
                return OperationResult.failure(existing.error or ErrorKind.TRANSPORT_FAILURE, existing.message)
            if not existing.value:
                logger.warning("Join attempt with unknown group code %s by %s", parsed.value, user_id)
                return OperationResult.failure(ErrorKind.NOT_FOUND, f"No household uses code {parsed.value}")

            key = parsed.value
            group_name = existing.value[0].group_name
        else:
            allocated = await _allocate_group_key()
            if not allocated.ok or allocated.value is None:
                return OperationResult.failure(allocated.error or ErrorKind.TRANSPORT_FAILURE, allocated.message)
            key = allocated.value

        member = Member(
            id=user_id,
            name=name.strip(),
            email=email,
            group_key=key,
            group_name=group_name,
            color=color or random.choice(list(ProfileColor)),  # noqa: S311
        )

        try:
            try:
                await db_client.get_record(collection=USERS_COLLECTION, record_id=user_id)
            except db_client.RecordNotFoundError:
                await db_client.create_record(
                    collection=USERS_COLLECTION,
                    data=member.to_document(),
                    record_id=user_id,
                )
            else:
                await db_client.set_record(collection=USERS_COLLECTION, record_id=user_id, data=member.to_document())
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to register member %s: %s", user_id, e)
            return failed_result(e, "register member")

        logger.info("Registered member %s in group %s", user_id, key)
        return OperationResult.success(member)


async def update_member_name(*, user_id: str, name: str) -> OperationResult[Member]:
    """Change a member's display name."""
    with span("group_service.update_member_name"):
        name = name.strip()
        if not name:
            return OperationResult.failure(ErrorKind.INVALID_INPUT, "Name cannot be empty")

        try:
            record = await db_client.update_record(collection=USERS_COLLECTION, record_id=user_id, data={"Name": name})
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to rename member %s: %s", user_id, e)
            return failed_result(e, "update member name")

        member = Member.from_record(record)
        if member is None:
            return OperationResult.failure(ErrorKind.INVALID_INPUT, f"Member record {user_id} is malformed")
        logger.info("Renamed member %s", user_id)
        return OperationResult.success(member)


async def update_member_color(*, user_id: str, color: str) -> OperationResult[Member]:
    """Change a member's profile color; only the known palette is accepted."""
    with span("group_service.update_member_color"):
        if color not in ProfileColor.__members__.values():
            return OperationResult.failure(ErrorKind.INVALID_INPUT, f"Unknown color: {color}")

        try:
            record = await db_client.update_record(collection=USERS_COLLECTION, record_id=user_id, data={"color": color})
        except (db_client.DatabaseError, ValueError) as e:
            logger.error("Failed to recolor member %s: %s", user_id, e)
            return failed_result(e, "update member color")

        member = Member.from_record(record)
        if member is None:
            return OperationResult.failure(ErrorKind.INVALID_INPUT, f"Member record {user_id} is malformed")
        return OperationResult.success(member)


def name_for_user(members: Iterable[Member], user_id: str) -> str:
    """Display name of a user, or a placeholder for users outside the list."""
    for member in members:
        if member.id == user_id:
            return member.name
    return Constants.UNKNOWN_MEMBER_NAME


def color_for_user(members: Iterable[Member], user_id: str) -> str:
    """Profile color of a user, or the neutral color for users outside the list."""
    for member in members:
        if member.id == user_id:
            return member.color.value
    return Constants.UNASSIGNED_COLOR
