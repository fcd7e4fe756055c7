"""HTTP and WebSocket routes for household chores."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, WebSocket, WebSocketDisconnect, status

from src.core.config import Constants
from src.core.errors import ErrorKind, OperationResult
from src.domain.chore import Chore, ChoreView
from src.domain.create_models import ChoreCreate, MemberCreate
from src.domain.member import Member
from src.domain.update_models import MemberUpdate, VoteCast
from src.models.service_models import EquityReport, RankedScore
from src.services import (
    chore_service,
    completion_service,
    equity_service,
    group_service,
    proposal_service,
    recurrence_service,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups/{group_key}", tags=["chores"])
members_router = APIRouter(prefix="/members", tags=["members"])

_ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.WRITE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.TRANSPORT_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

UserId = Annotated[str, Header(alias=Constants.USER_ID_HEADER)]


def _unwrap(result: OperationResult[Any]) -> Any:
    """Return the value of a successful result or raise the matching HTTP error."""
    if result.ok:
        return result.value
    status_code = _ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise HTTPException(status_code=status_code, detail=result.message)


def group_scope(group_key: str) -> str:
    """Validate the group key path parameter."""
    parsed = group_service.parse_group_code(group_key)
    if not parsed.ok:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=parsed.message)
    return str(parsed.value)


GroupKey = Annotated[str, Depends(group_scope)]


def chore_payload(chore: Chore) -> dict[str, Any]:
    """Chore as sent to clients: the stored document plus its id."""
    return {"id": chore.id, **chore.to_document()}


def member_payload(member: Member) -> dict[str, Any]:
    return {"id": member.id, **member.to_document()}


@router.get("/chores")
async def list_chores(
    group: GroupKey,
    user_id: UserId,
    view: ChoreView = ChoreView.HOUSE,
    include_proposals: bool = False,
) -> list[dict[str, Any]]:
    """List the group's chores in house order, optionally restricted to a view."""
    chores = _unwrap(await chore_service.list_chores(group_key=group))
    if not include_proposals:
        chores = chore_service.active_chores(chores)
    chores = chore_service.filter_chores(chores, view=view, user_id=user_id)
    return [chore_payload(chore) for chore in chore_service.sort_chores(chores)]


@router.post("/chores", status_code=status.HTTP_201_CREATED)
async def create_chore(group: GroupKey, user_id: UserId, data: ChoreCreate) -> dict[str, Any]:
    chore = _unwrap(await chore_service.new_chore(data=data, group_key=group, created_by=user_id))
    return chore_payload(chore)


@router.put("/chores/{chore_id}")
async def edit_chore(group: GroupKey, chore_id: str, chore: Chore) -> dict[str, Any]:
    """Overwrite a chore with the given document."""
    edited = _unwrap(await chore_service.edit_chore(chore_id=chore_id, chore=chore, group_key=group))
    return chore_payload(edited)


@router.delete("/chores/{chore_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chore(group: GroupKey, chore_id: str) -> Response:
    _unwrap(await chore_service.delete_chore(chore_id=chore_id, group_key=group))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/chores/{chore_id}/votes")
async def cast_vote(group: GroupKey, chore_id: str, user_id: UserId, vote: VoteCast) -> dict[str, Any]:
    chore = _unwrap(
        await proposal_service.cast_vote(chore_id=chore_id, group_key=group, user_id=user_id, approve=vote.approve)
    )
    return chore_payload(chore)


@router.post("/chores/{chore_id}/approve")
async def approve_chore(group: GroupKey, chore_id: str) -> dict[str, Any]:
    chore = _unwrap(await proposal_service.approve_chore(chore_id=chore_id, group_key=group))
    return chore_payload(chore)


@router.post("/chores/{chore_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_chore(group: GroupKey, chore_id: str) -> Response:
    _unwrap(await proposal_service.reject_chore(chore_id=chore_id, group_key=group))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/chores/{chore_id}/toggle")
async def toggle_completion(group: GroupKey, chore_id: str, user_id: UserId) -> dict[str, Any]:
    chore = _unwrap(
        await completion_service.toggle_completion(chore_id=chore_id, group_key=group, user_id=user_id)
    )
    return chore_payload(chore)


@router.delete("/series/{series_id}")
async def delete_future_occurrences(
    group: GroupKey,
    series_id: str,
    from_date: Annotated[str, Query(description="First day to delete, yyyy-MM-dd")],
) -> dict[str, int]:
    """Delete every occurrence of a series dated on or after ``from_date``."""
    deleted = _unwrap(
        await recurrence_service.delete_future_occurrences(
            series_id=series_id,
            from_date=from_date,
            group_key=group,
        )
    )
    return {"deleted": deleted}


@router.get("/proposals")
async def list_proposals(group: GroupKey) -> list[dict[str, Any]]:
    proposals = _unwrap(await proposal_service.list_proposals(group_key=group))
    return [chore_payload(chore) for chore in proposals]


@router.get("/members")
async def list_members(group: GroupKey) -> list[dict[str, Any]]:
    members = _unwrap(await group_service.list_members(group_key=group))
    return [member_payload(member) for member in members]


@router.get("/equity")
async def get_equity(group: GroupKey, user_id: UserId) -> EquityReport:
    """Completion rates of the acting member and the household."""
    chores = _unwrap(await chore_service.list_chores(group_key=group))
    return equity_service.equity_report(chores, user_id)


@router.get("/leaderboard")
async def get_leaderboard(group: GroupKey) -> list[RankedScore]:
    scores = _unwrap(await equity_service.member_scores(group_key=group))
    return equity_service.rank_scores(scores)


@router.websocket("/chores/live")
async def chores_live(websocket: WebSocket, group_key: str) -> None:
    """Stream the group's sorted chore list: once on connect, then after every change."""
    parsed = group_service.parse_group_code(group_key)
    if not parsed.ok:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def push(chores: tuple[Chore, ...]) -> None:
        await websocket.send_json([chore_payload(chore) for chore in chore_service.sort_chores(chores)])

    subscription = await chore_service.subscribe_chores(group_key=str(parsed.value), on_change=push)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Live chore stream closed", extra={"group_key": group_key})
    finally:
        subscription.close()


@members_router.post("", status_code=status.HTTP_201_CREATED)
async def register_member(user_id: UserId, data: MemberCreate) -> dict[str, Any]:
    """Register the acting user, founding a new group or joining one by code."""
    member = _unwrap(
        await group_service.register_member(
            user_id=user_id,
            name=data.name,
            email=data.email,
            group_name=data.group_name,
            group_key=data.group_code,
            color=data.color,
        )
    )
    return member_payload(member)


@members_router.patch("/me")
async def update_member(user_id: UserId, data: MemberUpdate) -> dict[str, Any]:
    """Change the acting member's display name and/or profile color."""
    member: Member | None = None
    if data.name is not None:
        member = _unwrap(await group_service.update_member_name(user_id=user_id, name=data.name))
    if data.color is not None:
        member = _unwrap(await group_service.update_member_color(user_id=user_id, color=data.color))
    if member is None:
        member = _unwrap(await group_service.get_member(user_id=user_id))
    return member_payload(member)
