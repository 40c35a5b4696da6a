"""
Group Calls API - Endpoints for room group calls

Implements:
- Pending invitations of the current user
- Call initiation (or joining the live call of the room)
- Call details
- Decline, join and leave
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
import logging

from groupcall.api.deps import get_current_user_id, get_lifecycle_manager
from groupcall.services.group_call import (
    GroupCallLifecycleManager,
    GroupCallError,
    InvalidRequestError,
    NotFoundError,
    ForbiddenError,
    CallInternalError,
)
from groupcall.schemas.group_call import (
    InitiateCallRequest,
    InitiateCallResponse,
    CallResponse,
    PendingCallsResponse,
    DeclineCallResponse,
    LeaveCallResponse,
    to_call_response,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: GroupCallError) -> HTTPException:
    if isinstance(e, InvalidRequestError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ForbiddenError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, CallInternalError):
        logger.error(f"[GroupCalls] Internal error: {e}")
        return HTTPException(status_code=500, detail="Could not complete the group call operation")
    logger.error(f"[GroupCalls] Unexpected group call error: {e}")
    return HTTPException(status_code=500, detail=str(e))


@router.get("/group-calls/pending", response_model=PendingCallsResponse)
async def get_pending_calls(
    user_id: str = Depends(get_current_user_id),
    lifecycle: GroupCallLifecycleManager = Depends(get_lifecycle_manager),
):
    """Ringing calls the current user has not answered yet."""
    try:
        calls = await lifecycle.get_pending(user_id)
    except GroupCallError as e:
        raise _http_error(e)
    return PendingCallsResponse(calls=[to_call_response(c) for c in calls])


@router.post("/group-calls/initiate", response_model=InitiateCallResponse)
async def initiate_group_call(
    req: InitiateCallRequest,
    user_id: str = Depends(get_current_user_id),
    lifecycle: GroupCallLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Start a call in a room.

    Returns 201 with the new call, or 200 with the room's live call if one
    is already running.
    """
    try:
        result = await lifecycle.initiate(user_id, req.room_id, req.call_type)
    except GroupCallError as e:
        raise _http_error(e)

    body = InitiateCallResponse(
        message="Group call started" if result.created else "Group call already in progress",
        created=result.created,
        call=to_call_response(result.call),
    )
    return JSONResponse(status_code=201 if result.created else 200, content=body.model_dump())


@router.get("/group-calls/{call_id}", response_model=CallResponse)
async def get_group_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: GroupCallLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        details = await lifecycle.get_call(user_id, call_id)
    except GroupCallError as e:
        raise _http_error(e)
    return CallResponse(message="ok", call=to_call_response(details))


@router.post("/group-calls/{call_id}/join", response_model=CallResponse)
async def join_group_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: GroupCallLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        details = await lifecycle.join(user_id, call_id)
    except GroupCallError as e:
        raise _http_error(e)
    return CallResponse(message="Joined group call", call=to_call_response(details))


@router.post("/group-calls/{call_id}/decline", response_model=DeclineCallResponse)
async def decline_group_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: GroupCallLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        session = await lifecycle.decline(user_id, call_id)
    except GroupCallError as e:
        raise _http_error(e)
    return DeclineCallResponse(message="Group call declined", call_id=session.id)


@router.post("/group-calls/{call_id}/leave", response_model=LeaveCallResponse)
async def leave_group_call(
    call_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: GroupCallLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        call_ended = await lifecycle.leave(user_id, call_id)
    except GroupCallError as e:
        raise _http_error(e)
    return LeaveCallResponse(
        message="Call ended" if call_ended else "Left group call",
        call_id=call_id,
        call_ended=call_ended,
    )
