"""
Queue call API endpoints.

Service channels call tickets; passive displays read a snapshot or
follow the server-sent event stream of their activity.
"""

import json
import uuid
from datetime import datetime
from typing import Optional

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from checkin.auth.dependencies import verify_admin_access
from checkin.dependencies import get_broadcaster, get_call_dispatcher
from checkin.services.broadcaster import ChannelBroadcaster
from checkin.services.call_dispatcher import CallDispatcher, CallResult

router = APIRouter()

STREAM_KEEPALIVE_SECONDS = 15


# =============================================================================
# Schemas
# =============================================================================

class ChannelCreate(BaseModel):
    channel_name: Optional[str] = None  # Defaults to "Channel <number>"
    serving_course: Optional[str] = None


class ChannelUpdate(BaseModel):
    channel_name: Optional[str] = None
    serving_course: Optional[str] = None


class ChannelResponse(BaseModel):
    id: uuid.UUID
    activity_id: uuid.UUID
    channel_number: int
    channel_name: str
    serving_course: Optional[str] = None
    state: str
    current_queue_number: Optional[int] = None
    current_display_queue_number: Optional[str] = None
    current_student_name: Optional[str] = None
    ping_id: int
    last_called_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InsertRequest(BaseModel):
    display_queue_number: str


class CallResponse(BaseModel):
    event: str
    channel: ChannelResponse
    registration_id: Optional[uuid.UUID] = None
    notified: bool


class ResetCalledResponse(BaseModel):
    reset: int


def _call_response(result: CallResult) -> CallResponse:
    return CallResponse(
        event=result.event,
        channel=ChannelResponse.model_validate(result.channel),
        registration_id=result.registration.id if result.registration is not None else None,
        notified=result.notified,
    )


# =============================================================================
# Channel Endpoints
# =============================================================================

@router.get("/activities/{activity_id}/channels", response_model=list[ChannelResponse])
async def list_channels(
    activity_id: uuid.UUID,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
):
    return await dispatcher.list_channels(activity_id)


@router.post(
    "/activities/{activity_id}/channels",
    response_model=ChannelResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_channel(
    activity_id: uuid.UUID,
    data: ChannelCreate,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    _admin: None = Depends(verify_admin_access),
):
    return await dispatcher.create_channel(activity_id, data.channel_name, data.serving_course)


@router.patch("/channels/{channel_id}", response_model=ChannelResponse)
async def update_channel(
    channel_id: uuid.UUID,
    data: ChannelUpdate,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    _admin: None = Depends(verify_admin_access),
):
    """Rename a channel or switch the course it serves (null makes it idle)."""
    return await dispatcher.update_channel(channel_id, **data.model_dump(exclude_unset=True))


@router.delete("/channels/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_channel(
    channel_id: uuid.UUID,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    _admin: None = Depends(verify_admin_access),
):
    await dispatcher.delete_channel(channel_id)


# =============================================================================
# Call Endpoints
# =============================================================================

@router.post("/channels/{channel_id}/call-next", response_model=CallResponse)
async def call_next(
    channel_id: uuid.UUID,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    _admin: None = Depends(verify_admin_access),
):
    return _call_response(await dispatcher.call_next(channel_id))


@router.post("/channels/{channel_id}/recall", response_model=CallResponse)
async def recall(
    channel_id: uuid.UUID,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    _admin: None = Depends(verify_admin_access),
):
    return _call_response(await dispatcher.recall(channel_id))


@router.post("/channels/{channel_id}/insert", response_model=CallResponse)
async def insert(
    channel_id: uuid.UUID,
    data: InsertRequest,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    _admin: None = Depends(verify_admin_access),
):
    """Call a specific checked-in ticket out of order."""
    return _call_response(await dispatcher.insert(channel_id, data.display_queue_number))


@router.post("/activities/{activity_id}/reset-called", response_model=ResetCalledResponse)
async def reset_called(
    activity_id: uuid.UUID,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    _admin: None = Depends(verify_admin_access),
):
    """Undo accidental calls: every called ticket goes back to waiting."""
    return ResetCalledResponse(reset=await dispatcher.reset_called(activity_id))


# =============================================================================
# Display Endpoints
# =============================================================================

async def open_display_feed(
    activity_id: uuid.UUID,
    dispatcher: CallDispatcher,
    broadcaster: ChannelBroadcaster,
) -> tuple[MemoryObjectReceiveStream[dict], dict]:
    """
    Subscribe, then read the snapshot.

    A call committed while the snapshot is read still arrives on the
    stream; a duplicate is harmless since displays key on `ping_id`.
    """
    stream = await broadcaster.subscribe(activity_id)
    try:
        snapshot = await dispatcher.display_snapshot(activity_id)
    except Exception:
        await broadcaster.unsubscribe(activity_id, stream)
        raise
    return stream, snapshot


@router.get("/activities/{activity_id}/display")
async def display_snapshot(
    activity_id: uuid.UUID,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
):
    return await dispatcher.display_snapshot(activity_id)


@router.get("/activities/{activity_id}/display/stream")
async def display_stream(
    activity_id: uuid.UUID,
    request: Request,
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    broadcaster: ChannelBroadcaster = Depends(get_broadcaster),
):
    """
    Server-sent events for queue displays.

    Sends the current snapshot first, then one event per call / recall /
    insert. A display detects a new announcement by a changed `ping_id`.
    """
    stream, snapshot = await open_display_feed(activity_id, dispatcher, broadcaster)

    async def event_generator():
        try:
            yield {"event": "snapshot", "data": json.dumps(snapshot)}
            while not await request.is_disconnected():
                with anyio.move_on_after(STREAM_KEEPALIVE_SECONDS) as scope:
                    event = await stream.receive()
                if scope.cancelled_caught:
                    continue
                yield {"event": event.get("event", "update"), "data": json.dumps(event)}
        finally:
            await broadcaster.unsubscribe(activity_id, stream)

    return EventSourceResponse(
        event_generator(),
        headers={"X-Accel-Buffering": "no"},
        ping=STREAM_KEEPALIVE_SECONDS,
    )
