from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
import json
from typing import Optional
from backend import normalize_room_id
from broadcaster import Broadcaster
from constants import SSE_KEEPALIVE_SECONDS
from dependencies import get_broadcaster
from logging_config import get_logger

logger = get_logger(__name__)

signaling_router = APIRouter(prefix="/signaling", tags=["signaling"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Stop nginx-style proxies from buffering the stream
    "X-Accel-Buffering": "no",
}


def require_room(room: Optional[str]) -> str:
    room_id = normalize_room_id(room)
    if not room_id:
        logger.warning("Rejected signaling request without room parameter")
        raise HTTPException(status_code=400, detail="Room parameter is required")
    return room_id


@signaling_router.get("")
async def subscribe(
    request: Request,
    room: Optional[str] = Query(None, description="Room to subscribe to"),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Open a Server-Sent Events stream for a room.

    Existing subscribers get a `user-joined` event first, then this stream
    receives `{"type": "connected", "room": ...}` followed by every message
    published to the room.
    """
    room_id = require_room(room)
    client_host = request.client.host if request.client else 'unknown'
    try:
        connection = broadcaster.subscribe(room_id)
    except Exception as e:
        logger.error(f"Error opening event stream for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error processing request")
    logger.info(f"Event stream opened for room {room_id} from {client_host}")

    return StreamingResponse(
        connection.stream(request.is_disconnected, keepalive=SSE_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@signaling_router.post("", response_class=PlainTextResponse)
async def publish(
    request: Request,
    room: Optional[str] = Query(None),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    room_id = require_room(room)

    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"Signaling publish to room {room_id} rejected: malformed JSON")
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        delivered = broadcaster.publish(room_id, data)
    except Exception as e:
        logger.error(f"Error processing signaling publish for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error processing request")

    logger.debug(f"Signaling message for room {room_id} delivered to {delivered} local connections")
    return PlainTextResponse("Message sent", status_code=200)
