from fastapi import APIRouter, Depends, HTTPException, Query, Request
from schemas.rooms import CreateRoomResponse, PollResponse, PublishResponse, RoomDetailsResponse, SignalMessage
import random
import string
import json
from datetime import datetime
from typing import Optional
from backend import RoomStore, normalize_room_id
from broadcaster import Broadcaster
from constants import ROOM_CODE_LENGTH
from dependencies import get_broadcaster, get_room_store
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])

def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def require_peer_id(peer_id: Optional[str]) -> str:
    if not peer_id or not peer_id.strip():
        logger.warning("Rejected room request without peerId")
        raise HTTPException(status_code=400, detail="peerId required")
    return peer_id


def require_room_id(room_id: str) -> str:
    normalized = normalize_room_id(room_id)
    if not normalized:
        raise HTTPException(status_code=400, detail="roomId required")
    return normalized


@rooms_router.post("/", response_model=CreateRoomResponse)
async def create_room(request: Request, store: RoomStore = Depends(get_room_store), broadcaster: Broadcaster = Depends(get_broadcaster)):
    # Only hands out an unused code; the room itself appears on first poll/publish
    room_id = generate_room_code()
    while store.has_room(room_id) or broadcaster.has_room(room_id):
        room_id = generate_room_code()

    base_url = str(request.base_url).rstrip('/')
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room code {room_id} issued to {client_host}")

    return CreateRoomResponse(
        room_id=room_id,
        poll_url=f"{base_url}/rooms/{room_id}",
        events_url=f"{base_url}/signaling?room={room_id}",
    )


@rooms_router.get("/{room_id}", response_model=PollResponse)
async def poll_room(
    room_id: str,
    peer_id: Optional[str] = Query(None, alias="peerId", description="Caller's peer id, stable for the signaling session"),
    store: RoomStore = Depends(get_room_store),
):
    """
    Poll a room for the other peers' signals.

    Creates the room and the calling peer on first use and refreshes the
    caller's last-seen time. Every other peer is returned with its offer,
    answer and ICE candidates in publish order.
    """
    room_id = require_room_id(room_id)
    peer_id = require_peer_id(peer_id)

    others, room_size = store.poll(room_id, peer_id)

    return PollResponse(
        peers=others,
        roomSize=room_size,
        currentPeer=peer_id,
        debug={
            "roomId": room_id,
            "totalPeers": room_size,
            "allPeerIds": store.peer_ids(room_id),
        },
    )


@rooms_router.post("/{room_id}", response_model=PublishResponse)
async def publish_signal(
    room_id: str,
    request: Request,
    peer_id: Optional[str] = Query(None, alias="peerId"),
    store: RoomStore = Depends(get_room_store),
):
    # Body: { "type": "offer" | "answer" | "candidate", "signal": <opaque> }
    room_id = require_room_id(room_id)
    peer_id = require_peer_id(peer_id)

    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"Publish to room {room_id} from peer {peer_id} rejected: malformed JSON")
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if not isinstance(data, dict):
        logger.warning(f"Publish to room {room_id} from peer {peer_id} rejected: body is not an object")
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    message = SignalMessage.model_validate(data)
    logger.debug(f"Room {room_id}: peer {peer_id} sending {message.type}")
    room_size = store.publish(room_id, peer_id, message.type, message.signal)

    return PublishResponse(
        success=True,
        roomSize=room_size,
        debug={
            "roomId": room_id,
            "peerId": peer_id,
            "dataType": message.type,
            "totalPeers": room_size,
        },
    )


@rooms_router.get("/{room_id}/details", response_model=RoomDetailsResponse)
async def get_room_details(
    room_id: str,
    store: RoomStore = Depends(get_room_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """
    Inspect a room without joining it.

    Returns:
    - room_id: Normalized room code
    - exists: Whether any peer has polled or published in this room
    - peer_count / peer_ids: Peers currently held by the room store
    - created_at: When the room was first referenced
    - subscriber_count: Open event streams for this room on this instance
    """
    room_id = require_room_id(room_id)
    room = store.get_room(room_id)
    subscriber_count = broadcaster.connection_count(room_id)

    if not room:
        logger.debug(f"Room details for {room_id}: room not in store")
        return RoomDetailsResponse(
            room_id=room_id,
            exists=False,
            peer_count=0,
            peer_ids=[],
            subscriber_count=subscriber_count,
        )

    logger.info(f"Room details retrieved for {room_id}: {len(room['peer_ids'])} peers")
    return RoomDetailsResponse(
        room_id=room_id,
        exists=True,
        peer_count=len(room["peer_ids"]),
        peer_ids=room["peer_ids"],
        created_at=datetime.fromtimestamp(room["created_at"]).isoformat(),
        subscriber_count=subscriber_count,
    )
