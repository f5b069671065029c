from pydantic import BaseModel
from typing import Any, Optional


class SignalMessage(BaseModel):
    # Any value is accepted; the store ignores all but offer/answer/candidate
    type: Any = None
    signal: Any = None


class PeerSignals(BaseModel):
    id: str
    offer: Any = None
    answer: Any = None
    candidates: list[Any] = []
    lastSeen: int

class PollDebug(BaseModel):
    roomId: str
    totalPeers: int
    allPeerIds: list[str]

class PollResponse(BaseModel):
    peers: list[PeerSignals]
    roomSize: int
    currentPeer: str
    debug: PollDebug

class PublishDebug(BaseModel):
    roomId: str
    peerId: str
    dataType: Any = None
    totalPeers: int

class PublishResponse(BaseModel):
    success: bool
    roomSize: int
    debug: PublishDebug

class CreateRoomResponse(BaseModel):
    room_id: str
    poll_url: str
    events_url: str

class RoomDetailsResponse(BaseModel):
    room_id: str
    exists: bool
    peer_count: int
    peer_ids: list[str]
    created_at: Optional[str] = None
    subscriber_count: int
