import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from constants import PEER_IDLE_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)

SIGNAL_OFFER = "offer"
SIGNAL_ANSWER = "answer"
SIGNAL_CANDIDATE = "candidate"


def normalize_room_id(room_id: Optional[str]) -> str:
    """Room codes are shared by hand, so "abcd" and "ABCD" name the same room."""
    return (room_id or "").strip().upper()


@dataclass
class Peer:
    peer_id: str
    last_seen: float
    offer: Any = None
    answer: Any = None
    candidates: List[Any] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.peer_id,
            "offer": self.offer,
            "answer": self.answer,
            "candidates": list(self.candidates),
            "lastSeen": int(self.last_seen * 1000),
        }


@dataclass
class Room:
    room_id: str
    created_at: float
    peers: Dict[str, Peer] = field(default_factory=dict)


class RoomStore:
    """In-memory signaling mailbox, one record per (room, peer).

    State lives for the lifetime of the process only. Every public method takes
    the store lock for a short critical section; nothing here blocks waiting on
    another peer.
    """

    def __init__(self, idle_timeout: float = PEER_IDLE_SECONDS, clock: Callable[[], float] = time.time):
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.lock = threading.Lock()
        self._rooms: Dict[str, Room] = {}
        logger.info(f"Initializing RoomStore with peer idle timeout {idle_timeout} seconds")

    def _touch(self, room_id: str, peer_id: str) -> Tuple[Room, Peer]:
        # Caller holds self.lock
        now = self.clock()
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id, created_at=now)
            self._rooms[room_id] = room
            logger.info(f"Room {room_id} created")
        peer = room.peers.get(peer_id)
        if peer is None:
            peer = Peer(peer_id=peer_id, last_seen=now)
            room.peers[peer_id] = peer
            logger.info(f"Peer {peer_id} joined room {room_id} (peers: {len(room.peers)})")
        peer.last_seen = now
        return room, peer

    def poll(self, room_id: str, peer_id: str) -> Tuple[List[dict], int]:
        """Return every other peer in the room plus the room size."""
        room_id = normalize_room_id(room_id)
        with self.lock:
            room, _ = self._touch(room_id, peer_id)
            others = [p.to_dict() for pid, p in room.peers.items() if pid != peer_id]
            room_size = len(room.peers)
        logger.debug(f"Room {room_id}: peer {peer_id} polling, found {len(others)} other peers")
        return others, room_size

    def publish(self, room_id: str, peer_id: str, signal_type: Any, signal: Any) -> int:
        """Record a signal for the peer and return the room size.

        offer and answer are last-write-wins so a renegotiating peer can replace
        them. Unknown types are accepted and ignored.
        """
        room_id = normalize_room_id(room_id)
        with self.lock:
            room, peer = self._touch(room_id, peer_id)
            if signal_type == SIGNAL_OFFER:
                peer.offer = signal
                logger.debug(f"Stored offer for peer {peer_id} in room {room_id}")
            elif signal_type == SIGNAL_ANSWER:
                peer.answer = signal
                logger.debug(f"Stored answer for peer {peer_id} in room {room_id}")
            elif signal_type == SIGNAL_CANDIDATE:
                peer.candidates.append(signal)
                logger.debug(f"Stored candidate for peer {peer_id} in room {room_id}, total: {len(peer.candidates)}")
            else:
                logger.debug(f"Ignoring signal of type {signal_type!r} from peer {peer_id} in room {room_id}")
            return len(room.peers)

    def peer_ids(self, room_id: str) -> List[str]:
        room_id = normalize_room_id(room_id)
        with self.lock:
            room = self._rooms.get(room_id)
            return list(room.peers) if room else []

    def get_room(self, room_id: str) -> Optional[dict]:
        """Read-only snapshot of a room, or None. Does not create or touch anything."""
        room_id = normalize_room_id(room_id)
        with self.lock:
            room = self._rooms.get(room_id)
            if room is None:
                return None
            return {
                "room_id": room.room_id,
                "created_at": room.created_at,
                "peer_ids": list(room.peers),
            }

    def has_room(self, room_id: str) -> bool:
        with self.lock:
            return normalize_room_id(room_id) in self._rooms

    def room_count(self) -> int:
        with self.lock:
            return len(self._rooms)

    def peer_count(self) -> int:
        with self.lock:
            return sum(len(room.peers) for room in self._rooms.values())

    def reap(self, now: Optional[float] = None) -> Tuple[int, int]:
        """Evict peers idle longer than idle_timeout, then drop empty rooms.

        Returns (peers_removed, rooms_removed).
        """
        now = self.clock() if now is None else now
        peers_removed = 0
        rooms_removed = 0
        with self.lock:
            for room_id in list(self._rooms):
                room = self._rooms[room_id]
                for peer_id in list(room.peers):
                    if now - room.peers[peer_id].last_seen > self.idle_timeout:
                        del room.peers[peer_id]
                        peers_removed += 1
                        logger.info(f"Evicted idle peer {peer_id} from room {room_id}")
                if not room.peers:
                    del self._rooms[room_id]
                    rooms_removed += 1
                    logger.info(f"Room {room_id} is empty, removing it")
        return peers_removed, rooms_removed
