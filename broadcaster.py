import asyncio
import json
import threading
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from backend import normalize_room_id
from constants import SSE_KEEPALIVE_SECONDS, SUBSCRIBER_QUEUE_SIZE
from logging_config import get_logger

logger = get_logger(__name__)

KEEPALIVE_FRAME = ": keepalive\n\n"


class ConnectionClosedError(Exception):
    """Raised when pushing to a connection whose stream has ended."""


def format_sse(event: Any) -> str:
    return f"data: {json.dumps(event)}\n\n"


class Connection:
    """One open event stream bound to a room.

    Events are serialized on push and queued; the HTTP handler drains the
    queue through stream(). A None in the queue ends the stream.
    """

    def __init__(self, room_id: str, on_close: Callable[["Connection"], None], queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.connection_id = str(uuid.uuid4())
        self.room_id = room_id
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._on_close = on_close

    def push(self, event: Any):
        if self.closed:
            raise ConnectionClosedError(f"Connection {self.connection_id} is closed")
        # QueueFull propagates to the caller, which isolates the failure
        self._queue.put_nowait(format_sse(event))

    def close(self):
        """Mark closed and unregister. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # stream() checks self.closed after every frame
            pass
        self._on_close(self)

    async def stream(self, is_disconnected: Callable[[], Awaitable[bool]], keepalive: float = SSE_KEEPALIVE_SECONDS):
        """Yield SSE frames until the client goes away or the connection closes."""
        try:
            while not self.closed:
                if await is_disconnected():
                    logger.debug(f"Client of connection {self.connection_id} disconnected")
                    break
                try:
                    frame = await asyncio.wait_for(self._queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            self.close()


class Broadcaster:
    """Registry of open event streams per room with fan-out delivery.

    Connections are anonymous, so publish() reaches every connection in the
    room including the one whose client sent the message; clients filter
    their own echoes.
    """

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self.lock = threading.Lock()
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        # Set by RedisRelay when cross-instance delivery is enabled
        self.relay = None

    def subscribe(self, room_id: str) -> Connection:
        """Register a connection, tell the room's existing members, then greet it."""
        room_id = normalize_room_id(room_id)
        connection = Connection(room_id, self._unregister, queue_size=self.queue_size)
        with self.lock:
            self._rooms.setdefault(room_id, {})[connection.connection_id] = connection
            local_count = len(self._rooms[room_id])
        logger.info(f"Connection {connection.connection_id} opened in room {room_id} (local connections: {local_count})")

        try:
            if self.relay is not None:
                self.relay.ensure_listener(room_id)
                self.relay.publish(room_id, {"type": "user-joined"}, exclude=connection.connection_id)
            else:
                self.deliver(room_id, {"type": "user-joined"}, exclude=connection.connection_id)
            connection.push({"type": "connected", "room": room_id})
        except Exception as e:
            # The stream is never handed out, so nothing else would close it
            logger.error(f"Error announcing connection {connection.connection_id} in room {room_id}: {e}", exc_info=True)
            connection.close()
            raise
        return connection

    def publish(self, room_id: str, payload: Any) -> int:
        """Send payload to the room. Returns local deliveries (0 when relayed)."""
        room_id = normalize_room_id(room_id)
        if self.relay is not None:
            self.relay.publish(room_id, payload)
            return 0
        return self.deliver(room_id, payload)

    def deliver(self, room_id: str, event: Any, exclude: Optional[str] = None) -> int:
        """Push to every local connection in the room except `exclude`.

        A failing connection is logged and skipped; the rest still receive it.
        """
        with self.lock:
            targets = list(self._rooms.get(room_id, {}).values())
        if not targets:
            logger.debug(f"No connections in room {room_id}, dropping event")
            return 0

        delivered = 0
        for connection in targets:
            if connection.connection_id == exclude:
                continue
            try:
                connection.push(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Error sending to connection {connection.connection_id} in room {room_id}: {e!r}")
        logger.debug(f"Delivered event to {delivered}/{len(targets)} connections in room {room_id}")
        return delivered

    def _unregister(self, connection: Connection):
        with self.lock:
            connections = self._rooms.get(connection.room_id)
            if connections is None:
                return
            connections.pop(connection.connection_id, None)
            room_empty = not connections
            if room_empty:
                del self._rooms[connection.room_id]
        logger.info(f"Connection {connection.connection_id} closed in room {connection.room_id}")
        if room_empty:
            logger.info(f"No more local connections in room {connection.room_id}, cleaning up")

    def has_room(self, room_id: str) -> bool:
        with self.lock:
            return normalize_room_id(room_id) in self._rooms

    def connection_count(self, room_id: Optional[str] = None) -> int:
        with self.lock:
            if room_id is not None:
                return len(self._rooms.get(normalize_room_id(room_id), {}))
            return sum(len(c) for c in self._rooms.values())

    def close_all(self):
        with self.lock:
            connections = [c for room in self._rooms.values() for c in room.values()]
        for connection in connections:
            connection.close()
        logger.info(f"Closed {len(connections)} open connections")
