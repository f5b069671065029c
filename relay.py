import asyncio
import json
import uuid
from typing import Any, Dict, Optional

import redis

from broadcaster import Broadcaster
from constants import REDIS_HOST, REDIS_PASSWORD, REDIS_PORT
from logging_config import get_logger
from redis_keys import REDIS_SIGNAL_CHANNEL

logger = get_logger(__name__)


def connect_redis() -> redis.Redis:
    client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
    try:
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise
    return client


class RedisRelay:
    """Carries broadcaster events between instances over Redis pub/sub.

    Each instance tracks only its own event streams. Publishing goes to the
    room's Redis channel and every instance with local subscribers in that room
    runs one listener task that hands received events back to its broadcaster.
    """

    def __init__(self, broadcaster: Broadcaster, redis_client=None, pubsub_client=None):
        self.instance_id = uuid.uuid4().hex
        self.broadcaster = broadcaster
        self.redis_client = redis_client if redis_client is not None else connect_redis()
        # Separate connection for pub/sub (required by Redis)
        self.pubsub_client = pubsub_client if pubsub_client is not None else connect_redis()
        self.tasks: Dict[str, asyncio.Task] = {}
        self.pubsubs: Dict[str, Any] = {}
        broadcaster.relay = self
        logger.info(f"Redis relay {self.instance_id} attached to broadcaster")

    def get_room_channel_name(self, room_id: str) -> str:
        return REDIS_SIGNAL_CHANNEL.format(slug=room_id)

    def publish(self, room_id: str, event: Any, exclude: Optional[str] = None):
        channel = self.get_room_channel_name(room_id)
        envelope = {"event": event, "exclude": exclude, "origin": self.instance_id}
        subscribers = self.redis_client.publish(channel, json.dumps(envelope))
        logger.debug(f"Published event to room {room_id} channel {channel}, {subscribers} subscribers")
        return subscribers

    def ensure_listener(self, room_id: str):
        """Start the room's listener unless one is already running."""
        task = self.tasks.get(room_id)
        if task is not None and not task.done():
            return task
        # Subscribe before returning so a publish right after cannot be missed
        pubsub = self.pubsub_client.pubsub()
        pubsub.subscribe(self.get_room_channel_name(room_id))
        self.pubsubs[room_id] = pubsub
        task = asyncio.get_running_loop().create_task(self.listen(room_id, pubsub))
        self.tasks[room_id] = task
        logger.debug(f"Started Redis pub/sub listener for room: {room_id}")
        return task

    async def listen(self, room_id: str, pubsub):
        logger.info(f"Starting Redis pub/sub listener for room: {room_id}")
        loop = asyncio.get_running_loop()

        def get_message():
            try:
                return pubsub.get_message(timeout=1.0, ignore_subscribe_messages=True)
            except Exception as e:
                logger.error(f"Error in pubsub.get_message() for room {room_id}: {e}", exc_info=True)
                return None

        try:
            while self.broadcaster.has_room(room_id):
                message = await loop.run_in_executor(None, get_message)
                if message is None or message.get("type") != "message":
                    continue
                try:
                    envelope = json.loads(message["data"])
                    self.broadcaster.deliver(room_id, envelope.get("event"), exclude=envelope.get("exclude"))
                except (json.JSONDecodeError, AttributeError) as e:
                    logger.error(f"Error parsing message from Redis for room {room_id}: {e}")
            logger.info(f"No more connections in room {room_id}, stopping listener")
        except asyncio.CancelledError:
            logger.info(f"Redis listener task cancelled for room: {room_id}")
            raise
        finally:
            try:
                pubsub.close()
            except Exception as e:
                logger.error(f"Error closing pub/sub for room {room_id}: {e}")
            if self.tasks.get(room_id) is asyncio.current_task():
                del self.tasks[room_id]
                self.pubsubs.pop(room_id, None)

    async def close(self):
        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reach their finally
        for room_id, pubsub in self.pubsubs.items():
            try:
                pubsub.close()
            except Exception as e:
                logger.error(f"Error closing pub/sub for room {room_id}: {e}")
        self.tasks.clear()
        self.pubsubs.clear()
        self.broadcaster.relay = None
        logger.info(f"Redis relay {self.instance_id} stopped")
