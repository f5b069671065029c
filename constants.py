import json
import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Room store lifecycle
PEER_IDLE_SECONDS = int(os.getenv("PEER_IDLE_SECONDS", 300))
REAPER_INTERVAL_SECONDS = int(os.getenv("REAPER_INTERVAL_SECONDS", 300))
ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", 6))

# Event stream
SSE_KEEPALIVE_SECONDS = float(os.getenv("SSE_KEEPALIVE_SECONDS", 15))
SUBSCRIBER_QUEUE_SIZE = int(os.getenv("SUBSCRIBER_QUEUE_SIZE", 256))

# "memory" keeps fan-out in-process, "redis" relays it across instances
SIGNALING_BACKEND = os.getenv("SIGNALING_BACKEND", "memory").lower()

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

DEFAULT_ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
    {"urls": "stun:stun1.l.google.com:19302"},
    {"urls": "stun:stun2.l.google.com:19302"},
]
ICE_SERVERS = json.loads(os.getenv("ICE_SERVERS")) if os.getenv("ICE_SERVERS") else DEFAULT_ICE_SERVERS
