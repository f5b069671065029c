from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from routers.rooms import rooms_router
from routers.signaling import signaling_router
from schemas.service import HealthResponse, IceServersResponse
from backend import RoomStore
from broadcaster import Broadcaster
from reaper import Reaper
from constants import (
    CORS_ORIGINS,
    ICE_SERVERS,
    LOG_FILE,
    LOG_LEVEL,
    PEER_IDLE_SECONDS,
    REAPER_INTERVAL_SECONDS,
    SIGNALING_BACKEND,
    SUBSCRIBER_QUEUE_SIZE,
)
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.signaling_backend == "redis":
        # Imported lazily so the memory backend never needs a Redis server
        from relay import RedisRelay
        app.state.relay = RedisRelay(app.state.broadcaster)
    app.state.reaper.start()
    logger.info(f"Signaling service started with {app.state.signaling_backend} backend")
    try:
        yield
    finally:
        await app.state.reaper.stop()
        app.state.broadcaster.close_all()
        if app.state.relay is not None:
            await app.state.relay.close()
            app.state.relay = None
        logger.info("Signaling service stopped")


def create_app(
    room_store: RoomStore = None,
    broadcaster: Broadcaster = None,
    signaling_backend: str = SIGNALING_BACKEND,
) -> FastAPI:
    app = FastAPI(title="Signaling Service", lifespan=lifespan)

    # Browser peers are served from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials="*" not in CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.room_store = room_store if room_store is not None else RoomStore(idle_timeout=PEER_IDLE_SECONDS)
    app.state.broadcaster = broadcaster if broadcaster is not None else Broadcaster(queue_size=SUBSCRIBER_QUEUE_SIZE)
    app.state.reaper = Reaper(app.state.room_store, interval=REAPER_INTERVAL_SECONDS)
    app.state.signaling_backend = signaling_backend
    app.state.relay = None

    app.include_router(rooms_router)
    app.include_router(signaling_router)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        state = request.app.state
        return HealthResponse(
            status="ok",
            backend=state.signaling_backend,
            rooms=state.room_store.room_count(),
            peers=state.room_store.peer_count(),
            subscribers=state.broadcaster.connection_count(),
        )

    @app.get("/ice-servers", response_model=IceServersResponse)
    async def ice_servers():
        # STUN/TURN list handed to RTCPeerConnection by the browser
        return IceServersResponse(iceServers=ICE_SERVERS)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
