from fastapi import Request

from backend import RoomStore
from broadcaster import Broadcaster


def get_room_store(request: Request) -> RoomStore:
    return request.app.state.room_store


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster
