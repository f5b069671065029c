from pydantic import BaseModel
from typing import Any


class HealthResponse(BaseModel):
    status: str
    backend: str
    rooms: int
    peers: int
    subscribers: int

class IceServersResponse(BaseModel):
    iceServers: list[dict[str, Any]]
