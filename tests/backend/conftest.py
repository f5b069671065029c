import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import RoomStore
from broadcaster import Broadcaster


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(clock):
    """Fresh room store per test, idle timeout 300s on a fake clock."""
    return RoomStore(idle_timeout=300, clock=clock)


@pytest.fixture()
def broadcaster():
    return Broadcaster(queue_size=8)


@pytest.fixture()
def client_ctx(store, broadcaster, clock):
    """
    Test client wired to isolated store and broadcaster instances.
    Lifespan is not run, so no reaper task or Redis relay is started.
    """
    app = create_app(room_store=store, broadcaster=broadcaster, signaling_backend="memory")
    return {
        "app": app,
        "client": TestClient(app),
        "store": store,
        "broadcaster": broadcaster,
        "clock": clock,
    }
