import asyncio
import logging
import threading
import time

import pytest
from fastapi.testclient import TestClient

from main import app
from marketplace.core.security import jwt_manager
from marketplace.services.realtime import ConnectionManager


@pytest.fixture
def manager(db):
    app.state.realtime = ConnectionManager()
    try:
        yield app.state.realtime
    finally:
        del app.state.realtime


def wait_for_connection(manager, user_id, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not manager.channels_for(user_id):
        if time.monotonic() > deadline:
            raise AssertionError("connection was never registered")
        time.sleep(0.01)


def test_refresh_without_connections_is_not_an_error():
    assert ConnectionManager().refresh_membership(42, leave=["role:user"]) == 0


def test_refresh_moves_live_connection_between_channels(manager, buyer):
    token = jwt_manager.create_access_token(buyer)

    with TestClient(app).websocket_connect(f"/ws/{buyer.id}?token={token}") as socket:
        wait_for_connection(manager, buyer.id)
        assert manager.channels_for(buyer.id) == {f"user:{buyer.id}", "role:user"}

        touched = manager.refresh_membership(
            buyer.id, leave=["role:user"], join=["role:learner", "course:7"]
        )
        message = socket.receive_json()

    assert touched == 1
    assert message == {
        "event": "auth:refresh",
        "channels": sorted([f"user:{buyer.id}", "role:learner", "course:7"]),
    }


def test_rejects_token_for_another_user(manager, buyer, make_user):
    other = make_user("user")
    token = jwt_manager.create_access_token(other)

    with pytest.raises(Exception):
        with TestClient(app).websocket_connect(f"/ws/{buyer.id}?token={token}") as socket:
            socket.receive_text()


class BrokenSocket:
    async def accept(self):
        pass

    async def send_json(self, message):
        raise RuntimeError("socket already closed")


def test_failed_send_is_logged(caplog):
    loop = asyncio.new_event_loop()
    worker = threading.Thread(target=loop.run_forever, daemon=True)
    worker.start()
    manager = ConnectionManager()
    try:
        asyncio.run_coroutine_threadsafe(
            manager.connect(7, BrokenSocket(), "user"), loop
        ).result(timeout=2)

        with caplog.at_level(logging.WARNING, logger="marketplace.services.realtime"):
            assert manager.refresh_membership(7, join=["course:1"]) == 1
            deadline = time.monotonic() + 2
            while "Realtime refresh for user 7 failed" not in caplog.text:
                assert time.monotonic() < deadline, "send failure was never logged"
                time.sleep(0.01)
    finally:
        loop.call_soon_threadsafe(loop.stop)
        worker.join(timeout=2)
        loop.close()
