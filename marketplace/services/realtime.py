# marketplace/services/realtime.py
import asyncio
import logging
from concurrent.futures import Future
from typing import Dict, Iterable, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class _Connection:
    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop
        self.channels: Set[str] = set()


class ConnectionManager:
    """
    Live WebSocket connections grouped by user.

    Settlement runs on worker threads, so outgoing messages are handed to the
    event loop that owns each socket.
    """

    def __init__(self):
        self._connections: Dict[int, List[_Connection]] = {}

    async def connect(self, user_id: int, websocket: WebSocket, role: str) -> None:
        await websocket.accept()
        connection = _Connection(websocket, asyncio.get_running_loop())
        connection.channels.update({f"user:{user_id}", f"role:{role}"})
        self._connections.setdefault(user_id, []).append(connection)
        logger.info(f"Realtime connection opened for user {user_id}")

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        connections = self._connections.get(user_id, [])
        self._connections[user_id] = [c for c in connections if c.websocket is not websocket]
        if not self._connections[user_id]:
            del self._connections[user_id]

    def channels_for(self, user_id: int) -> Set[str]:
        channels: Set[str] = set()
        for connection in self._connections.get(user_id, []):
            channels |= connection.channels
        return channels

    def refresh_membership(
        self,
        user_id: int,
        leave: Iterable[str] = (),
        join: Iterable[str] = (),
    ) -> int:
        """
        Ask the user's sessions to refresh auth and move them between channels.
        Returns the number of live connections touched; zero is not an error.
        """
        leave, join = set(leave), set(join)
        connections = self._connections.get(user_id, [])
        for connection in connections:
            connection.channels -= leave
            connection.channels |= join
            message = {
                "event": "auth:refresh",
                "channels": sorted(connection.channels),
            }
            future = asyncio.run_coroutine_threadsafe(
                connection.websocket.send_json(message), connection.loop
            )
            future.add_done_callback(self._log_send_failure(user_id))
        return len(connections)

    @staticmethod
    def _log_send_failure(user_id: int):
        def callback(future: Future) -> None:
            if future.cancelled():
                logger.warning(f"Realtime refresh for user {user_id} was cancelled")
                return
            exc = future.exception()
            if exc is not None:
                logger.warning(f"Realtime refresh for user {user_id} failed: {exc}", exc_info=exc)

        return callback
