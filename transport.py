import asyncio
import json
from typing import Dict, Optional, Protocol, Tuple

from fastapi import WebSocket

from events import format_timestamp
from logging_config import get_logger

logger = get_logger(__name__)


class Transport(Protocol):
    """What the relay core needs from the wire: fire-and-forget send, forced disconnect."""

    def send(self, peer_id: str, kind: str, payload: dict) -> None:
        ...

    def disconnect(self, peer_id: str) -> None:
        ...


def send_event(transport: Transport, peer_id: str, kind: str, payload: Optional[dict], now: float):
    """Send ``payload`` stamped with the server time, overriding any client timestamp."""
    message = dict(payload or {})
    message["timestamp"] = format_timestamp(now)
    transport.send(peer_id, kind, message)


# Queue sentinels. _CLOSE closes the socket from our side, _STOP only ends the writer.
_CLOSE = object()
_STOP = object()


class WebSocketTransport:
    """Transport over FastAPI WebSockets.

    Each connection gets an outbound queue drained by its own writer task, so
    ``send`` and ``disconnect`` never block and messages to one peer keep
    their order (an eviction notice is always written before the close).
    Calls from outside the connection's event loop are handed over with
    ``call_soon_threadsafe``.
    """

    def __init__(self):
        self._queues: Dict[str, Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = {}

    def attach(self, peer_id: str, websocket: WebSocket) -> asyncio.Task:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[peer_id] = (asyncio.get_running_loop(), queue)
        logger.debug(f"Attached writer for connection {peer_id}")
        return asyncio.create_task(self._writer(peer_id, websocket, queue))

    def detach(self, peer_id: str):
        entry = self._queues.pop(peer_id, None)
        if entry is not None:
            self._put(entry, _STOP)
            logger.debug(f"Detached writer for connection {peer_id}")

    def send(self, peer_id: str, kind: str, payload: dict) -> None:
        entry = self._queues.get(peer_id)
        if entry is None:
            logger.debug(f"Dropping {kind} for unknown connection {peer_id}")
            return
        self._put(entry, (kind, payload))

    def disconnect(self, peer_id: str) -> None:
        entry = self._queues.get(peer_id)
        if entry is None:
            return
        self._put(entry, _CLOSE)

    @staticmethod
    def _put(entry, item):
        loop, queue = entry
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            queue.put_nowait(item)
        else:
            loop.call_soon_threadsafe(queue.put_nowait, item)

    async def _writer(self, peer_id: str, websocket: WebSocket, queue: asyncio.Queue):
        while True:
            item = await queue.get()
            if item is _STOP:
                return
            if item is _CLOSE:
                logger.info(f"Force closing connection {peer_id}")
                break

            kind, payload = item
            try:
                await websocket.send_text(json.dumps({"type": kind, "data": payload}))
            except Exception as e:
                logger.warning(f"Error sending {kind} to connection {peer_id}, closing it: {e}")
                break

        # Nothing drains this queue any more
        entry = self._queues.get(peer_id)
        if entry is not None and entry[1] is queue:
            del self._queues[peer_id]
        try:
            await websocket.close(code=1000)
        except Exception as e:
            logger.debug(f"Error closing WebSocket {peer_id}: {e}")
