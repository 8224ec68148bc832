import asyncio
import json
from typing import Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from logging_config import get_logger

logger = get_logger(__name__)

_CLOSE = object()


class WebSocketTransport:
    """Non-blocking send side of a WebSocket.

    `send()` only enqueues; a writer task owns the socket writes so the
    rendezvous core never awaits a peer.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_live(self) -> bool:
        if self._closed:
            return False
        return (self.websocket.client_state == WebSocketState.CONNECTED
                and self.websocket.application_state == WebSocketState.CONNECTED)

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def send(self, message: dict):
        if self._closed:
            logger.debug(f"Dropping '{message.get('type')}' for closed transport")
            return
        self._queue.put_nowait(message)

    def mark_closed(self):
        self._closed = True

    def close_soon(self):
        """Schedule `close()` from synchronous code on the event loop."""
        if self._closer is None:
            self._closed = True
            self._closer = asyncio.create_task(self.close())

    async def _write_loop(self):
        while True:
            message = await self._queue.get()
            if message is _CLOSE:
                break
            try:
                await self.websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.warning(f"Error sending '{message.get('type')}': {e}")
                self._closed = True
                break

    async def close(self, code: int = 1000):
        """Flush queued messages, stop the writer and close the socket."""
        if self._writer is not None and not self._writer.done():
            self._queue.put_nowait(_CLOSE)
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
        self._closed = True
        if self.websocket.application_state != WebSocketState.DISCONNECTED:
            try:
                await self.websocket.close(code=code)
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
