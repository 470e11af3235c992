import asyncio
import json
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket

from constants import SEND_QUEUE_SIZE
from logging_config import get_logger

logger = get_logger(__name__)


class Connection:
    """One accepted websocket plus its outbound queue.

    Sends never block the caller: messages are queued and a dedicated writer
    task pushes them to the socket in FIFO order. A full queue or a failed
    send hands the connection to ``on_failure`` so the owner can drop it.
    """

    def __init__(
        self,
        websocket: WebSocket,
        on_failure: Optional[Callable[["Connection"], Awaitable[None]]] = None,
        queue_size: int = SEND_QUEUE_SIZE,
    ):
        self.connection_id = str(uuid.uuid4())
        self.websocket = websocket
        self.peer_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self.closed = False
        self._on_failure = on_failure
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None

    @property
    def joined(self) -> bool:
        return self.room_id is not None

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain_outbox())

    def send(self, message: Dict[str, Any]) -> bool:
        """Queue a message. Returns False if the connection is closed or its queue is full."""
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for connection {self.connection_id} ({self.peer_id}), dropping peer")
            return False
        return True

    async def drained(self):
        """Wait until every queued message has been written (or discarded on close)."""
        await self._outbox.join()

    async def _drain_outbox(self):
        while True:
            message = await self._outbox.get()
            failed = False
            try:
                await self.websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.warning(f"Error sending to connection {self.connection_id} ({self.peer_id}): {e}")
                failed = True
            finally:
                self._outbox.task_done()
            if failed:
                break

        try:
            if self._on_failure is not None:
                await self._on_failure(self)
            else:
                await self.close()
        except Exception as e:
            logger.error(f"Error dropping failed connection {self.connection_id}: {e}", exc_info=True)

    def _discard_pending(self):
        while True:
            try:
                self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._outbox.task_done()

    async def close(self, code: int = 1000):
        if self.closed:
            return
        self.closed = True

        writer = self._writer
        if writer is not None and writer is not asyncio.current_task() and not writer.done():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
        self._discard_pending()

        try:
            await self.websocket.close(code=code)
        except Exception as e:
            # Already closed by the client side
            logger.debug(f"Error closing WebSocket {self.connection_id}: {e}")
        logger.debug(f"Connection {self.connection_id} closed")
