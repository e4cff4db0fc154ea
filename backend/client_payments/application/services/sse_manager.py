"""SSE Manager — in-process broadcaster for records notifications."""

import asyncio
import itertools
import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100
KEEPALIVE_FRAME = ": keepalive\n\n"


def format_sse(event_type: str, data: dict[str, Any], event_id: int | None = None) -> str:
    """Render one server-sent-events frame."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event_type}")
    lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
    return "\n".join(lines) + "\n\n"


class SSEManager:
    """Fans events out to connected SSE clients.

    Each client owns a bounded asyncio.Queue; a client that stops draining
    its queue is disconnected instead of stalling the broadcaster.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._queues: list[asyncio.Queue[str | None]] = []
        self._ids = itertools.count(1)

    async def subscribe(self, keepalive_seconds: float | None = None) -> AsyncGenerator[str, None]:
        """Yield SSE frames until the manager shuts down or the client goes away.

        With ``keepalive_seconds`` set, a comment frame is emitted after
        that long without events so proxies keep the connection open.
        """
        queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=self._queue_size)
        self._queues.append(queue)
        logger.debug("SSE client connected (%d total)", len(self._queues))
        try:
            while True:
                try:
                    if keepalive_seconds is None:
                        frame = await queue.get()
                    else:
                        frame = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            if queue in self._queues:
                self._queues.remove(queue)
            logger.debug("SSE client disconnected (%d left)", len(self._queues))

    async def broadcast(self, event_type: str, data: dict[str, Any]) -> int:
        """Queue an event for every client; returns how many received it."""
        frame = format_sse(event_type, data, next(self._ids))
        delivered = 0
        for queue in list(self._queues):
            try:
                queue.put_nowait(frame)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("SSE client queue full, disconnecting")
                self._queues.remove(queue)
                self._close(queue)
        return delivered

    async def shutdown(self) -> None:
        """Disconnect all connected clients."""
        for queue in self._queues:
            self._close(queue)
        self._queues.clear()

    @staticmethod
    def _close(queue: asyncio.Queue[str | None]) -> None:
        # Make room for the sentinel on a full queue.
        while queue.full():
            queue.get_nowait()
        queue.put_nowait(None)

    @property
    def client_count(self) -> int:
        return len(self._queues)
