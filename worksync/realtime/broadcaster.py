"""
Change broadcaster — fan-out of change events to SSE clients.

Every connected client owns a ``ClientStream``: a bounded queue of
pre-formatted SSE frames drained by its ``StreamingResponse``.  A
broadcast serialises the payload once and pushes the same frame into
every queue.  A stream that cannot take the frame (closed, or its
consumer stopped reading and the queue filled up) is dropped; the
others still receive it.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator

from worksync.core.config import settings
from worksync.core.tasks import run_periodic

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ":keep-alive\n\n"

_CLOSE = object()


def format_sse(event: str, payload: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


class StreamClosed(Exception):
    pass


class ClientStream:
    def __init__(self, maxsize: int = settings.REALTIME_STREAM_QUEUE_SIZE):
        self.id = uuid.uuid4().hex[:12]
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, frame: str) -> None:
        """Queue a frame.  Raises ``StreamClosed`` or ``asyncio.QueueFull``."""
        if self.closed:
            raise StreamClosed(self.id)
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            # Make room so the consumer still sees the end marker
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSE)

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is _CLOSE:
                return
            yield frame


class ChangeBroadcaster:
    def __init__(
        self,
        heartbeat_interval: float = settings.REALTIME_HEARTBEAT_SECONDS,
        queue_size: int = settings.REALTIME_STREAM_QUEUE_SIZE,
    ):
        self.heartbeat_interval = heartbeat_interval
        self.queue_size = queue_size
        self._streams: set[ClientStream] = set()
        self._shut_down = False

    def __len__(self) -> int:
        return len(self._streams)

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    # ── Connections ──────────────────────────────────────────────────

    def accept_connection(self) -> ClientStream:
        """Register a new client; its first frame is the ``connected`` ack."""
        stream = ClientStream(maxsize=self.queue_size)
        if self._shut_down:
            stream.close()
            return stream
        stream.send(format_sse("connected", {"status": "ok"}))
        self._streams.add(stream)
        logger.info("SSE client %s connected (%d open)", stream.id, len(self._streams))
        return stream

    def disconnect(self, stream: ClientStream) -> None:
        if stream in self._streams:
            self._streams.discard(stream)
            logger.info("SSE client %s disconnected (%d open)", stream.id, len(self._streams))
        stream.close()

    async def stream_events(self, stream: ClientStream) -> AsyncIterator[str]:
        """Body iterator for a ``StreamingResponse``; unregisters on close."""
        try:
            async for frame in stream.frames():
                yield frame
        finally:
            self.disconnect(stream)

    # ── Delivery ─────────────────────────────────────────────────────

    def _send_all(self, frame: str) -> int:
        delivered = 0
        for stream in list(self._streams):
            try:
                stream.send(frame)
            except Exception as exc:
                logger.warning("Dropping SSE client %s: %s", stream.id, exc.__class__.__name__)
                self.disconnect(stream)
            else:
                delivered += 1
        return delivered

    def broadcast(self, event: str, payload: Any) -> int:
        """Send one event to every client.  Returns the number reached."""
        return self._send_all(format_sse(event, payload))

    def send_heartbeat(self) -> int:
        return self._send_all(HEARTBEAT_FRAME)

    async def heartbeat_loop(self) -> None:
        await run_periodic("sse-heartbeat", self.heartbeat_interval, self.send_heartbeat)

    def shutdown(self) -> None:
        """Close every open stream.  Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True
        streams = list(self._streams)
        for stream in streams:
            self.disconnect(stream)
        logger.info("Broadcaster shut down (%d streams closed)", len(streams))


broadcaster = ChangeBroadcaster()
