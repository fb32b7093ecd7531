"""SSE connections — the push channel behind every component instance.

Each browser tab opens one SSE connection.  Component instances registered
from that tab hold a reference to its ``Connection`` and the Dispatcher
pushes re-rendered fragments into it.  Pushes may come from any thread (the
dispatch shards); they are handed to the connection's own event loop with
``call_soon_threadsafe`` so the asyncio queue is only touched on its loop.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from whisker._errors import ConnectionClosed

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


CONNECTED_EVENT = "whisker:connected"
FRAGMENT_EVENT = "fragment"
REMOVED_EVENT = "whisker:removed"
ERROR_EVENT = "whisker:error"

# Placed on a queue to end its client generator.
_CLOSE = object()


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


@dataclass(frozen=True, slots=True)
class Push:
    """One server-initiated frame for a browser tab.

    Attributes:
        event: SSE event name (``fragment``, ``whisker:removed``, ...).
        data: Event payload (rendered HTML for fragments).
        instance_id: Instance the frame is about, if any.

    """

    event: Literal["fragment", "whisker:removed", "whisker:error", "whisker:connected"]
    data: str
    instance_id: str = ""

    def to_sse(self) -> Any:
        """Convert to a Chirp ``SSEEvent`` for the EventStream."""
        from chirp import SSEEvent

        return SSEEvent(data=self.data, event=self.event)


@dataclass(slots=True, eq=False)
class Connection:
    """A connected SSE client.

    Attributes:
        connection_id: Unique identifier for this connection.
        queue: Bounded queue feeding the client's generator.
        loop: Event loop that owns ``queue`` (``None`` outside a loop).
        closed: Set once the remote end is gone; pushes then fail.

    """

    connection_id: str
    queue: asyncio.Queue[Any]
    loop: asyncio.AbstractEventLoop | None = None
    closed: bool = False
    dropped: int = 0

    def push(self, item: Push) -> bool:
        """Enqueue *item* for delivery.

        Returns:
            ``True`` if the item was queued (or handed to the owning loop),
            ``False`` if the client's backlog is full and it was dropped.

        Raises:
            ConnectionClosed: If the connection is closed or its loop is gone.

        """
        if self.closed:
            msg = f"Connection {self.connection_id} is closed"
            raise ConnectionClosed(msg)

        loop = self.loop
        if loop is None or _running_loop() is loop:
            return self._enqueue(item)

        try:
            loop.call_soon_threadsafe(self._enqueue, item)
        except RuntimeError as exc:
            # Loop closed underneath us: the worker serving this tab is gone.
            self.closed = True
            msg = f"Connection {self.connection_id} lost its event loop"
            raise ConnectionClosed(msg) from exc
        return True

    def _enqueue(self, item: Any) -> bool:
        try:
            self.queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        """Mark closed and wake the client generator so it can exit."""
        if self.closed:
            return
        self.closed = True
        loop = self.loop
        if loop is None or _running_loop() is loop:
            self._force_close_marker()
        else:
            try:
                loop.call_soon_threadsafe(self._force_close_marker)
            except RuntimeError:
                pass  # loop already gone; generator is gone with it

    def _force_close_marker(self) -> None:
        # Make room for the marker if the backlog is full.
        while True:
            try:
                self.queue.put_nowait(_CLOSE)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()


class ConnectionHub:
    """Tracks open SSE connections by id.

    Thread-safe: connections open and close on pounce worker threads while
    registration requests look them up from others.

    Args:
        queue_size: Backlog per connection before pushes are dropped.

    """

    def __init__(self, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def open(self) -> Connection:
        """Open a connection bound to the running event loop (if any)."""
        conn = Connection(
            connection_id=uuid.uuid4().hex,
            queue=asyncio.Queue(maxsize=self._queue_size),
            loop=_running_loop(),
        )
        with self._lock:
            self._connections[conn.connection_id] = conn
        return conn

    def get(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def close(self, connection_id: str) -> Connection | None:
        """Close and forget a connection.  Unknown ids are a no-op."""
        with self._lock:
            conn = self._connections.pop(connection_id, None)
        if conn is not None:
            conn.close()
        return conn

    def close_all(self) -> int:
        """Close every connection (server shutdown).  Returns the count."""
        with self._lock:
            conns = list(self._connections.values())
            self._connections.clear()
        for conn in conns:
            conn.close()
        return len(conns)

    async def client_generator(self, conn: Connection) -> AsyncIterator[Any]:
        """Async generator that yields SSE events from a connection's queue.

        Used as the generator for Chirp's ``EventStream``.  The first event
        tells the client its connection id so it can register components.

        Catches ``CancelledError`` (client disconnect / task cancellation)
        and ``GeneratorExit`` (generator cleanup) so disconnects end quietly.

        """
        try:
            yield Push(event=CONNECTED_EVENT, data=conn.connection_id).to_sse()
            while True:
                item = await conn.queue.get()
                if item is _CLOSE:
                    return
                yield item.to_sse() if isinstance(item, Push) else item
        except (asyncio.CancelledError, GeneratorExit):
            return
