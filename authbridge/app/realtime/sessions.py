"""
Session Registry Module

Maps opaque session identifiers to open Server-Sent Events sinks.

A session id is created by the status endpoint, a sink is attached when the
observing client opens its push channel, and the entry disappears when the
sink is closed by a dispatch or detached on client disconnect. Nothing here
is persisted.

All mutations are synchronous, so on a single asyncio event loop no handler
can observe a half-applied change and no lock is needed.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger("authbridge.realtime.sessions")

CLOSE_EVENT = "event: close\n\n"


def format_sse_data(payload: Dict[str, Any]) -> str:
    """Serialize one payload as a `data:` event."""
    return f"data: {json.dumps(payload, default=str)}\n\n"


# ============================================================================
# SSE Sink
# ============================================================================

class EventSink:
    """
    Write side of one push channel.

    Chunks are queued until the streaming response pulls them. Once closed,
    writes are dropped and the stream ends after draining what was queued.
    """

    _END = object()

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: str) -> bool:
        """
        Queue a chunk for the client.

        Returns:
            False if the sink was already closed and the chunk was dropped
        """
        if self._closed:
            return False
        self._queue.put_nowait(chunk)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._END)

    async def stream(self) -> AsyncIterator[str]:
        """Yield queued chunks until the sink is closed."""
        while True:
            chunk = await self._queue.get()
            if chunk is self._END:
                return
            yield chunk


# ============================================================================
# Session Registry
# ============================================================================

class SessionRegistry:
    """
    Registry of open push channels keyed by session id.

    Constructed once per application and passed to every handler that needs
    it; tests build their own instances.

    Invariants:
        - at most one sink per session id (last attach wins)
        - after dispatch(..., close=True) or detach, no entry remains
        - dispatching to an unknown id is a silent no-op
    """

    def __init__(self) -> None:
        self._sinks: Dict[str, EventSink] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sinks

    def __len__(self) -> int:
        return len(self._sinks)

    def create(self) -> str:
        """Allocate a new globally unique session id."""
        return str(uuid.uuid4())

    def get(self, session_id: str) -> Optional[EventSink]:
        return self._sinks.get(session_id)

    def attach(self, session_id: str, sink: EventSink) -> None:
        """
        Register a sink for a session id.

        A previous sink for the same id receives the terminal marker and is
        closed, so its stream ends instead of waiting forever.
        """
        previous = self._sinks.get(session_id)
        self._sinks[session_id] = sink
        if previous is not None and previous is not sink:
            previous.write(CLOSE_EVENT)
            previous.close()
            logger.info(
                "Replaced existing status channel",
                extra={"session_id": session_id},
            )
        logger.debug("Attached status channel", extra={"session_id": session_id})

    def dispatch(
        self,
        session_id: Optional[str],
        payload: Dict[str, Any],
        close: bool = True,
    ) -> bool:
        """
        Push one event to the session's channel.

        Args:
            session_id: Target session; None or unknown ids are ignored
            payload: JSON-serializable event body
            close: Send the terminal marker, end the stream and forget the session

        Returns:
            True if a sink received the event
        """
        if not session_id:
            return False
        sink = self._sinks.get(session_id)
        if sink is None:
            logger.debug(
                "No status channel for session, dropping event",
                extra={"session_id": session_id},
            )
            return False

        delivered = sink.write(format_sse_data(payload))
        if close:
            sink.write(CLOSE_EVENT)
            sink.close()
            self._sinks.pop(session_id, None)
            logger.info("Closed status channel", extra={"session_id": session_id})
        return delivered

    def detach(self, session_id: str, sink: Optional[EventSink] = None) -> None:
        """
        Remove the mapping without sending anything.

        When ``sink`` is given the entry is only removed if it still holds
        that sink, so a stale disconnect cannot evict a newer channel.
        """
        current = self._sinks.get(session_id)
        if current is None:
            return
        if sink is not None and current is not sink:
            return
        del self._sinks[session_id]
        logger.debug("Detached status channel", extra={"session_id": session_id})

    def close_all(self) -> int:
        """
        Send the terminal marker to every open channel and clear the registry.

        Returns:
            Number of channels closed
        """
        sinks = list(self._sinks.values())
        self._sinks.clear()
        for sink in sinks:
            sink.write(CLOSE_EVENT)
            sink.close()
        return len(sinks)
