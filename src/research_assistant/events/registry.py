"""Session registry mapping session identifiers to open progress streams.

A session is created when a client opens ``GET /api/sse/{session_id}`` and
destroyed when that stream ends. The registry holds at most one channel per
session id; registering again replaces (and closes) the previous channel.

The registry has no capacity bound. Stream handlers must unregister their
channel when the connection closes, otherwise entries accumulate.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from src.research_assistant.events.models import ProgressEvent
from src.research_assistant.models import utc_now


logger = logging.getLogger(__name__)


class ChannelClosedError(Exception):
    """Raised when sending to a channel that has been closed."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Channel for session {session_id} is closed")


class SessionChannel:
    """Output channel for one progress stream.

    Events are buffered in an unbounded ``asyncio.Queue`` so that ``send``
    never blocks the publishing workflow. The stream handler drains the
    queue with ``receive``. A ``None`` item marks the channel as closed.

    Attributes:
        session_id: Session this channel belongs to.
        created_at: When the channel was opened (UTC).
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.created_at: datetime = utc_now()
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: ProgressEvent) -> None:
        """Queue an event for delivery without blocking.

        Raises:
            ChannelClosedError: If the channel has been closed.
        """
        if self._closed:
            raise ChannelClosedError(self.session_id)
        self._queue.put_nowait(event)

    async def receive(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Wait for the next event.

        Args:
            timeout: Seconds to wait before giving up. None waits forever.

        Returns:
            The next event, or None once the channel is closed and drained.

        Raises:
            asyncio.TimeoutError: If no event arrived within ``timeout``.
        """
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self) -> None:
        """Close the channel, waking up any pending ``receive``."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)


class SessionRegistry:
    """Thread-safe map of session id to open ``SessionChannel``.

    Entries are independent of each other; the lock only protects the map
    itself against concurrent register/lookup/unregister calls.

    Example:
        >>> registry = SessionRegistry()
        >>> channel = registry.open("s1")
        >>> registry.lookup("s1") is channel
        True
        >>> registry.unregister("s1", channel)
        True
        >>> registry.lookup("s1") is None
        True
    """

    def __init__(self) -> None:
        self._channels: Dict[str, SessionChannel] = {}
        self._lock = threading.Lock()

    def register(self, session_id: str, channel: SessionChannel) -> None:
        """Store ``channel`` for ``session_id``, replacing any previous one.

        A replaced channel is closed so its stream terminates.
        """
        with self._lock:
            previous = self._channels.get(session_id)
            self._channels[session_id] = channel

        if previous is not None and previous is not channel:
            logger.info(
                "Replacing progress stream for session",
                extra={"session_id": session_id},
            )
            previous.close()

    def open(self, session_id: str) -> SessionChannel:
        """Create a channel for ``session_id`` and register it."""
        channel = SessionChannel(session_id)
        self.register(session_id, channel)
        return channel

    def unregister(
        self,
        session_id: str,
        channel: Optional[SessionChannel] = None,
    ) -> bool:
        """Remove the entry for ``session_id``.

        Args:
            session_id: Session to remove.
            channel: If given, only remove the entry while it still maps to
                this channel. A stream that was replaced by a newer
                subscriber must not evict the newer one on disconnect.

        Returns:
            True if an entry was removed, False otherwise.
        """
        with self._lock:
            current = self._channels.get(session_id)
            if current is None:
                return False
            if channel is not None and current is not channel:
                return False
            del self._channels[session_id]
        return True

    def lookup(self, session_id: str) -> Optional[SessionChannel]:
        """Return the open channel for ``session_id``, or None."""
        with self._lock:
            return self._channels.get(session_id)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._channels)

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._channels
