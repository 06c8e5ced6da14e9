"""Progress publishers for the research workflow.

The workflow reports progress through the abstract ``Publisher`` interface
and never learns whether anyone is listening. Delivery is best effort: the
synchronous HTTP response is the authoritative result, so publishers swallow
delivery failures instead of raising into the workflow.

- StreamPublisher: Pushes events to the session's open SSE stream
- LoggingPublisher: Writes events as structured log entries
- CompositePublisher: Fans out to several publishers
- NullPublisher: Discards events (for testing)
- MetricsPublisher: Updates Prometheus metrics (see metrics.py)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from src.research_assistant.events.models import ProgressEvent, ProgressEventType
from src.research_assistant.events.registry import SessionRegistry


logger = logging.getLogger(__name__)


class PublisherSinkType(str, Enum):
    """Sinks that progress events can be routed to.

    Attributes:
        STREAM: The session's Server-Sent Events stream.
        LOGGING: Structured log entries.
        METRICS: Prometheus counters and histograms.
    """

    STREAM = "stream"
    LOGGING = "logging"
    METRICS = "metrics"


class Publisher(ABC):
    """Abstract base class for progress publishers.

    Implementations should be:
    - Non-blocking: publish() is awaited between workflow stages
    - Fault-tolerant: publish() must not raise on delivery failure
    """

    @abstractmethod
    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        """Publish an event addressed to a session.

        Args:
            session_id: Target session. None means nobody can be listening.
            event: The progress event.
        """
        pass

    async def close(self) -> None:
        """Release resources. The default implementation does nothing."""
        pass


class StreamPublisher(Publisher):
    """Publisher that writes events to the session's registered channel.

    Unknown or already closed sessions are a silent no-op.

    Example:
        >>> registry = SessionRegistry()
        >>> publisher = StreamPublisher(registry)
        >>> await publisher.publish("nobody", ProgressEvent.error("x"))  # no-op
    """

    def __init__(self, registry: SessionRegistry):
        self._registry = registry

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        if not session_id:
            return

        channel = self._registry.lookup(session_id)
        if channel is None:
            return

        try:
            channel.send(event)
        except Exception as e:
            logger.debug(
                "Dropped progress event for session %s: %s",
                session_id,
                str(e),
                extra={
                    "session_id": session_id,
                    "event_type": event.type.value,
                },
            )


class LoggingPublisher(Publisher):
    """Publisher that logs every event.

    Error events are logged at ERROR level, everything else at INFO.
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        level = logging.ERROR if event.type == ProgressEventType.ERROR else logging.INFO

        self._logger.log(
            level,
            "Progress event: %s%s for session %s",
            event.type.value,
            f"/{event.step.value}" if event.step else "",
            session_id,
            extra={
                "session_id": session_id,
                "event_type": event.type.value,
                "step": event.step.value if event.step else None,
                "event_message": event.message,
            },
        )


class CompositePublisher(Publisher):
    """Publisher that delegates to multiple child publishers.

    Each child is called independently; a failing child is logged and
    does not prevent delivery to the others.
    """

    def __init__(self, publishers: Optional[List[Publisher]] = None):
        self._publishers: List[Publisher] = publishers or []

    def add_publisher(self, publisher: Publisher) -> None:
        self._publishers.append(publisher)

    @property
    def publishers(self) -> List[Publisher]:
        return list(self._publishers)

    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        for publisher in self._publishers:
            try:
                await publisher.publish(session_id, event)
            except Exception as e:
                logger.error(
                    "Failed to publish event to %s: %s",
                    type(publisher).__name__,
                    str(e),
                    extra={
                        "publisher_type": type(publisher).__name__,
                        "event_type": event.type.value,
                        "session_id": session_id,
                    },
                )

    async def close(self) -> None:
        for publisher in self._publishers:
            try:
                await publisher.close()
            except Exception as e:
                logger.error(
                    "Failed to close publisher %s: %s",
                    type(publisher).__name__,
                    str(e),
                )


class NullPublisher(Publisher):
    """Publisher that discards all events."""

    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        pass


def create_publisher(
    registry: SessionRegistry,
    sink_types: Optional[List[PublisherSinkType]] = None,
    metrics_publisher: Optional[Publisher] = None,
) -> Publisher:
    """Build a publisher for the requested sinks.

    Args:
        registry: Session registry backing the STREAM sink.
        sink_types: Sinks to enable. None or empty enables only STREAM.
        metrics_publisher: Publisher to use for the METRICS sink. If None,
            a MetricsPublisher on the default Prometheus registry is created.

    Returns:
        A single publisher, or a CompositePublisher when several sinks are
        enabled.

    Example:
        >>> publisher = create_publisher(SessionRegistry())
        >>> isinstance(publisher, StreamPublisher)
        True
    """
    if not sink_types:
        return StreamPublisher(registry)

    publishers: List[Publisher] = []

    for sink_type in sink_types:
        if sink_type == PublisherSinkType.STREAM:
            publishers.append(StreamPublisher(registry))
        elif sink_type == PublisherSinkType.LOGGING:
            publishers.append(LoggingPublisher())
        elif sink_type == PublisherSinkType.METRICS:
            if metrics_publisher is None:
                # metrics.py imports this module
                from src.research_assistant.events.metrics import MetricsPublisher

                metrics_publisher = MetricsPublisher()
            publishers.append(metrics_publisher)
        else:
            logger.warning("Unknown publisher sink type: %s, skipping", sink_type)

    if not publishers:
        return StreamPublisher(registry)

    if len(publishers) == 1:
        return publishers[0]

    return CompositePublisher(publishers)
