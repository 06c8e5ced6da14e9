"""Progress events, session registry and publishers.

Models:
- ProgressEvent / ProgressEventType / WorkflowStep: the streamed event union

Sessions:
- SessionRegistry: session id -> open stream channel
- SessionChannel: queue-backed output channel of one stream

Publishers:
- Publisher: Abstract capability the workflow reports progress through
- StreamPublisher, LoggingPublisher, CompositePublisher, NullPublisher
- MetricsPublisher: Prometheus metrics derived from events
- create_publisher: Builds a publisher from configured sinks
"""

from src.research_assistant.events.metrics import (
    MetricsPublisher,
    WorkflowMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.research_assistant.events.models import (
    ProgressEvent,
    ProgressEventType,
    ProgressResult,
    WorkflowStep,
)
from src.research_assistant.events.publisher import (
    CompositePublisher,
    LoggingPublisher,
    NullPublisher,
    Publisher,
    PublisherSinkType,
    StreamPublisher,
    create_publisher,
)
from src.research_assistant.events.registry import (
    ChannelClosedError,
    SessionChannel,
    SessionRegistry,
)

__all__ = [
    # Models
    "ProgressEvent",
    "ProgressEventType",
    "ProgressResult",
    "WorkflowStep",
    # Sessions
    "ChannelClosedError",
    "SessionChannel",
    "SessionRegistry",
    # Publishers
    "CompositePublisher",
    "LoggingPublisher",
    "MetricsPublisher",
    "NullPublisher",
    "Publisher",
    "PublisherSinkType",
    "StreamPublisher",
    "create_publisher",
    # Metrics
    "WorkflowMetrics",
    "generate_metrics_output",
    "get_metrics",
]
