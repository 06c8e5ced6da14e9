"""Prometheus metrics for the research workflow.

Metrics are exposed at ``GET /metrics`` in Prometheus text format.

Metrics Defined:
- assistant_workflows_total: Counter of finished workflows by result
- assistant_stage_events_total: Counter of stage events by step
- assistant_actions_total: Counter of executed actions by type and result
- assistant_workflow_duration_seconds: Histogram of workflow duration

The MetricsPublisher derives all values from the progress events the
workflow already publishes, so the workflow itself has no metrics code.
"""

import logging
import time
from collections import OrderedDict
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.research_assistant.events.models import (
    ProgressEvent,
    ProgressEventType,
    WorkflowStep,
)
from src.research_assistant.events.publisher import Publisher


logger = logging.getLogger(__name__)


DEFAULT_MAX_TRACKED_SESSIONS = 1000

# Research calls routinely take minutes
DEFAULT_DURATION_BUCKETS = (
    1.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
)


class WorkflowMetrics:
    """Container for the workflow's Prometheus metrics.

    Pass a private ``CollectorRegistry`` in tests so repeated construction
    does not collide with the default registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.workflows_total = Counter(
            "assistant_workflows_total",
            "Total number of research workflows that finished",
            labelnames=["result"],
            registry=self.registry,
        )

        self.stage_events_total = Counter(
            "assistant_stage_events_total",
            "Total number of workflow stage events",
            labelnames=["step"],
            registry=self.registry,
        )

        self.actions_total = Counter(
            "assistant_actions_total",
            "Total number of actions executed by workflows",
            labelnames=["action_type", "result"],
            registry=self.registry,
        )

        self.workflow_duration_seconds = Histogram(
            "assistant_workflow_duration_seconds",
            "Time from the analyzing stage to the terminal event in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_workflow(self, success: bool) -> None:
        result = "completed" if success else "failed"
        self.workflows_total.labels(result=result).inc()

    def record_stage(self, step: str) -> None:
        self.stage_events_total.labels(step=step).inc()

    def record_action(self, action_type: str, success: bool) -> None:
        result = "success" if success else "failure"
        self.actions_total.labels(action_type=action_type, result=result).inc()

    def record_duration(self, duration_seconds: float) -> None:
        self.workflow_duration_seconds.observe(duration_seconds)


_default_metrics: Optional[WorkflowMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> WorkflowMetrics:
    """Get the global metrics instance, or a new one for a custom registry."""
    global _default_metrics

    if registry is not None:
        return WorkflowMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = WorkflowMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Render metrics in Prometheus text format for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsPublisher(Publisher):
    """Publisher that updates Prometheus metrics from progress events.

    - STATUS: increments the stage counter; ANALYZING starts the timer
    - COMPLETE: records a completed workflow, its actions and duration
    - ERROR: records a failed workflow and its duration
    - CONNECTED: ignored

    Durations are tracked per session id; events without a session id
    still update the counters. At most ``max_tracked_sessions`` start
    times are kept; the oldest is dropped first.
    """

    def __init__(
        self,
        metrics: Optional[WorkflowMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
        max_tracked_sessions: int = DEFAULT_MAX_TRACKED_SESSIONS,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)
        self._max_tracked_sessions = max_tracked_sessions
        self._started: "OrderedDict[str, float]" = OrderedDict()

    @property
    def metrics(self) -> WorkflowMetrics:
        return self._metrics

    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        try:
            if event.type == ProgressEventType.STATUS:
                self._handle_status(session_id, event)
            elif event.type == ProgressEventType.COMPLETE:
                self._handle_complete(session_id, event)
            elif event.type == ProgressEventType.ERROR:
                self._metrics.record_workflow(success=False)
                self._observe_duration(session_id)
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.type.value,
                str(e),
                extra={"event_type": event.type.value, "session_id": session_id},
            )

    def _handle_status(self, session_id: Optional[str], event: ProgressEvent) -> None:
        if event.step is None:
            return
        self._metrics.record_stage(event.step.value)
        if event.step == WorkflowStep.ANALYZING and session_id:
            self._started.pop(session_id, None)
            self._started[session_id] = time.monotonic()
            # Cancelled runs never publish a terminal event
            while len(self._started) > self._max_tracked_sessions:
                self._started.popitem(last=False)

    def _handle_complete(self, session_id: Optional[str], event: ProgressEvent) -> None:
        self._metrics.record_workflow(success=True)
        if event.result is not None:
            for action in event.result.actions:
                self._metrics.record_action(action.type, action.success)
        self._observe_duration(session_id)

    def _observe_duration(self, session_id: Optional[str]) -> None:
        if not session_id:
            return
        started = self._started.pop(session_id, None)
        if started is not None:
            self._metrics.record_duration(time.monotonic() - started)
