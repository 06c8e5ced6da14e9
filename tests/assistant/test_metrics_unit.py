"""Unit tests for the Prometheus metrics sink."""

import asyncio

from prometheus_client import CollectorRegistry

from src.research_assistant.actions.models import ActionResult
from src.research_assistant.events.metrics import (
    MetricsPublisher,
    WorkflowMetrics,
    generate_metrics_output,
)
from src.research_assistant.events.models import ProgressEvent, WorkflowStep
from src.research_assistant.research.models import ResearchResult


def run_async(coro):
    return asyncio.run(coro)


def _value(registry: CollectorRegistry, name: str, **labels) -> float:
    value = registry.get_sample_value(name, labels or None)
    return value or 0.0


def _publish_all(publisher: MetricsPublisher, session_id, events) -> None:
    async def scenario():
        for event in events:
            await publisher.publish(session_id, event)

    run_async(scenario())


class TestMetricsPublisher:
    def test_completed_workflow_updates_counters(self):
        registry = CollectorRegistry()
        publisher = MetricsPublisher(registry=registry)
        research = ResearchResult.completed("q", "f")
        actions = [ActionResult.succeeded("github_issue", "github", {"issueNumber": 1})]

        _publish_all(
            publisher,
            "s1",
            [
                ProgressEvent.status(WorkflowStep.ANALYZING, "a"),
                ProgressEvent.status(WorkflowStep.RESEARCHING, "r"),
                ProgressEvent.complete("done", research, actions),
            ],
        )

        assert _value(registry, "assistant_workflows_total", result="completed") == 1.0
        assert _value(registry, "assistant_stage_events_total", step="analyzing") == 1.0
        assert _value(registry, "assistant_stage_events_total", step="researching") == 1.0
        assert (
            _value(
                registry,
                "assistant_actions_total",
                action_type="github_issue",
                result="success",
            )
            == 1.0
        )
        assert _value(registry, "assistant_workflow_duration_seconds_count") == 1.0

    def test_failed_workflow_counted(self):
        registry = CollectorRegistry()
        publisher = MetricsPublisher(registry=registry)

        _publish_all(
            publisher,
            "s1",
            [
                ProgressEvent.status(WorkflowStep.ANALYZING, "a"),
                ProgressEvent.error("upstream unavailable"),
            ],
        )

        assert _value(registry, "assistant_workflows_total", result="failed") == 1.0
        assert _value(registry, "assistant_workflow_duration_seconds_count") == 1.0

    def test_events_without_session_update_counters_only(self):
        registry = CollectorRegistry()
        publisher = MetricsPublisher(registry=registry)

        _publish_all(
            publisher,
            None,
            [
                ProgressEvent.status(WorkflowStep.ANALYZING, "a"),
                ProgressEvent.error("boom"),
            ],
        )

        assert _value(registry, "assistant_workflows_total", result="failed") == 1.0
        assert _value(registry, "assistant_workflow_duration_seconds_count") == 0.0

    def test_unfinished_sessions_are_bounded(self):
        registry = CollectorRegistry()
        publisher = MetricsPublisher(registry=registry, max_tracked_sessions=2)

        async def scenario():
            for session_id in ["s1", "s2", "s3"]:
                await publisher.publish(
                    session_id, ProgressEvent.status(WorkflowStep.ANALYZING, "a")
                )
            await publisher.publish("s1", ProgressEvent.error("cancelled long ago"))
            await publisher.publish("s3", ProgressEvent.error("boom"))

        run_async(scenario())

        assert len(publisher._started) == 1
        assert _value(registry, "assistant_workflows_total", result="failed") == 2.0
        assert _value(registry, "assistant_workflow_duration_seconds_count") == 1.0

    def test_connected_event_ignored(self):
        registry = CollectorRegistry()
        publisher = MetricsPublisher(registry=registry)

        _publish_all(publisher, "s1", [ProgressEvent.connected()])

        assert _value(registry, "assistant_workflows_total", result="completed") == 0.0


def test_metrics_output_contains_metric_names():
    registry = CollectorRegistry()
    metrics = WorkflowMetrics(registry=registry)
    metrics.record_workflow(success=True)

    output = generate_metrics_output(registry).decode("utf-8")

    assert "assistant_workflows_total" in output
    assert "assistant_workflow_duration_seconds" in output
