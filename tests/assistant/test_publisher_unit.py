"""Unit tests for the progress publishers and the publisher factory."""

import asyncio
import logging
from typing import List, Optional, Tuple

from prometheus_client import CollectorRegistry

from src.research_assistant.events.metrics import MetricsPublisher
from src.research_assistant.events.models import ProgressEvent, WorkflowStep
from src.research_assistant.events.publisher import (
    CompositePublisher,
    LoggingPublisher,
    NullPublisher,
    Publisher,
    PublisherSinkType,
    StreamPublisher,
    create_publisher,
)
from src.research_assistant.events.registry import SessionRegistry


def run_async(coro):
    return asyncio.run(coro)


class RecordingPublisher(Publisher):
    def __init__(self) -> None:
        self.events: List[Tuple[Optional[str], ProgressEvent]] = []
        self.closed = False

    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        self.events.append((session_id, event))

    async def close(self) -> None:
        self.closed = True


class ExplodingPublisher(Publisher):
    async def publish(self, session_id: Optional[str], event: ProgressEvent) -> None:
        raise RuntimeError("sink down")

    async def close(self) -> None:
        raise RuntimeError("close failed")


def _status() -> ProgressEvent:
    return ProgressEvent.status(WorkflowStep.ANALYZING, "Analyzing your query...")


# ---------------------------------------------------------------------------
# StreamPublisher
# ---------------------------------------------------------------------------


class TestStreamPublisher:
    def test_delivers_to_registered_channel(self):
        async def scenario():
            registry = SessionRegistry()
            channel = registry.open("s1")
            await StreamPublisher(registry).publish("s1", _status())
            return await channel.receive(timeout=1.0)

        event = run_async(scenario())

        assert event is not None
        assert event.step == WorkflowStep.ANALYZING

    def test_unknown_session_is_noop(self):
        registry = SessionRegistry()

        run_async(StreamPublisher(registry).publish("nobody", _status()))

        assert len(registry) == 0

    def test_missing_session_id_is_noop(self):
        registry = SessionRegistry()
        channel = registry.open("s1")

        run_async(StreamPublisher(registry).publish(None, _status()))

        assert channel._queue.empty()

    def test_closed_channel_does_not_raise(self):
        registry = SessionRegistry()
        channel = registry.open("s1")
        channel.close()

        run_async(StreamPublisher(registry).publish("s1", _status()))

    def test_only_target_session_receives_event(self):
        registry = SessionRegistry()
        target = registry.open("a")
        other = registry.open("b")

        run_async(StreamPublisher(registry).publish("a", _status()))

        assert target._queue.qsize() == 1
        assert other._queue.empty()


# ---------------------------------------------------------------------------
# LoggingPublisher
# ---------------------------------------------------------------------------


class TestLoggingPublisher:
    def test_status_logged_at_info(self, caplog):
        with caplog.at_level(logging.INFO):
            run_async(LoggingPublisher().publish("s1", _status()))

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.session_id == "s1"
        assert record.event_type == "status"
        assert record.step == "analyzing"

    def test_error_logged_at_error(self, caplog):
        with caplog.at_level(logging.INFO):
            run_async(LoggingPublisher().publish("s1", ProgressEvent.error("boom")))

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.event_message == "boom"


# ---------------------------------------------------------------------------
# CompositePublisher / NullPublisher
# ---------------------------------------------------------------------------


class TestCompositePublisher:
    def test_fans_out_to_all_children(self):
        first, second = RecordingPublisher(), RecordingPublisher()
        composite = CompositePublisher([first, second])

        run_async(composite.publish("s1", _status()))

        assert len(first.events) == 1
        assert len(second.events) == 1

    def test_failing_child_does_not_block_others(self):
        recorder = RecordingPublisher()
        composite = CompositePublisher([ExplodingPublisher(), recorder])

        run_async(composite.publish("s1", _status()))

        assert len(recorder.events) == 1

    def test_close_closes_every_child(self):
        recorder = RecordingPublisher()
        composite = CompositePublisher([ExplodingPublisher(), recorder])

        run_async(composite.close())

        assert recorder.closed is True

    def test_add_publisher(self):
        composite = CompositePublisher()
        recorder = RecordingPublisher()

        composite.add_publisher(recorder)

        assert composite.publishers == [recorder]


def test_null_publisher_discards_events():
    run_async(NullPublisher().publish("s1", _status()))


# ---------------------------------------------------------------------------
# create_publisher
# ---------------------------------------------------------------------------


class TestCreatePublisher:
    def test_defaults_to_stream(self):
        publisher = create_publisher(SessionRegistry())

        assert isinstance(publisher, StreamPublisher)

    def test_single_sink_is_not_wrapped(self):
        publisher = create_publisher(SessionRegistry(), [PublisherSinkType.LOGGING])

        assert isinstance(publisher, LoggingPublisher)

    def test_multiple_sinks_build_composite(self):
        metrics_publisher = MetricsPublisher(registry=CollectorRegistry())

        publisher = create_publisher(
            SessionRegistry(),
            [
                PublisherSinkType.STREAM,
                PublisherSinkType.LOGGING,
                PublisherSinkType.METRICS,
            ],
            metrics_publisher=metrics_publisher,
        )

        assert isinstance(publisher, CompositePublisher)
        kinds = [type(p) for p in publisher.publishers]
        assert kinds == [StreamPublisher, LoggingPublisher, MetricsPublisher]
        assert publisher.publishers[2] is metrics_publisher
