"""Tests for ProgressEvent construction and SSE encoding."""

import json

from hypothesis import given, settings, strategies as st

from src.research_assistant.actions.models import ActionResult
from src.research_assistant.events.models import (
    ProgressEvent,
    ProgressEventType,
    WorkflowStep,
)
from src.research_assistant.research.models import ResearchResult


def _decode(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):-2])


class TestProgressEventFactories:
    def test_connected(self):
        event = ProgressEvent.connected()

        assert event.type == ProgressEventType.CONNECTED
        assert event.message == "Connected to research stream"
        assert event.is_terminal is False

    def test_status_carries_step(self):
        event = ProgressEvent.status(WorkflowStep.PLANNING, "Planning GitHub issue creation...")

        assert event.type == ProgressEventType.STATUS
        assert event.step == WorkflowStep.PLANNING
        assert event.is_terminal is False

    def test_complete_is_terminal_and_carries_result(self):
        research = ResearchResult.completed("Research X", "findings")
        action = ActionResult.succeeded(
            "github_issue", "github", {"issueNumber": 7, "issueUrl": "u"}
        )

        event = ProgressEvent.complete("GitHub issue created successfully!", research, [action])

        assert event.is_terminal is True
        assert event.step == WorkflowStep.COMPLETE
        assert event.result is not None
        assert event.result.actions == [action]

    def test_error_is_terminal(self):
        event = ProgressEvent.error("upstream unavailable")

        assert event.is_terminal is True
        assert event.step is None


class TestSseEncoding:
    def test_status_frame(self):
        payload = _decode(
            ProgressEvent.status(WorkflowStep.RESEARCHING, "Researching").to_sse()
        )

        assert payload["type"] == "status"
        assert payload["step"] == "researching"
        assert payload["message"] == "Researching"
        assert "timestamp" in payload
        assert "result" not in payload

    def test_complete_frame_uses_camel_case(self):
        research = ResearchResult.completed("Research X", "findings")
        action = ActionResult.failed("github_issue", "github", "Repository a/b not found")

        payload = _decode(
            ProgressEvent.complete("GitHub issue creation failed", research, [action]).to_sse()
        )

        assert payload["step"] == "complete"
        assert payload["result"]["research"]["findings"] == "findings"
        assert payload["result"]["actions"][0]["success"] is False
        assert payload["result"]["actions"][0]["error"] == "Repository a/b not found"

    @settings(max_examples=50)
    @given(message=st.text())
    def test_any_message_produces_single_frame(self, message: str):
        frame = ProgressEvent.error(message).to_sse()

        assert frame.count("\n\n") == 1
        assert _decode(frame)["message"] == message
