"""Unit tests for OpenAIResearchClient with a mocked chat model."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.research_assistant.research.client import (
    OpenAIResearchClient,
    ResearchError,
    _fallback_issue_content,
    _parse_llm_response,
)
from src.research_assistant.research.models import ResearchQuery, ResearchStatus


def run_async(coro):
    return asyncio.run(coro)


def _client_returning(*contents) -> OpenAIResearchClient:
    client = OpenAIResearchClient(api_key="sk-test")
    llm = MagicMock()
    llm.ainvoke = AsyncMock(side_effect=[SimpleNamespace(content=c) for c in contents])
    client._llm = llm
    return client


def _client_raising(exc: Exception) -> OpenAIResearchClient:
    client = OpenAIResearchClient(api_key="sk-test")
    llm = MagicMock()
    llm.ainvoke = AsyncMock(side_effect=exc)
    client._llm = llm
    return client


# ---------------------------------------------------------------------------
# generate_research
# ---------------------------------------------------------------------------


class TestGenerateResearch:
    def test_returns_completed_result(self):
        client = _client_returning("## Summary\nWidgets are great.")

        result = run_async(client.generate_research(ResearchQuery(query="Research X")))

        assert result.status == ResearchStatus.COMPLETED
        assert result.query == "Research X"
        assert "Widgets are great." in result.findings

    def test_sends_system_and_user_messages(self):
        client = _client_returning("findings")

        run_async(client.generate_research(ResearchQuery(query="Research X")))

        messages = client.llm.ainvoke.call_args.args[0]
        assert len(messages) == 2
        assert messages[1].content == "Research X"

    def test_llm_error_returns_failed_result(self):
        client = _client_raising(RuntimeError("upstream unavailable"))

        result = run_async(client.generate_research(ResearchQuery(query="Research X")))

        assert result.status == ResearchStatus.FAILED
        assert "upstream unavailable" in result.findings

    def test_empty_output_returns_failed_result(self):
        client = _client_returning("   ")

        result = run_async(client.generate_research(ResearchQuery(query="Research X")))

        assert result.is_failed is True


# ---------------------------------------------------------------------------
# generate_issue_content
# ---------------------------------------------------------------------------


class TestGenerateIssueContent:
    def test_parses_json_response(self):
        client = _client_returning(
            json.dumps({"title": "Adopt widgets", "body": "## Background\n..."})
        )

        issue = run_async(client.generate_issue_content("findings", "Research X"))

        assert issue.title == "Adopt widgets"
        assert issue.body.startswith("## Background")

    def test_parses_fenced_json(self):
        client = _client_returning('```json\n{"title": "T", "body": "B"}\n```')

        issue = run_async(client.generate_issue_content("findings", "Research X"))

        assert (issue.title, issue.body) == ("T", "B")

    def test_invalid_json_falls_back(self):
        client = _client_returning("Sure! Here is your issue.")

        issue = run_async(client.generate_issue_content("findings", "Research X"))

        assert issue.title == "Research: Research X"
        assert "findings" in issue.body

    def test_missing_title_falls_back(self):
        client = _client_returning(json.dumps({"body": "only body"}))

        issue = run_async(client.generate_issue_content("findings", "Research X"))

        assert issue.title == "Research: Research X"

    def test_missing_body_uses_findings(self):
        client = _client_returning(json.dumps({"title": "T"}))

        issue = run_async(client.generate_issue_content("the findings", "Research X"))

        assert issue.body == "the findings"

    def test_invocation_failure_raises(self):
        client = _client_raising(RuntimeError("rate limited"))

        with pytest.raises(ResearchError) as exc_info:
            run_async(client.generate_issue_content("findings", "Research X"))

        assert "rate limited" in exc_info.value.message
        assert isinstance(exc_info.value.cause, RuntimeError)


# ---------------------------------------------------------------------------
# Helpers and connectivity
# ---------------------------------------------------------------------------


def test_parse_llm_response_strips_plain_fences():
    assert _parse_llm_response('```\n{"title": "x"}\n```') == {"title": "x"}


def test_fallback_title_is_truncated():
    issue = _fallback_issue_content("findings", "x" * 200)

    assert len(issue.title) == 80
    assert issue.title.endswith("...")


def test_test_connection_true_on_success():
    assert run_async(_client_returning("Hello!").test_connection()) is True


def test_test_connection_false_on_error():
    assert run_async(_client_raising(RuntimeError("bad key")).test_connection()) is False
