"""Unit tests for PicaClient using httpx.MockTransport."""

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from src.research_assistant.actions.client import (
    MCP_FALLBACK_CONNECTION_KEY,
    PicaAPIError,
    PicaClient,
)
from src.research_assistant.actions.models import GitHubIssueParams


def run_async(coro):
    return asyncio.run(coro)


GITHUB_CONNECTIONS = {
    "rows": [
        {
            "_id": "conn-1",
            "key": "live::github::default::abc",
            "platform": "github",
            "name": "GitHub",
            "active": True,
        }
    ]
}


def _make_client(handler: Callable[[httpx.Request], httpx.Response]) -> PicaClient:
    return PicaClient(secret="pica-secret", transport=httpx.MockTransport(handler))


def _make_params(owner: str = "acme", repo: str = "widgets") -> GitHubIssueParams:
    return GitHubIssueParams(title="Adopt widgets", body="Body", owner=owner, repo=repo)


def _router(issue_response: httpx.Response, seen: List[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/vault/connections"):
            return httpx.Response(200, json=GITHUB_CONNECTIONS)
        if request.url.path.endswith("/issues"):
            return issue_response
        return httpx.Response(404, json={"message": "unexpected"})

    return handler


def _create_issue(client: PicaClient, params: GitHubIssueParams):
    async def scenario():
        async with client:
            return await client.create_issue(params)

    return run_async(scenario())


# ---------------------------------------------------------------------------
# create_issue
# ---------------------------------------------------------------------------


class TestCreateIssue:
    def test_success_returns_issue_details(self):
        seen: List[httpx.Request] = []
        client = _make_client(
            _router(
                httpx.Response(
                    201,
                    json={
                        "number": 7,
                        "html_url": "https://github.com/acme/widgets/issues/7",
                    },
                ),
                seen,
            )
        )

        result = _create_issue(client, _make_params())

        assert result.success is True
        assert result.type == "github_issue"
        assert result.platform == "github"
        assert result.result == {
            "issueNumber": 7,
            "issueUrl": "https://github.com/acme/widgets/issues/7",
            "title": "Adopt widgets",
            "repository": "acme/widgets",
        }

        issue_request = seen[-1]
        assert issue_request.url.path.endswith("/passthrough/repos/acme/widgets/issues")
        assert issue_request.headers["x-pica-secret"] == "pica-secret"
        assert issue_request.headers["x-pica-connection-key"] == "live::github::default::abc"
        body = json.loads(issue_request.content)
        assert body["labels"] == ["research", "ai-generated"]

    def test_not_found_maps_to_repository_message(self):
        client = _make_client(_router(httpx.Response(404, json={"message": "Not Found"}), []))

        result = _create_issue(client, _make_params())

        assert result.success is False
        assert result.error == "Repository acme/widgets not found or not accessible."

    def test_unauthorized_maps_to_auth_message(self):
        client = _make_client(_router(httpx.Response(401, json={"message": "Bad"}), []))

        result = _create_issue(client, _make_params())

        assert result.success is False
        assert result.error.startswith("Authentication failed")

    def test_other_status_includes_api_message(self):
        client = _make_client(
            _router(httpx.Response(422, json={"message": "Validation Failed"}), [])
        )

        result = _create_issue(client, _make_params())

        assert result.error == "GitHub API error: 422 - Validation Failed"

    @pytest.mark.parametrize("payload", [[], "created", 42])
    def test_non_object_success_body_fails(self, payload):
        client = _make_client(_router(httpx.Response(201, json=payload), []))

        result = _create_issue(client, _make_params())

        assert result.success is False
        assert result.error == "Unexpected response from GitHub API via Pica"

    def test_network_error_maps_to_network_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/vault/connections"):
                return httpx.Response(200, json=GITHUB_CONNECTIONS)
            raise httpx.ConnectError("connection refused", request=request)

        result = _create_issue(_make_client(handler), _make_params())

        assert result.success is False
        assert result.error == "Network error: Unable to reach GitHub API via Pica"

    def test_missing_github_connection(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"rows": []})

        result = _create_issue(_make_client(handler), _make_params())

        assert result.success is False
        assert "No GitHub connection found" in result.error

    def test_vault_auth_failure_yields_guidance(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Unauthorized"})

        result = _create_issue(_make_client(handler), _make_params())

        assert result.success is False
        assert "authentication issue" in result.error


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


class TestConnections:
    def test_get_connections_parses_rows(self):
        client = _make_client(lambda request: httpx.Response(200, json=GITHUB_CONNECTIONS))

        connections = run_async(client.get_connections())

        assert len(connections) == 1
        assert connections[0].id == "conn-1"
        assert connections[0].platform == "github"
        assert connections[0].status == "connected"

    def test_get_connections_unauthorized_returns_empty(self):
        client = _make_client(lambda request: httpx.Response(401, text="nope"))

        assert run_async(client.get_connections()) == []

    def test_get_connections_server_error_raises(self):
        client = _make_client(lambda request: httpx.Response(500, text="boom"))

        async def scenario():
            try:
                await client.get_connections()
            except PicaAPIError as e:
                return e
            return None

        error = run_async(scenario())

        assert error is not None
        assert error.status_code == 500
        assert error.is_network_error is False

    def test_get_github_connection_filters_by_platform(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=GITHUB_CONNECTIONS)

        connection = run_async(_make_client(handler).get_github_connection())

        assert connection == {
            "connectionKey": "live::github::default::abc",
            "platform": "github",
        }
        assert seen[0].url.params["platform"] == "github"

    def test_get_github_connection_unauthorized_returns_fallback(self):
        client = _make_client(lambda request: httpx.Response(401, text="nope"))

        connection = run_async(client.get_github_connection())

        assert connection["connectionKey"] == MCP_FALLBACK_CONNECTION_KEY

    def test_get_github_connection_other_error_returns_none(self):
        client = _make_client(lambda request: httpx.Response(503, text="down"))

        assert run_async(client.get_github_connection()) is None

    def test_test_connection(self):
        ok = _make_client(lambda request: httpx.Response(200, json=[]))
        rejected = _make_client(lambda request: httpx.Response(401, text="nope"))

        assert run_async(ok.test_connection()) is True
        assert run_async(rejected.test_connection()) is False


# ---------------------------------------------------------------------------
# Repositories and generic actions
# ---------------------------------------------------------------------------


class TestListRepositories:
    def test_lists_repositories(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/vault/connections"):
                return httpx.Response(200, json=GITHUB_CONNECTIONS)
            assert request.url.path.endswith("/passthrough/users/acme/repos")
            return httpx.Response(
                200,
                json=[
                    {
                        "name": "widgets",
                        "full_name": "acme/widgets",
                        "description": None,
                        "private": False,
                        "id": 1,
                    }
                ],
            )

        repositories = run_async(_make_client(handler).list_repositories("acme"))

        assert [r.full_name for r in repositories] == ["acme/widgets"]

    def test_failure_returns_empty_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/vault/connections"):
                return httpx.Response(200, json=GITHUB_CONNECTIONS)
            return httpx.Response(500, text="boom")

        assert run_async(_make_client(handler).list_repositories("acme")) == []


class TestExecuteAction:
    def test_github_issue_delegates_to_create_issue(self):
        client = _make_client(
            _router(httpx.Response(201, json={"number": 3, "html_url": "u"}), [])
        )

        result = run_async(
            client.execute_action(
                "github_issue",
                {"title": "T", "body": "B", "owner": "acme", "repo": "widgets"},
            )
        )

        assert result.success is True
        assert result.result["issueNumber"] == 3

    def test_github_issue_with_invalid_params_fails(self):
        client = _make_client(lambda request: httpx.Response(500))

        result = run_async(client.execute_action("github_issue", {"title": ""}))

        assert result.success is False

    def test_other_actions_are_acknowledged(self):
        client = _make_client(lambda request: httpx.Response(500))

        result = run_async(client.execute_action("slack_message", {"text": "hi"}))

        assert result.success is True
        assert result.platform == "pica"
