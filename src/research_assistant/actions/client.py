"""Pica integration platform client.

This module provides an async wrapper around the Pica API, which proxies
GitHub calls through a connection stored in the Pica vault:
- Testing API connectivity
- Listing vault connections and finding the GitHub connection
- Creating GitHub issues through the passthrough API
- Listing a user's GitHub repositories
- Dispatching generic actions

Action methods never raise: failures are returned as an ActionResult with
``success=False`` so the workflow can report them as a partial outcome.
Requests are not retried.

Source:
- src/research_assistant/actions/models.py (ActionResult, GitHubIssueParams)
- src/research_assistant/config.py (pica_secret, pica_base_url)
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from src.research_assistant.actions.models import (
    ActionResult,
    ActionType,
    GitHubIssueParams,
    PlatformConnection,
    RepositoryDescriptor,
)


logger = logging.getLogger(__name__)


GITHUB_PLATFORM = "github"
PICA_PLATFORM = "pica"

# Returned by get_github_connection when the vault cannot be read because of
# an authentication failure; actions cannot run through it.
MCP_FALLBACK_CONNECTION_KEY = "mcp-fallback"

CONNECTIONS_URL = "https://app.picaos.com/connections"
API_KEYS_URL = "https://app.picaos.com/settings/api-keys"


class PicaAPIError(Exception):
    """Raised when a Pica API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code, None for network errors.
        response_body: Response body from the Pica API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None


class PicaClient:
    """Async Pica API client.

    Attributes:
        secret: Pica API secret sent as ``x-pica-secret``.
        base_url: Base URL of the Pica API.
        timeout: Request timeout in seconds.

    Example:
        >>> client = PicaClient(secret="sk_live_xxx")
        >>> async with client:
        ...     result = await client.create_issue(params)
    """

    def __init__(
        self,
        secret: str,
        base_url: str = "https://api.picaos.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Pica client.

        Args:
            secret: Pica API secret.
            base_url: Base URL of the Pica API.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``
                in tests.
        """
        self.secret = secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-pica-secret": self.secret,
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PicaClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        connection_key: Optional[str] = None,
    ) -> httpx.Response:
        """Make a single HTTP request to the Pica API.

        Args:
            method: HTTP method.
            path: API path relative to the base URL.
            json_data: Optional JSON body.
            params: Optional query parameters.
            connection_key: Vault connection key for passthrough calls.

        Returns:
            The successful HTTP response.

        Raises:
            PicaAPIError: On HTTP status >= 400 or network failure.
        """
        headers = {"x-pica-connection-key": connection_key} if connection_key else None

        logger.debug("Pica API request", extra={"method": method, "path": path})

        try:
            response = await self.client.request(
                method=method,
                url=path,
                json=json_data,
                params=params,
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.error(
                "Pica API request error",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise PicaAPIError(
                message=f"Network error: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if response.status_code >= 400:
            error_body = response.text
            logger.error(
                "Pica API error",
                extra={
                    "status_code": response.status_code,
                    "method": method,
                    "path": path,
                    "response_body": error_body[:500],
                },
            )
            raise PicaAPIError(
                message=f"Pica API error: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        logger.debug(
            "Pica API response",
            extra={"status_code": response.status_code, "path": path},
        )
        return response

    async def test_connection(self) -> bool:
        """Check that the Pica API accepts the configured secret."""
        try:
            await self._request("GET", "/available-connectors")
            logger.info("Pica API connection successful")
            return True
        except PicaAPIError as e:
            logger.warning(
                "Pica API connection failed",
                extra={"status_code": e.status_code, "error": e.message},
            )
            if e.status_code == 401:
                logger.info("Check the Pica API key at %s", API_KEYS_URL)
            return False

    async def get_connections(self) -> List[PlatformConnection]:
        """List connections stored in the Pica vault.

        Returns:
            Connections found, or an empty list if the API rejects the
            secret (actions may still work through the MCP server).

        Raises:
            PicaAPIError: For failures other than authentication.
        """
        try:
            response = await self._request("GET", "/vault/connections")
        except PicaAPIError as e:
            if e.status_code == 401:
                logger.warning(
                    "Pica API authentication failed while listing connections"
                )
                return []
            raise

        rows = response.json().get("rows") or []
        connections = [
            PlatformConnection(
                id=str(row.get("_id", "")),
                name=row.get("name") or row.get("platform", ""),
                platform=row.get("platform", ""),
                status="connected" if row.get("active") else "disconnected",
            )
            for row in rows
        ]

        logger.info("Found %d Pica connections", len(connections))
        return connections

    async def get_github_connection(self) -> Optional[Dict[str, str]]:
        """Find the GitHub connection in the Pica vault.

        Returns:
            ``{"connectionKey", "platform"}`` for the first GitHub
            connection; a placeholder with key ``mcp-fallback`` when the
            vault rejects the secret; None when no connection exists or the
            lookup fails otherwise.
        """
        try:
            response = await self._request(
                "GET",
                "/vault/connections",
                params={"platform": GITHUB_PLATFORM},
            )
        except PicaAPIError as e:
            if e.status_code == 401:
                logger.warning(
                    "Cannot verify GitHub connection due to API authentication"
                )
                return {
                    "connectionKey": MCP_FALLBACK_CONNECTION_KEY,
                    "platform": GITHUB_PLATFORM,
                }
            logger.error(
                "Failed to get GitHub connection",
                extra={"status_code": e.status_code, "error": e.message},
            )
            return None

        rows = response.json().get("rows") or []
        if not rows:
            logger.warning("No GitHub connection found")
            return None

        connection = rows[0]
        return {
            "connectionKey": connection.get("key", ""),
            "platform": connection.get("platform", GITHUB_PLATFORM),
        }

    async def create_issue(self, params: GitHubIssueParams) -> ActionResult:
        """Create a GitHub issue through the Pica passthrough API.

        Never raises; every failure is returned as a failed ActionResult.

        Args:
            params: Issue title, body, target owner/repo and labels.

        Returns:
            On success, an ActionResult whose ``result`` holds
            ``issueNumber``, ``issueUrl``, ``title`` and ``repository``.
        """
        action_type = ActionType.GITHUB_ISSUE.value
        repository = params.full_repository

        logger.info(
            "Creating GitHub issue",
            extra={"repository": repository, "title": params.title[:100]},
        )

        try:
            connection = await self.get_github_connection()
            if connection is None:
                return ActionResult.failed(
                    action_type,
                    GITHUB_PLATFORM,
                    "No GitHub connection found. Please connect GitHub in "
                    f"your Pica dashboard at: {CONNECTIONS_URL}",
                )

            if connection["connectionKey"] == MCP_FALLBACK_CONNECTION_KEY:
                return ActionResult.failed(
                    action_type,
                    GITHUB_PLATFORM,
                    "Pica API authentication issue. Please check your API key "
                    f"at {API_KEYS_URL} and ensure GitHub is connected at "
                    f"{CONNECTIONS_URL}",
                )

            response = await self._request(
                "POST",
                f"/passthrough/repos/{params.owner}/{params.repo}/issues",
                json_data={
                    "title": params.title,
                    "body": params.body,
                    "labels": params.labels,
                },
                connection_key=connection["connectionKey"],
            )
            data = response.json()
        except PicaAPIError as e:
            error_message = self._describe_issue_error(e, params)
            logger.error(
                "GitHub issue creation failed",
                extra={"repository": repository, "error": error_message},
            )
            return ActionResult.failed(action_type, GITHUB_PLATFORM, error_message)
        except Exception as e:
            logger.exception(
                "GitHub issue creation failed",
                extra={"repository": repository},
            )
            return ActionResult.failed(action_type, GITHUB_PLATFORM, str(e))

        if not isinstance(data, dict):
            logger.error(
                "Unexpected GitHub issue response",
                extra={"repository": repository, "response_type": type(data).__name__},
            )
            return ActionResult.failed(
                action_type,
                GITHUB_PLATFORM,
                "Unexpected response from GitHub API via Pica",
            )

        result = ActionResult.succeeded(
            action_type,
            GITHUB_PLATFORM,
            {
                "issueNumber": data.get("number"),
                "issueUrl": data.get("html_url"),
                "title": params.title,
                "repository": repository,
            },
        )

        logger.info(
            "GitHub issue created",
            extra={
                "repository": repository,
                "issue_number": data.get("number"),
                "issue_url": data.get("html_url"),
            },
        )
        return result

    def _describe_issue_error(self, error: PicaAPIError, params: GitHubIssueParams) -> str:
        if error.is_network_error:
            return "Network error: Unable to reach GitHub API via Pica"
        if error.status_code == 401:
            return (
                "Authentication failed. Please check your Pica API key and "
                "GitHub connection."
            )
        if error.status_code == 404:
            return (
                f"Repository {params.full_repository} not found or not accessible."
            )

        detail = self._extract_error_message(error.response_body)
        return f"GitHub API error: {error.status_code} - {detail}"

    def _extract_error_message(self, response_body: Optional[str]) -> str:
        if not response_body:
            return "Unknown error"
        try:
            message = json.loads(response_body).get("message")
        except (ValueError, AttributeError):
            message = None
        return message or response_body[:200]

    async def list_repositories(self, owner: str) -> List[RepositoryDescriptor]:
        """List a GitHub user's repositories.

        Returns:
            Repository descriptors, or an empty list on any failure.
        """
        try:
            connection = await self.get_github_connection()
            if connection is None:
                logger.warning("No GitHub connection found for repository listing")
                return []

            response = await self._request(
                "GET",
                f"/passthrough/users/{owner}/repos",
                connection_key=connection["connectionKey"],
            )
            rows = response.json() or []
            return [RepositoryDescriptor.model_validate(row) for row in rows]
        except Exception as e:
            logger.error(
                "Failed to list GitHub repositories",
                extra={"owner": owner, "error": str(e)},
            )
            return []

    async def execute_action(
        self,
        action_type: str,
        params: Dict[str, Any],
    ) -> ActionResult:
        """Execute an action by kind.

        ``github_issue`` is delegated to ``create_issue``. Other kinds are
        acknowledged without calling an external API.
        """
        logger.info("Executing action", extra={"action_type": action_type})

        if action_type == ActionType.GITHUB_ISSUE.value:
            try:
                issue_params = GitHubIssueParams.model_validate(params)
            except ValueError as e:
                return ActionResult.failed(action_type, GITHUB_PLATFORM, str(e))
            return await self.create_issue(issue_params)

        return ActionResult.succeeded(
            action_type,
            PICA_PLATFORM,
            {"message": f"{action_type} executed successfully", "params": params},
        )
