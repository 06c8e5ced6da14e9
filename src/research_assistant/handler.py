"""Request handler for the research-and-action endpoint.

Turns an inbound ``ResearchAndActionRequest`` into a workflow run and maps
the outcome to an HTTP status code and JSON body. The handler never raises:
every failure becomes a 400 or 500 response.

Response bodies:
- 200: {success: true, sessionId, research, actions, summary}
- 400: {success: false, error: "Query is required", details}
- 500: {success: false, error: "Research and action workflow failed",
        details, timestamp}
"""

import logging
import time
import uuid
from typing import Any, Dict

from pydantic import BaseModel, Field

from src.research_assistant.models import ResearchAndActionRequest, utc_now
from src.research_assistant.workflow.orchestrator import (
    QueryValidationError,
    ResearchWorkflow,
    WorkflowError,
)

logger = logging.getLogger(__name__)


class HandlerResponse(BaseModel):
    """HTTP status code and JSON body produced by the handler."""

    status_code: int
    body: Dict[str, Any] = Field(default_factory=dict)


def generate_session_id() -> str:
    """Create a session id of the form ``session_<epoch-ms>_<hex>``."""
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _bad_request() -> HandlerResponse:
    return HandlerResponse(
        status_code=400,
        body={
            "success": False,
            "error": "Query is required",
            "details": "Please provide a research query",
        },
    )


class ResearchRequestHandler:
    """Runs the research workflow for HTTP requests.

    Attributes:
        workflow: The workflow orchestrator.
    """

    def __init__(self, workflow: ResearchWorkflow) -> None:
        self.workflow = workflow

    async def handle(self, request: ResearchAndActionRequest) -> HandlerResponse:
        """Validate the request, run the workflow and build the response.

        A missing or blank query is rejected before any collaborator is
        called or any event is published.

        Args:
            request: The parsed request body.

        Returns:
            HandlerResponse with status 200, 400 or 500.
        """
        if not request.query or not request.query.strip():
            logger.info("Rejected research request without a query")
            return _bad_request()

        session_id = request.session_id or generate_session_id()

        logger.info(
            "Handling research request",
            extra={
                "session_id": session_id,
                "query": request.query[:100],
                "github_repo": request.github_repo,
            },
        )

        try:
            outcome = await self.workflow.run(
                request.query,
                session_id=session_id,
                repository=request.github_repo,
            )
        except QueryValidationError:
            return _bad_request()
        except WorkflowError as e:
            return self._server_error(session_id, e.message)
        except Exception as e:
            logger.exception(
                "Unexpected error in research workflow",
                extra={"session_id": session_id},
            )
            return self._server_error(session_id, str(e) or type(e).__name__)

        body = {"success": True}
        body.update(outcome.to_json_dict())
        body["sessionId"] = session_id
        return HandlerResponse(status_code=200, body=body)

    def _server_error(self, session_id: str, details: str) -> HandlerResponse:
        logger.error(
            "Research and action workflow failed",
            extra={"session_id": session_id, "error": details},
        )
        return HandlerResponse(
            status_code=500,
            body={
                "success": False,
                "error": "Research and action workflow failed",
                "details": details,
                "timestamp": utc_now().isoformat(),
            },
        )
