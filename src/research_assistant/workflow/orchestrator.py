"""Research-and-action workflow orchestrator.

Drives a single query through the fixed pipeline:
analyze → research → plan → execute → complete.

Each stage is a separate method. The orchestrator publishes a status event
when entering a stage and delegates the actual work to two injected
collaborators: the research collaborator (findings and issue content) and
the action collaborator (issue creation). Failures while analyzing,
researching or planning end the run with a single error event; a failed
action while executing is reported inside a completed result.

Every collaborator call runs under an optional deadline. Cancellation of
the awaiting task propagates unchanged.

Source:
- src/research_assistant/workflow/machine.py (WorkflowRun)
- src/research_assistant/events/publisher.py (Publisher)
- src/research_assistant/research/client.py (OpenAIResearchClient)
- src/research_assistant/actions/client.py (PicaClient)
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from pydantic import ValidationError

from src.research_assistant.actions.models import (
    DEFAULT_ISSUE_LABELS,
    ActionResult,
    ActionType,
    GitHubIssueParams,
    RepositoryDescriptor,
    parse_repository,
)
from src.research_assistant.events.models import ProgressEvent
from src.research_assistant.events.publisher import NullPublisher, Publisher
from src.research_assistant.research.models import (
    IssueContent,
    ResearchQuery,
    ResearchResult,
    ResearchStatus,
)
from src.research_assistant.workflow.machine import WorkflowRun
from src.research_assistant.workflow.models import (
    WorkflowOutcome,
    WorkflowStage,
    WorkflowSummary,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


STAGE_MESSAGES = {
    WorkflowStage.ANALYZING: "Analyzing your query...",
    WorkflowStage.RESEARCHING: "Conducting deep research with OpenAI...",
    WorkflowStage.PLANNING: "Planning GitHub issue creation...",
    WorkflowStage.EXECUTING: "Creating GitHub issue...",
}


@runtime_checkable
class ResearchCollaborator(Protocol):
    """Interface of the research generation service.

    ``generate_research`` may report failure either by returning a FAILED
    result or by raising.
    """

    async def generate_research(self, query: ResearchQuery) -> ResearchResult:
        ...

    async def generate_issue_content(
        self,
        findings: str,
        original_query: str,
    ) -> IssueContent:
        ...

    async def test_connection(self) -> bool:
        ...


@runtime_checkable
class ActionCollaborator(Protocol):
    """Interface of the action execution service.

    Implementations report failures through ``ActionResult.success``.
    """

    async def create_issue(self, params: GitHubIssueParams) -> ActionResult:
        ...

    async def list_repositories(self, owner: str) -> List[RepositoryDescriptor]:
        ...

    async def test_connection(self) -> bool:
        ...


class QueryValidationError(ValueError):
    """Raised when a query is rejected before the workflow starts."""

    def __init__(self, message: str = "Query is required"):
        self.message = message
        super().__init__(message)


class WorkflowError(Exception):
    """Raised when a workflow run fails.

    Attributes:
        message: Failure description, identical to the streamed error event.
        stage: Stage in which the failure happened.
    """

    def __init__(self, message: str, stage: WorkflowStage):
        self.message = message
        self.stage = stage
        super().__init__(message)


class ResearchWorkflow:
    """Orchestrates the research-and-action pipeline for one query at a time.

    The workflow holds no per-run state; concurrent ``run`` calls for
    different sessions are independent.

    Attributes:
        research_client: Research collaborator.
        action_client: Action collaborator.
        publisher: Receives progress events for the run's session.
        default_repository: Repository used when the request names none.
        placeholder_owner: Owner used for bare repository names.
        issue_labels: Labels applied to created issues.
        research_timeout_seconds: Deadline for each research call, or None.
        action_timeout_seconds: Deadline for issue creation, or None.
    """

    def __init__(
        self,
        research_client: ResearchCollaborator,
        action_client: ActionCollaborator,
        publisher: Optional[Publisher] = None,
        default_repository: str = "test-repo",
        placeholder_owner: str = "your-username",
        issue_labels: Optional[Sequence[str]] = None,
        research_timeout_seconds: Optional[float] = None,
        action_timeout_seconds: Optional[float] = None,
    ):
        self.research_client = research_client
        self.action_client = action_client
        self.publisher = publisher or NullPublisher()
        self.default_repository = default_repository
        self.placeholder_owner = placeholder_owner
        self.issue_labels = list(
            issue_labels if issue_labels is not None else DEFAULT_ISSUE_LABELS
        )
        self.research_timeout_seconds = research_timeout_seconds
        self.action_timeout_seconds = action_timeout_seconds

    async def run(
        self,
        query: Optional[str],
        session_id: Optional[str] = None,
        repository: Optional[str] = None,
    ) -> WorkflowOutcome:
        """Run the full pipeline for a query.

        Args:
            query: Research query text.
            session_id: Session that receives progress events, if any.
            repository: ``"owner/repo"`` or bare repository name. Falls back
                to ``default_repository`` when omitted.

        Returns:
            The research result, the executed actions and a summary.

        Raises:
            QueryValidationError: If the query is empty. No event is
                published and no collaborator is called.
            WorkflowError: If analyzing, researching or planning fails. An
                error event with the same message has been published.
        """
        run = WorkflowRun(session_id)
        research_query = self._validate(run, query, session_id)

        logger.info(
            "Starting research workflow",
            extra={"session_id": session_id, "query": research_query.query[:100]},
        )

        try:
            await self._enter(run, WorkflowStage.ANALYZING)
            research = await self._run_research(run, research_query)
            issue = await self._run_planning(run, research)
            action = await self._run_execution(run, issue, repository)
            return await self._complete(run, research, [action])
        except Exception as exc:
            stage = run.current_stage
            message = exc.message if isinstance(exc, WorkflowError) else _describe(exc)
            await self._fail(run, message)
            if isinstance(exc, WorkflowError):
                raise
            raise WorkflowError(message, stage) from exc

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _validate(
        self,
        run: WorkflowRun,
        query: Optional[str],
        session_id: Optional[str],
    ) -> ResearchQuery:
        """Build the ResearchQuery, rejecting empty input."""
        try:
            return ResearchQuery(query=query or "", session_id=session_id)
        except ValidationError as exc:
            run.transition(WorkflowStage.FAILED, {"error": "Query is required"})
            logger.info(
                "Rejected empty research query",
                extra={"session_id": session_id},
            )
            raise QueryValidationError() from exc

    async def _run_research(
        self,
        run: WorkflowRun,
        query: ResearchQuery,
    ) -> ResearchResult:
        """Generate research findings. A FAILED result ends the run."""
        await self._enter(run, WorkflowStage.RESEARCHING)

        research = await self._with_deadline(
            self.research_client.generate_research(query),
            self.research_timeout_seconds,
            "Research",
        )

        if research.status == ResearchStatus.FAILED:
            raise WorkflowError(research.findings, WorkflowStage.RESEARCHING)

        logger.info(
            "Research completed",
            extra={
                "session_id": run.session_id,
                "research_id": research.id,
                "findings_length": len(research.findings),
            },
        )
        return research

    async def _run_planning(
        self,
        run: WorkflowRun,
        research: ResearchResult,
    ) -> IssueContent:
        """Turn the findings into issue content. Any failure is fatal."""
        await self._enter(run, WorkflowStage.PLANNING)

        return await self._with_deadline(
            self.research_client.generate_issue_content(
                research.findings, research.query
            ),
            self.research_timeout_seconds,
            "Issue planning",
        )

    async def _run_execution(
        self,
        run: WorkflowRun,
        issue: IssueContent,
        repository: Optional[str],
    ) -> ActionResult:
        """Create the GitHub issue.

        Never raises: timeouts and collaborator errors become a failed
        ActionResult so the workflow can still complete.
        """
        await self._enter(run, WorkflowStage.EXECUTING)

        owner, repo = parse_repository(
            repository, self.default_repository, self.placeholder_owner
        )
        action_type = ActionType.GITHUB_ISSUE.value

        try:
            params = GitHubIssueParams(
                title=issue.title,
                body=issue.body,
                owner=owner,
                repo=repo,
                labels=list(self.issue_labels),
            )
            action = await self._with_deadline(
                self.action_client.create_issue(params),
                self.action_timeout_seconds,
                "Issue creation",
            )
        except Exception as exc:
            logger.warning(
                "Issue creation raised, recording failed action",
                extra={
                    "session_id": run.session_id,
                    "repository": f"{owner}/{repo}",
                    "error": _describe(exc),
                },
            )
            action = ActionResult.failed(action_type, "github", _describe(exc))

        logger.info(
            "Action executed",
            extra={
                "session_id": run.session_id,
                "action_type": action.type,
                "success": action.success,
            },
        )
        return action

    async def _complete(
        self,
        run: WorkflowRun,
        research: ResearchResult,
        actions: List[ActionResult],
    ) -> WorkflowOutcome:
        """Build the outcome, reach COMPLETE and publish the complete event."""
        outcome = WorkflowOutcome(
            session_id=run.session_id,
            research=research,
            actions=actions,
            summary=_summarize(research, actions),
        )

        run.transition(WorkflowStage.COMPLETE)
        await self._publish(
            run,
            ProgressEvent.complete(_completion_message(actions), research, actions),
        )

        logger.info(
            "Research workflow completed",
            extra={
                "session_id": run.session_id,
                "actions_executed": outcome.summary.actions_executed,
                "successful_actions": outcome.summary.successful_actions,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _enter(self, run: WorkflowRun, stage: WorkflowStage) -> None:
        """Transition to ``stage`` and publish its status event."""
        run.transition(stage)
        step = stage.step
        if step is not None:
            await self._publish(run, ProgressEvent.status(step, STAGE_MESSAGES[stage]))

    async def _fail(self, run: WorkflowRun, message: str) -> None:
        """Transition to FAILED and publish the error event.

        Does nothing if the run already reached a terminal stage, so a run
        never publishes more than one terminal event.
        """
        if run.is_finished:
            logger.error(
                "Workflow error after terminal stage",
                extra={"session_id": run.session_id, "error": message},
            )
            return

        logger.error(
            "Research workflow failed",
            extra={
                "session_id": run.session_id,
                "stage": run.current_stage.value,
                "error": message,
            },
        )
        run.transition(WorkflowStage.FAILED, {"error": message})
        await self._publish(run, ProgressEvent.error(message))

    async def _publish(self, run: WorkflowRun, event: ProgressEvent) -> None:
        """Publish an event, swallowing exceptions so delivery never fails a run."""
        try:
            await self.publisher.publish(run.session_id, event)
        except Exception:
            logger.exception(
                "Failed to publish progress event",
                extra={"session_id": run.session_id, "event_type": event.type.value},
            )

    async def _with_deadline(
        self,
        awaitable: Awaitable[T],
        timeout: Optional[float],
        operation: str,
    ) -> T:
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"{operation} timed out after {timeout:g} seconds")


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _completion_message(actions: List[ActionResult]) -> str:
    if actions and all(action.success for action in actions):
        return "GitHub issue created successfully!"
    failed = next((a for a in actions if not a.success), None)
    error = failed.error if failed is not None else "no action executed"
    return f"GitHub issue creation failed: {error}"


def _summarize(research: ResearchResult, actions: List[ActionResult]) -> WorkflowSummary:
    issue_url = None
    for action in actions:
        if action.success and action.type == ActionType.GITHUB_ISSUE.value:
            issue_url = (action.result or {}).get("issueUrl")
            break

    return WorkflowSummary(
        query=research.query,
        research_completed=research.status == ResearchStatus.COMPLETED,
        actions_executed=len(actions),
        successful_actions=sum(1 for action in actions if action.success),
        github_issue_url=issue_url,
    )
