"""Workflow stage models and results.

This module defines:
- WorkflowStage: Stages of the research-and-action pipeline
- StageTransition: Record of one transition with its timestamp
- VALID_TRANSITIONS: Map of allowed stage transitions
- WorkflowSummary / WorkflowOutcome: synchronous result of a run

The pipeline is strictly linear. Every non-terminal stage may fail;
COMPLETE and FAILED have no outgoing transitions.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.research_assistant.actions.models import ActionResult
from src.research_assistant.events.models import WorkflowStep
from src.research_assistant.models import ApiModel, utc_now
from src.research_assistant.research.models import ResearchResult


class WorkflowStage(str, Enum):
    """Stages a research workflow progresses through.

    Stage Flow:
        start → analyzing → researching → planning → executing → complete

    Any non-terminal stage can transition to 'failed'.
    """

    START = "start"
    ANALYZING = "analyzing"
    RESEARCHING = "researching"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def step(self) -> Optional[WorkflowStep]:
        """Stage tag reported to the client, None for START and FAILED."""
        try:
            return WorkflowStep(self.value)
        except ValueError:
            return None


class StageTransition(BaseModel):
    """Record of a stage transition."""

    from_stage: WorkflowStage
    to_stage: WorkflowStage
    timestamp: datetime = Field(default_factory=utc_now)
    details: Dict[str, Any] = Field(default_factory=dict)


VALID_TRANSITIONS: Dict[WorkflowStage, List[WorkflowStage]] = {
    WorkflowStage.START: [
        WorkflowStage.ANALYZING,
        WorkflowStage.FAILED,
    ],
    WorkflowStage.ANALYZING: [
        WorkflowStage.RESEARCHING,
        WorkflowStage.FAILED,
    ],
    WorkflowStage.RESEARCHING: [
        WorkflowStage.PLANNING,
        WorkflowStage.FAILED,
    ],
    WorkflowStage.PLANNING: [
        WorkflowStage.EXECUTING,
        WorkflowStage.FAILED,
    ],
    # A failed action does not fail the workflow, but an unexpected
    # error while assembling the result still can.
    WorkflowStage.EXECUTING: [
        WorkflowStage.COMPLETE,
        WorkflowStage.FAILED,
    ],
    WorkflowStage.COMPLETE: [],
    WorkflowStage.FAILED: [],
}


def is_valid_transition(from_stage: WorkflowStage, to_stage: WorkflowStage) -> bool:
    """Check whether moving from ``from_stage`` to ``to_stage`` is allowed.

    Example:
        >>> is_valid_transition(WorkflowStage.START, WorkflowStage.ANALYZING)
        True
        >>> is_valid_transition(WorkflowStage.COMPLETE, WorkflowStage.FAILED)
        False
    """
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


def is_terminal_stage(stage: WorkflowStage) -> bool:
    """Check whether a stage has no outgoing transitions."""
    return len(VALID_TRANSITIONS.get(stage, [])) == 0


class WorkflowSummary(ApiModel):
    """Derived counts returned alongside the workflow result."""

    query: str
    research_completed: bool
    actions_executed: int
    successful_actions: int
    github_issue_url: Optional[str] = None


class WorkflowOutcome(ApiModel):
    """Synchronous result of a completed workflow run."""

    session_id: Optional[str] = None
    research: ResearchResult
    actions: List[ActionResult] = Field(default_factory=list)
    summary: WorkflowSummary
