"""Research-and-action workflow.

A run moves through:
- start → analyzing → researching → planning → executing → complete
- any non-terminal stage → failed

COMPLETE and FAILED are terminal, so each run publishes exactly one
terminal progress event.
"""

from src.research_assistant.workflow.models import (
    StageTransition,
    VALID_TRANSITIONS,
    WorkflowOutcome,
    WorkflowStage,
    WorkflowSummary,
    is_terminal_stage,
    is_valid_transition,
)
from src.research_assistant.workflow.machine import (
    InvalidTransitionError,
    WorkflowRun,
)
from src.research_assistant.workflow.orchestrator import (
    ActionCollaborator,
    QueryValidationError,
    ResearchCollaborator,
    ResearchWorkflow,
    WorkflowError,
)

__all__ = [
    # Models
    "StageTransition",
    "VALID_TRANSITIONS",
    "WorkflowOutcome",
    "WorkflowStage",
    "WorkflowSummary",
    "is_terminal_stage",
    "is_valid_transition",
    # Run tracking
    "InvalidTransitionError",
    "WorkflowRun",
    # Orchestrator
    "ActionCollaborator",
    "QueryValidationError",
    "ResearchCollaborator",
    "ResearchWorkflow",
    "WorkflowError",
]
