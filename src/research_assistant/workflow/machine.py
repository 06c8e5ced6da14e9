"""Stage tracking for a single workflow run.

``WorkflowRun`` enforces ``VALID_TRANSITIONS`` and keeps a timestamped
history of every transition. Because COMPLETE and FAILED are terminal, a
run can reach a terminal stage at most once, which is what guarantees a
single terminal progress event per session.
"""

import logging
from typing import Any, Dict, List, Optional

from src.research_assistant.workflow.models import (
    StageTransition,
    WorkflowStage,
    is_terminal_stage,
    is_valid_transition,
)


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when a run attempts a transition outside the transition map.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
    """

    def __init__(
        self,
        from_stage: WorkflowStage,
        to_stage: WorkflowStage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )
        super().__init__(self.message)


class WorkflowRun:
    """In-memory stage tracker for one workflow execution.

    Attributes:
        session_id: Session the run reports progress to, if any.
        current_stage: The stage the run is in.
        history: Ordered list of transitions taken so far.
        error: Failure message once the run reached FAILED.

    Example:
        >>> run = WorkflowRun("s1")
        >>> run.transition(WorkflowStage.ANALYZING)
        >>> run.current_stage
        <WorkflowStage.ANALYZING: 'analyzing'>
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        self.current_stage = WorkflowStage.START
        self.history: List[StageTransition] = []
        self.error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return is_terminal_stage(self.current_stage)

    @property
    def stages(self) -> List[WorkflowStage]:
        """Stages entered so far, in order, excluding START."""
        return [transition.to_stage for transition in self.history]

    def transition(
        self,
        to_stage: WorkflowStage,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Move the run to ``to_stage``.

        Args:
            to_stage: Target stage.
            details: Optional metadata recorded with the transition. A
                transition to FAILED stores ``details["error"]`` on the run.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        from_stage = self.current_stage

        if not is_valid_transition(from_stage, to_stage):
            logger.warning(
                "Invalid workflow transition attempted",
                extra={
                    "session_id": self.session_id,
                    "from_stage": from_stage.value,
                    "to_stage": to_stage.value,
                },
            )
            raise InvalidTransitionError(from_stage, to_stage)

        self.history.append(
            StageTransition(
                from_stage=from_stage,
                to_stage=to_stage,
                details=details or {},
            )
        )
        self.current_stage = to_stage

        if to_stage == WorkflowStage.FAILED and details:
            self.error = details.get("error")

        logger.debug(
            "Workflow transitioned",
            extra={
                "session_id": self.session_id,
                "from_stage": from_stage.value,
                "to_stage": to_stage.value,
            },
        )
