"""Progress event models for the research workflow stream.

This module defines the data pushed to the browser over Server-Sent Events:
- ProgressEventType: discriminator of the event union
- WorkflowStep: stage tag carried by status and complete events
- ProgressEvent: a single streamed event with its SSE encoding

Events carry no sequence number. Per-session ordering is the order in
which the workflow emits them.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from src.research_assistant.actions.models import ActionResult
from src.research_assistant.models import ApiModel, utc_now
from src.research_assistant.research.models import ResearchResult


class ProgressEventType(str, Enum):
    """Types of events pushed to a session's stream.

    Attributes:
        CONNECTED: First event on every stream, sent on subscribe.
        STATUS: The workflow entered a stage.
        COMPLETE: Terminal event of a finished workflow, carries the result.
        ERROR: Terminal event of a failed workflow, carries the message.
    """

    CONNECTED = "connected"
    STATUS = "status"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENT_TYPES = frozenset({ProgressEventType.COMPLETE, ProgressEventType.ERROR})


class WorkflowStep(str, Enum):
    """Stage tags reported to the client, in pipeline order."""

    ANALYZING = "analyzing"
    RESEARCHING = "researching"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETE = "complete"


class ProgressResult(ApiModel):
    """Final payload of a completed workflow."""

    research: ResearchResult
    actions: List[ActionResult] = Field(default_factory=list)


class ProgressEvent(ApiModel):
    """A single progress event.

    Attributes:
        type: Event discriminator.
        step: Stage tag for STATUS and COMPLETE events.
        message: Human-readable description.
        timestamp: When the event was created (UTC).
        result: Research and action results, COMPLETE events only.

    Example:
        >>> event = ProgressEvent.status(WorkflowStep.RESEARCHING, "Researching...")
        >>> event.to_sse().startswith("data: ")
        True
    """

    type: ProgressEventType
    step: Optional[WorkflowStep] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    result: Optional[ProgressResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    @classmethod
    def connected(cls) -> "ProgressEvent":
        return cls(
            type=ProgressEventType.CONNECTED,
            message="Connected to research stream",
        )

    @classmethod
    def status(cls, step: WorkflowStep, message: str) -> "ProgressEvent":
        return cls(type=ProgressEventType.STATUS, step=step, message=message)

    @classmethod
    def complete(
        cls,
        message: str,
        research: ResearchResult,
        actions: List[ActionResult],
    ) -> "ProgressEvent":
        return cls(
            type=ProgressEventType.COMPLETE,
            step=WorkflowStep.COMPLETE,
            message=message,
            result=ProgressResult(research=research, actions=list(actions)),
        )

    @classmethod
    def error(cls, message: str) -> "ProgressEvent":
        return cls(type=ProgressEventType.ERROR, message=message)

    def to_sse(self) -> str:
        """Encode the event as a Server-Sent Events frame.

        Returns:
            ``"data: <json>\\n\\n"`` with camelCase keys and None fields
            omitted.
        """
        payload = self.model_dump_json(by_alias=True, exclude_none=True)
        return f"data: {payload}\n\n"
