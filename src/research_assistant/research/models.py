"""Research domain models.

- ResearchStatus: lifecycle of a research result
- ResearchQuery: immutable inbound query
- ResearchResult: findings returned by the research collaborator
- IssueContent: issue title/body produced from the findings
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.research_assistant.models import ApiModel, utc_now


class ResearchStatus(str, Enum):
    """Status of a research result.

    A FAILED result carries the failure description in its ``findings``
    field, so callers must check the status before using the findings as
    content.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ResearchQuery(ApiModel):
    """A natural-language research query.

    Attributes:
        query: The query text. Must contain at least one non-blank character.
        session_id: Optional progress-stream session identifier.
        user_id: Optional identifier of the requesting user.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    query: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        """Reject whitespace-only queries."""
        if not v.strip():
            raise ValueError("query cannot be empty")
        return v


class ResearchResult(ApiModel):
    """Outcome of a research request.

    Attributes:
        id: Unique identifier of this result.
        query: The original query text.
        findings: Research findings, or the failure description when
            ``status`` is FAILED.
        status: Result status.
        timestamp: When the result was produced (UTC).
    """

    id: str = Field(default_factory=lambda: f"research_{uuid.uuid4().hex[:12]}")
    query: str
    findings: str
    status: ResearchStatus = ResearchStatus.PENDING
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def is_failed(self) -> bool:
        return self.status == ResearchStatus.FAILED

    @classmethod
    def completed(cls, query: str, findings: str) -> "ResearchResult":
        return cls(query=query, findings=findings, status=ResearchStatus.COMPLETED)

    @classmethod
    def failed(cls, query: str, reason: str) -> "ResearchResult":
        return cls(query=query, findings=reason, status=ResearchStatus.FAILED)


class IssueContent(ApiModel):
    """Structured GitHub issue content derived from research findings."""

    title: str = Field(..., min_length=1)
    body: str = ""
