"""Action domain models for the integration platform.

This module defines the data exchanged with the action collaborator:
- ActionType: known action kinds (the tag stays open-ended on results)
- ActionResult: outcome of a single action, success or failure
- GitHubIssueParams: parameters for issue creation
- PlatformConnection: a connection registered in the platform vault
- RepositoryDescriptor: repository entry returned by the listing call

It also holds ``parse_repository``, which turns the user-supplied
repository descriptor into an (owner, repo) pair.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.research_assistant.models import ApiModel, utc_now


DEFAULT_ISSUE_LABELS = ["research", "ai-generated"]


class ActionType(str, Enum):
    """Action kinds known to the assistant.

    Only GITHUB_ISSUE is executed by the workflow today; the others are
    accepted by ``PicaClient.execute_action`` as generic actions.
    """

    GITHUB_ISSUE = "github_issue"
    EMAIL = "email"
    SHEET_UPDATE = "sheet_update"
    SLACK_MESSAGE = "slack_message"


class ActionResult(ApiModel):
    """Result of executing an action on an external platform.

    Exactly one of ``result`` and ``error`` is populated: ``result`` when
    ``success`` is true, ``error`` otherwise.

    Attributes:
        type: Action kind, e.g. "github_issue". Unknown kinds are allowed.
        platform: Platform that executed the action, e.g. "github".
        success: Whether the action succeeded.
        result: Platform-specific payload on success. For GitHub issues:
            issueNumber, issueUrl, title, repository.
        error: Error description on failure.
        timestamp: When the action finished (UTC).
    """

    type: str = Field(..., min_length=1)
    platform: str = Field(..., min_length=1)
    success: bool
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_result_or_error(self) -> "ActionResult":
        if self.success:
            if self.result is None or self.error is not None:
                raise ValueError("successful actions carry a result and no error")
        else:
            if self.error is None or self.result is not None:
                raise ValueError("failed actions carry an error and no result")
        return self

    @classmethod
    def succeeded(
        cls,
        action_type: str,
        platform: str,
        result: Dict[str, Any],
    ) -> "ActionResult":
        return cls(type=action_type, platform=platform, success=True, result=result)

    @classmethod
    def failed(cls, action_type: str, platform: str, error: str) -> "ActionResult":
        return cls(type=action_type, platform=platform, success=False, error=error)


class GitHubIssueParams(BaseModel):
    """Parameters for creating a GitHub issue."""

    title: str = Field(..., min_length=1)
    body: str = ""
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    labels: List[str] = Field(default_factory=lambda: list(DEFAULT_ISSUE_LABELS))

    @property
    def full_repository(self) -> str:
        return f"{self.owner}/{self.repo}"


class PlatformConnection(ApiModel):
    """A connection stored in the integration platform's vault."""

    id: str
    name: str
    platform: str
    status: str = Field(
        default="disconnected",
        description="connected | disconnected | error",
    )


class RepositoryDescriptor(BaseModel):
    """Repository entry as returned by the GitHub listing endpoint."""

    model_config = ConfigDict(extra="ignore")

    name: str
    full_name: str
    description: Optional[str] = None
    private: bool = False


def parse_repository(
    descriptor: Optional[str],
    default_repository: str,
    placeholder_owner: str,
) -> Tuple[str, str]:
    """Split a repository descriptor into (owner, repo).

    ``"owner/repo"`` is split on slashes and the first two segments are
    used, so ``"owner/repo/tree/main"`` targets ``owner/repo``. A missing or blank
    descriptor falls back to ``default_repository``. A descriptor without a
    slash is treated as a bare repository name owned by
    ``placeholder_owner``; the placeholder is not resolved against the
    authenticated account.

    Args:
        descriptor: User-supplied repository descriptor, may be None.
        default_repository: Repository used when no descriptor is given.
        placeholder_owner: Owner used for bare repository names.

    Returns:
        Tuple of (owner, repo).

    Example:
        >>> parse_repository("acme/widgets", "test-repo", "your-username")
        ('acme', 'widgets')
        >>> parse_repository(None, "test-repo", "your-username")
        ('your-username', 'test-repo')
    """
    value = (descriptor or "").strip() or default_repository

    segments = value.split("/")
    if len(segments) < 2 or not segments[1]:
        return placeholder_owner, value
    return segments[0], segments[1]
