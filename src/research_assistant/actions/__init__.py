"""Action execution through the Pica integration platform.

Creates GitHub issues and lists repositories using a GitHub connection
stored in the Pica vault. Failures are reported as ActionResult values
rather than exceptions.
"""

from src.research_assistant.actions.client import PicaAPIError, PicaClient
from src.research_assistant.actions.models import (
    ActionResult,
    ActionType,
    GitHubIssueParams,
    PlatformConnection,
    RepositoryDescriptor,
    parse_repository,
)

__all__ = [
    "ActionResult",
    "ActionType",
    "GitHubIssueParams",
    "PicaAPIError",
    "PicaClient",
    "PlatformConnection",
    "RepositoryDescriptor",
    "parse_repository",
]
