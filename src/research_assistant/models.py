"""Shared pydantic base and HTTP request/response models.

Models that cross the HTTP boundary serialize with camelCase field names
(``sessionId``, ``githubRepo``) because that is what the browser client
sends and reads. They still accept snake_case names on input so Python
callers and tests can construct them naturally.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    """Base model with camelCase aliases for JSON exchange."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump the model as a JSON-compatible dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class ResearchAndActionRequest(ApiModel):
    """Inbound body of ``POST /api/research-and-action``.

    ``query`` is optional at the schema level so that a missing query is
    reported by the request handler as a 400 with a readable message rather
    than as a framework validation error.
    """

    query: Optional[str] = Field(
        default=None,
        description="Natural-language research query (required, non-empty)",
    )

    session_id: Optional[str] = Field(
        default=None,
        description="Correlates this request with an open progress stream",
    )

    github_repo: Optional[str] = Field(
        default=None,
        description='Target repository as "owner/repo" or a bare repository name',
    )


class HealthCheckResponse(ApiModel):
    """Liveness probe response."""

    status: str = "OK"
    timestamp: datetime = Field(default_factory=utc_now)
    pica_mcp_port: int
