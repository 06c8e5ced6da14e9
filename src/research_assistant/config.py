"""Research assistant configuration using pydantic-settings.

This module defines the AssistantSettings class that reads configuration
from environment variables and an optional ``.env`` file. Variable names
carry no prefix (``OPENAI_API_KEY``, ``PICA_SECRET``, ``PORT``, ...).

Secrets are optional at load time: the service starts without them and
reports the missing credentials through ``/api/env-check`` and
``/api/test-connections``.
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.research_assistant.actions.models import DEFAULT_ISSUE_LABELS


class AssistantSettings(BaseSettings):
    """Research assistant configuration from environment variables.

    Secrets:
    - openai_api_key: API key for the research model
    - pica_secret: Secret for the Pica integration platform
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # OpenAI Configuration
    # -------------------------------------------------------------------------
    openai_api_key: str = ""

    openai_model: str = "gpt-4o"

    # OpenAI-compatible endpoint; None uses the public API
    openai_base_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Pica Configuration
    # -------------------------------------------------------------------------
    pica_secret: str = ""

    pica_base_url: str = "https://api.picaos.com/v1"

    # Reported by /api/health for the MCP sidecar
    pica_mcp_port: int = 8001

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Only reported by /api/env-check; issues are created through Pica
    github_token: str = ""

    # -------------------------------------------------------------------------
    # GitHub Issue Defaults
    # -------------------------------------------------------------------------
    default_repository: str = "test-repo"

    # Owner used for bare repository names
    placeholder_owner: str = "your-username"

    issue_labels: List[str] = list(DEFAULT_ISSUE_LABELS)

    # -------------------------------------------------------------------------
    # Workflow Configuration
    # -------------------------------------------------------------------------
    # Deadlines for the OpenAI calls and issue creation; "none" disables
    research_timeout_seconds: Optional[float] = 300.0

    action_timeout_seconds: Optional[float] = 60.0

    # Idle interval between keep-alive comments on the progress stream
    sse_heartbeat_seconds: float = 15.0

    # Publisher sinks: stream, logging, metrics
    progress_sinks: List[str] = ["stream", "logging", "metrics"]

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    node_env: str = "development"

    host: str = "0.0.0.0"

    port: int = 3000

    # Origins allowed cross-origin access outside production
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("openai_base_url", "pica_base_url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that URLs use http or https."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("research_timeout_seconds", "action_timeout_seconds", mode="before")
    @classmethod
    def parse_disabled_timeout(cls, v):
        """Map "none", "null" and the empty string to a disabled timeout."""
        if isinstance(v, str) and v.strip().lower() in ("", "none", "null"):
            return None
        return v

    @field_validator(
        "research_timeout_seconds",
        "action_timeout_seconds",
        "sse_heartbeat_seconds",
    )
    @classmethod
    def validate_positive(cls, v: Optional[float]) -> Optional[float]:
        """Validate that timeouts and intervals are positive."""
        if v is not None and v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("progress_sinks")
    @classmethod
    def validate_progress_sinks(cls, v: List[str]) -> List[str]:
        """Validate that every sink name is known."""
        allowed = {"stream", "logging", "metrics"}
        unknown = [sink for sink in v if sink not in allowed]
        if unknown:
            raise ValueError(f"unknown progress sinks: {', '.join(unknown)}")
        return v

    @field_validator("pica_mcp_port", "port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def is_development(self) -> bool:
        return self.node_env.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.node_env.lower() == "production"


def get_settings() -> AssistantSettings:
    """Create and return an AssistantSettings instance.

    Raises:
        pydantic.ValidationError: If a configured value is invalid.
    """
    return AssistantSettings()
