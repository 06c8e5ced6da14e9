"""Research generation.

Produces research findings for a query and converts them into GitHub
issue content using an OpenAI chat model.
"""

from src.research_assistant.research.client import (
    OpenAIResearchClient,
    ResearchError,
)
from src.research_assistant.research.models import (
    IssueContent,
    ResearchQuery,
    ResearchResult,
    ResearchStatus,
)

__all__ = [
    "IssueContent",
    "OpenAIResearchClient",
    "ResearchError",
    "ResearchQuery",
    "ResearchResult",
    "ResearchStatus",
]
