"""LLM-backed research client.

This module implements the research collaborator used by the workflow:
- generate_research: produce findings for a natural-language query
- generate_issue_content: turn findings into a GitHub issue title and body
- test_connection: connectivity probe for ``/api/test-connections``

The client uses LangChain's ChatOpenAI, which works against the OpenAI API
or any OpenAI-compatible endpoint.

Source:
- src/research_assistant/research/models.py (ResearchQuery, ResearchResult,
  IssueContent)
- src/research_assistant/config.py (openai_api_key, openai_model)
"""

import json
import logging
from typing import Any, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.research_assistant.research.models import (
    IssueContent,
    ResearchQuery,
    ResearchResult,
)


logger = logging.getLogger(__name__)


RESEARCH_SYSTEM_PROMPT = """You are a meticulous research analyst. Investigate the user's question and write a well-structured research report in Markdown.

Your report MUST include:
1. **Summary**: Two to four sentences answering the question directly.
2. **Key Findings**: A bulleted list of the most important facts, each with enough context to stand alone.
3. **Analysis**: Trade-offs, open questions and caveats.
4. **Recommendations**: Concrete, actionable next steps.
5. **Sources**: Reference material the reader should consult, if known.

Be specific and factual. State clearly when information may be outdated or uncertain."""


ISSUE_SYSTEM_PROMPT = """You turn research reports into GitHub issues that a development team can act on.

You MUST respond with valid JSON only. Do not include any text before or after the JSON object.

Respond with this exact JSON structure:
{
  "title": "Concise issue title, under 80 characters",
  "body": "Issue body in GitHub Markdown with sections: Background, Key Findings, Proposed Actions, References"
}"""


MAX_FALLBACK_TITLE_LENGTH = 80


class ResearchError(Exception):
    """Raised when a research operation fails.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


def _build_issue_prompt(findings: str, original_query: str) -> str:
    """Build the user prompt for issue generation."""
    return f"""Create a GitHub issue from this research.

**Original research question:** {original_query}

**Research findings:**
{findings}

Provide the issue as JSON."""


def _parse_llm_response(response_text: str) -> dict[str, Any]:
    """Parse an LLM response into a dictionary.

    Strips Markdown code fences that models often wrap JSON in.

    Raises:
        json.JSONDecodeError: If the response is not valid JSON.
    """
    text = response_text.strip()

    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    return json.loads(text.strip())


def _fallback_issue_content(findings: str, original_query: str) -> IssueContent:
    """Derive issue content directly when the model's JSON is unusable."""
    title = f"Research: {original_query.strip()}"
    if len(title) > MAX_FALLBACK_TITLE_LENGTH:
        title = title[: MAX_FALLBACK_TITLE_LENGTH - 3].rstrip() + "..."

    body = (
        "## Research Question\n\n"
        f"{original_query.strip()}\n\n"
        "## Findings\n\n"
        f"{findings}"
    )
    return IssueContent(title=title, body=body)


class OpenAIResearchClient:
    """Research collaborator backed by an OpenAI chat model.

    Attributes:
        api_key: OpenAI API key.
        model_name: Chat model used for research and issue generation.
        base_url: Optional OpenAI-compatible endpoint URL.
        timeout: Per-request timeout in seconds, or None for no limit.
        temperature: Sampling temperature.

    Example:
        >>> client = OpenAIResearchClient(api_key="sk-...", model_name="gpt-4o")
        >>> result = await client.generate_research(ResearchQuery(query="..."))
        >>> result.status
        <ResearchStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o",
        base_url: Optional[str] = None,
        timeout: Optional[float] = 300.0,
        temperature: float = 0.3,
        max_tokens: Optional[int] = 4000,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = base_url
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._llm: Optional[ChatOpenAI] = None

    @property
    def llm(self) -> ChatOpenAI:
        """Get the chat model client, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                model=self.model_name,
                temperature=self.temperature,
                timeout=self.timeout,
                max_tokens=self.max_tokens,
            )
        return self._llm

    async def _invoke(self, system_prompt: str, user_prompt: str) -> str:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]
        response = await self.llm.ainvoke(messages)
        content = response.content
        if not isinstance(content, str):
            raise ResearchError(f"Unexpected response type: {type(content)}")
        return content

    async def generate_research(self, query: ResearchQuery) -> ResearchResult:
        """Research a query.

        Failures are reported as a FAILED result whose findings describe
        the error; this method does not raise for LLM errors.

        Args:
            query: The research query.

        Returns:
            A COMPLETED result with Markdown findings, or a FAILED result.
        """
        logger.info(
            "Generating research",
            extra={
                "query": query.query[:100],
                "session_id": query.session_id,
                "model": self.model_name,
            },
        )

        try:
            findings = await self._invoke(RESEARCH_SYSTEM_PROMPT, query.query)
        except Exception as e:
            logger.error(
                "Research generation failed",
                extra={
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "session_id": query.session_id,
                },
            )
            return ResearchResult.failed(query.query, f"Research failed: {e}")

        if not findings.strip():
            return ResearchResult.failed(
                query.query, "Research failed: the model returned no findings"
            )

        logger.info(
            "Research generated",
            extra={
                "session_id": query.session_id,
                "findings_length": len(findings),
            },
        )
        return ResearchResult.completed(query.query, findings)

    async def generate_issue_content(
        self,
        findings: str,
        original_query: str,
    ) -> IssueContent:
        """Turn research findings into a GitHub issue title and body.

        An unparseable or incomplete model response falls back to a title
        derived from the query with the findings as body.

        Raises:
            ResearchError: If the model cannot be invoked.
        """
        logger.info(
            "Generating issue content",
            extra={"query": original_query[:100], "findings_length": len(findings)},
        )

        try:
            response_text = await self._invoke(
                ISSUE_SYSTEM_PROMPT,
                _build_issue_prompt(findings, original_query),
            )
        except ResearchError:
            raise
        except Exception as e:
            raise ResearchError(f"Issue content generation failed: {e}", cause=e)

        try:
            data = _parse_llm_response(response_text)
        except json.JSONDecodeError as e:
            logger.warning(
                "Failed to parse issue content as JSON, using fallback",
                extra={"response_preview": response_text[:200], "error": str(e)},
            )
            return _fallback_issue_content(findings, original_query)

        title = data.get("title") if isinstance(data, dict) else None
        body = data.get("body") if isinstance(data, dict) else None
        if not isinstance(title, str) or not title.strip():
            logger.warning("Issue content is missing a title, using fallback")
            return _fallback_issue_content(findings, original_query)

        return IssueContent(
            title=title.strip(),
            body=body if isinstance(body, str) and body.strip() else findings,
        )

    async def test_connection(self) -> bool:
        """Check that the chat model is reachable."""
        try:
            await self.llm.ainvoke([HumanMessage(content="Hello")])
            return True
        except Exception as e:
            logger.warning(
                "OpenAI connection test failed",
                extra={"error": str(e)},
            )
            return False
