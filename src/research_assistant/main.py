"""FastAPI application entry point for the research assistant.

Endpoints:
- POST /api/research-and-action: run the research workflow for a query
- GET /api/sse/{session_id}: progress stream for one session
- GET /api/health: liveness probe
- GET /api/env-check: configuration presence flags (development only)
- GET /api/test-connections: probe the OpenAI and Pica integrations
- GET /api/github/repos/{owner}: repository listing through Pica
- GET /metrics: Prometheus metrics

The session registry, publisher and collaborators are built once per app
in ``create_app`` and stored on ``app.state``; tests pass their own.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.research_assistant.actions.client import PicaClient
from src.research_assistant.config import AssistantSettings, get_settings
from src.research_assistant.events.metrics import (
    MetricsPublisher,
    generate_metrics_output,
)
from src.research_assistant.events.models import ProgressEvent
from src.research_assistant.events.publisher import (
    Publisher,
    PublisherSinkType,
    create_publisher,
)
from src.research_assistant.events.registry import SessionRegistry
from src.research_assistant.handler import ResearchRequestHandler
from src.research_assistant.models import (
    HealthCheckResponse,
    ResearchAndActionRequest,
    utc_now,
)
from src.research_assistant.research.client import OpenAIResearchClient
from src.research_assistant.workflow.orchestrator import (
    ActionCollaborator,
    ResearchCollaborator,
    ResearchWorkflow,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


AVAILABLE_ENDPOINTS = [
    "GET /api/health",
    "GET /api/env-check",
    "POST /api/research-and-action",
    "GET /api/sse/:sessionId",
    "GET /api/test-connections",
    "GET /api/github/repos/:owner",
    "GET /metrics",
]

KEEP_ALIVE_FRAME = ": keep-alive\n\n"


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: AssistantSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Research assistant configuration:")
    logger.info(f"  Environment: {settings.node_env}")
    logger.info(f"  OpenAI API Key: {_redact_secret(settings.openai_api_key) or 'missing'}")
    logger.info(f"  OpenAI Model: {settings.openai_model}")
    logger.info(f"  OpenAI Base URL: {settings.openai_base_url or 'default'}")
    logger.info(f"  Pica Secret: {_redact_secret(settings.pica_secret) or 'missing'}")
    logger.info(f"  Pica Base URL: {settings.pica_base_url}")
    logger.info(f"  Pica MCP Port: {settings.pica_mcp_port}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token) or 'missing'}")
    logger.info(f"  Default Repository: {settings.default_repository}")
    logger.info(f"  Issue Labels: {', '.join(settings.issue_labels)}")
    logger.info(f"  Research Timeout Seconds: {settings.research_timeout_seconds}")
    logger.info(f"  Action Timeout Seconds: {settings.action_timeout_seconds}")
    logger.info(f"  SSE Heartbeat Seconds: {settings.sse_heartbeat_seconds}")
    logger.info(f"  Progress Sinks: {', '.join(settings.progress_sinks)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    cors_origins = ", ".join(allowed_origins(settings)) or "none"
    logger.info(f"  CORS Origins: {cors_origins}")


def allowed_origins(settings: AssistantSettings) -> List[str]:
    """Origins granted cross-origin access; none in production."""
    if settings.is_production:
        return []
    return list(settings.cors_origins)


def _route_not_found(request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            "error": "Route not found",
            "path": request.url.path,
            "method": request.method,
            "availableEndpoints": AVAILABLE_ENDPOINTS,
        },
    )


async def stream_session_events(
    registry: SessionRegistry,
    session_id: str,
    heartbeat_seconds: Optional[float] = None,
) -> AsyncIterator[str]:
    """Relay a session's progress events as SSE frames.

    Opens a channel for the session, sends the ``connected`` frame, then
    forwards events until a terminal event was relayed or the channel was
    closed. A keep-alive comment is sent after ``heartbeat_seconds`` without
    events. The channel is unregistered when the generator finishes,
    including on client disconnect.

    Args:
        registry: Registry the channel is registered in.
        session_id: Session to subscribe to.
        heartbeat_seconds: Idle interval between keep-alives, None disables.

    Yields:
        SSE frames.
    """
    channel = registry.open(session_id)
    logger.info("SSE connection opened", extra={"session_id": session_id})

    try:
        yield ProgressEvent.connected().to_sse()

        while True:
            try:
                event = await channel.receive(timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield KEEP_ALIVE_FRAME
                continue

            if event is None:
                break

            yield event.to_sse()

            if event.is_terminal:
                break
    finally:
        registry.unregister(session_id, channel)
        channel.close()
        logger.info("SSE connection closed", extra={"session_id": session_id})


router = APIRouter()


@router.post("/api/research-and-action")
async def research_and_action(
    request: Request, body: Optional[ResearchAndActionRequest] = None
):
    """Run the research workflow and return its result."""
    handler: ResearchRequestHandler = request.app.state.handler
    if body is None:
        body = ResearchAndActionRequest()
    response = await handler.handle(body)
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.get("/api/sse/{session_id}")
async def session_events(session_id: str, request: Request):
    """Server-Sent Events stream of a session's workflow progress."""
    state = request.app.state
    return StreamingResponse(
        stream_session_events(
            state.registry,
            session_id,
            state.settings.sse_heartbeat_seconds,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "Cache-Control",
        },
    )


@router.get("/api/health")
async def health(request: Request):
    """Liveness probe endpoint."""
    settings: AssistantSettings = request.app.state.settings
    return HealthCheckResponse(pica_mcp_port=settings.pica_mcp_port).to_json_dict()


@router.get("/api/env-check")
async def env_check(request: Request):
    """Report which settings are configured, without their values.

    Only available in development; other environments get the regular
    route-not-found response.
    """
    settings: AssistantSettings = request.app.state.settings
    if not settings.is_development:
        return _route_not_found(request)

    return {
        "nodeEnv": settings.node_env,
        "hasOpenAIKey": bool(settings.openai_api_key),
        "hasPicaSecret": bool(settings.pica_secret),
        "hasGitHubToken": bool(settings.github_token),
        "port": settings.port,
        "picaMcpPort": settings.pica_mcp_port,
        "features": {
            "deepResearch": bool(settings.openai_api_key),
            "githubIntegration": bool(settings.pica_secret),
            "realTimeUpdates": True,
        },
    }


@router.get("/api/test-connections")
async def test_connections(request: Request):
    """Probe both integrations and report the GitHub connection."""
    state = request.app.state

    try:
        openai_connected, pica_connected = await asyncio.gather(
            state.research_client.test_connection(),
            state.action_client.test_connection(),
        )

        connections: List = []
        github_connection = None
        try:
            connections = await state.action_client.get_connections()
            github_connection = await state.action_client.get_github_connection()
        except Exception as e:
            logger.warning(
                "Could not fetch connection details",
                extra={"error": str(e)},
            )

        return {
            "success": True,
            "connections": {
                "openai": openai_connected,
                "pica": pica_connected,
                "github": bool(github_connection),
            },
            "picaConnections": [c.to_json_dict() for c in connections],
            "githubConnectionKey": (
                "Connected"
                if github_connection and github_connection.get("connectionKey")
                else "Not connected"
            ),
            "notes": {
                "openai": (
                    "Ready for deep research"
                    if openai_connected
                    else "Check OPENAI_API_KEY in .env"
                ),
                "pica": (
                    "API accessible"
                    if pica_connected
                    else "Check PICA_SECRET in .env and verify at "
                    "https://app.picaos.com/settings/api-keys"
                ),
                "github": (
                    "GitHub integration ready"
                    if github_connection
                    else "Connect GitHub at https://app.picaos.com/connections"
                ),
            },
        }
    except Exception as e:
        logger.error("Connection test failed", extra={"error": str(e)})
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Connection test failed",
                "details": str(e),
                "guidance": {
                    "general": "Check your API keys and network connection",
                    "pica": "Visit https://app.picaos.com/settings/api-keys "
                    "to verify your API key",
                    "openai": "Check your OpenAI API key at "
                    "https://platform.openai.com/api-keys",
                },
            },
        )


@router.get("/api/github/repos/{owner}")
async def github_repositories(owner: str, request: Request):
    """List an owner's repositories through the action collaborator."""
    try:
        repositories = await request.app.state.action_client.list_repositories(owner)
    except Exception as e:
        logger.error(
            "Failed to fetch repositories",
            extra={"owner": owner, "error": str(e)},
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Failed to fetch repositories",
                "details": str(e),
            },
        )

    return {
        "success": True,
        "repositories": [repo.model_dump(mode="json") for repo in repositories],
    }


@router.get("/metrics")
async def metrics(request: Request):
    """Prometheus metrics endpoint."""
    output = generate_metrics_output(request.app.state.metrics_registry)
    return Response(content=output, media_type=CONTENT_TYPE_LATEST)


def create_app(
    settings: Optional[AssistantSettings] = None,
    research_client: Optional[ResearchCollaborator] = None,
    action_client: Optional[ActionCollaborator] = None,
    registry: Optional[SessionRegistry] = None,
    publisher: Optional[Publisher] = None,
    metrics_registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """Build the FastAPI application and wire its dependencies.

    Args:
        settings: Settings to use. Loaded from the environment if None.
        research_client: Research collaborator. An OpenAIResearchClient is
            created from the settings if None.
        action_client: Action collaborator. A PicaClient is created from the
            settings if None and closed on shutdown.
        registry: Session registry. A new one is created if None.
        publisher: Progress publisher. Built from ``settings.progress_sinks``
            if None.
        metrics_registry: Prometheus registry for the metrics sink and the
            /metrics endpoint. The default registry is used if None.

    Returns:
        The configured application.
    """
    settings = settings or get_settings()
    registry = registry or SessionRegistry()
    owns_action_client = action_client is None

    if research_client is None:
        research_client = OpenAIResearchClient(
            api_key=settings.openai_api_key,
            model_name=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.research_timeout_seconds,
        )
    if action_client is None:
        action_client = PicaClient(
            secret=settings.pica_secret,
            base_url=settings.pica_base_url,
        )
    if publisher is None:
        publisher = create_publisher(
            registry,
            [PublisherSinkType(sink) for sink in settings.progress_sinks],
            metrics_publisher=MetricsPublisher(registry=metrics_registry),
        )

    workflow = ResearchWorkflow(
        research_client=research_client,
        action_client=action_client,
        publisher=publisher,
        default_repository=settings.default_repository,
        placeholder_owner=settings.placeholder_owner,
        issue_labels=settings.issue_labels,
        research_timeout_seconds=settings.research_timeout_seconds,
        action_timeout_seconds=settings.action_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Research assistant starting up...")
        _log_configuration(settings)
        logger.info("Research assistant started successfully")

        yield

        logger.info("Research assistant shutting down...")
        await publisher.close()
        if owns_action_client and isinstance(action_client, PicaClient):
            await action_client.close()
        logger.info("Research assistant shutdown complete")

    app = FastAPI(
        title="Smart Research Assistant",
        description="AI research with GitHub issue creation and live progress",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.publisher = publisher
    app.state.research_client = research_client
    app.state.action_client = action_client
    app.state.workflow = workflow
    app.state.handler = ResearchRequestHandler(workflow)
    app.state.metrics_registry = metrics_registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if "/api/sse/" not in request.url.path:
            logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _route_not_found(request)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error",
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if settings.is_development else "Something went wrong",
                "timestamp": utc_now().isoformat(),
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.research_assistant.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=dev_settings.is_development,
    )
