"""HTTP API: FastAPI app factory, auth dependencies and routes."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Callable

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from groq import AsyncGroq

from ..agent import AgentClient, AgentOrchestrator
from ..audit import AuditEventType, AuditFilter, AuditLogger
from ..auth import Capability, CredentialManager, Principal, authorize
from ..config import Settings
from ..errors import Forbidden, ShellkeeperError, Unauthorized
from ..memory import (
    GroqPersonalityEvolver,
    GroqSummarizer,
    MemoryManager,
    PersonalityEvolver,
    SessionStore,
    SnapshotEvolver,
    Summarizer,
    TruncatingSummarizer,
)
from ..session import SessionRegistry
from ..terminal import ApprovalWorkflow, CommandExecutor, RateLimiter, WorkflowOutcome
from .schemas import (
    ChatExecuteRequest,
    ChatRequest,
    ExecuteRequest,
    PersonalityRequest,
    TerminalChatRequest,
    TokenRequest,
)

logger = logging.getLogger(__name__)

APPROVAL_INSTRUCTIONS = (
    "Please review the command and send this request again with approval: true"
)
RECENT_INTERACTIONS = 5
RECENT_PREVIEW_CHARS = 100


@dataclass
class Services:
    """Everything the routes need, built once per app lifespan."""

    settings: Settings
    audit: AuditLogger
    credentials: CredentialManager
    registry: SessionRegistry
    memory: MemoryManager
    workflow: ApprovalWorkflow
    orchestrator: AgentOrchestrator


def build_services(
    settings: Settings,
    *,
    agent_client: AgentClient | None = None,
    summarizer: Summarizer | None = None,
    evolver: PersonalityEvolver | None = None,
) -> Services:
    """Wire stores, gate, workflow and orchestrator from settings.

    Groq-backed collaborators are used when an API key is configured or no
    agent client was supplied; otherwise the deterministic placeholders.
    """
    audit = AuditLogger(settings.audit_dir)
    credentials = CredentialManager(
        secret=settings.auth.jwt_secret,
        ttl_hours=settings.auth.token_ttl_hours,
        audit=audit,
    )

    groq_client = None
    if agent_client is None or settings.agent.api_key:
        groq_client = AsyncGroq(api_key=settings.agent.api_key)
    if agent_client is None:
        agent_client = AgentClient(
            groq_client,
            model=settings.agent.model,
            temperature=settings.agent.temperature,
        )
    if summarizer is None:
        summarizer = (
            GroqSummarizer(groq_client, model=settings.agent.model)
            if groq_client is not None else TruncatingSummarizer()
        )
    if evolver is None:
        evolver = (
            GroqPersonalityEvolver(groq_client, model=settings.agent.model)
            if groq_client is not None else SnapshotEvolver()
        )

    memory = MemoryManager(
        summarizer,
        evolver,
        overflow=settings.memory.overflow,
        max_summary_chars=settings.memory.max_summary_chars,
    )
    rate_limiter = RateLimiter(min_interval=settings.terminal.min_interval)
    registry = SessionRegistry(
        SessionStore(settings.memory.sessions_dir),
        evolution_enabled=settings.memory.personality_evolution,
        ttl_seconds=settings.memory.session_ttl,
        cleanup_interval=settings.memory.cleanup_interval,
        on_evict=rate_limiter.forget,
    )
    executor = CommandExecutor(
        working_directory=settings.terminal.working_directory,
        timeout=settings.terminal.timeout,
        max_output_bytes=settings.terminal.max_output_bytes,
    )
    workflow = ApprovalWorkflow(
        executor,
        audit,
        rate_limiter,
        spawn=registry.spawn,
    )
    orchestrator = AgentOrchestrator(
        agent_client, memory, registry, audit, workflow, settings.memory,
    )
    return Services(
        settings=settings,
        audit=audit,
        credentials=credentials,
        registry=registry,
        memory=memory,
        workflow=workflow,
        orchestrator=orchestrator,
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_body(category: str, message: str) -> dict[str, str]:
    return {"error": category, "message": message, "timestamp": _now()}


# --- Auth dependencies ---

bearer_scheme = HTTPBearer(auto_error=False)
access_token_header = APIKeyHeader(name="x-access-token", auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_principal(
    services: Annotated[Services, Depends(get_services)],
    bearer: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    header_token: Annotated[str | None, Depends(access_token_header)],
) -> Principal:
    """Verify the credential from ``Authorization: Bearer`` or ``x-access-token``."""
    token = bearer.credentials if bearer is not None else header_token
    if not token:
        services.audit.log_auth(
            user_id=None,
            action="authenticate",
            role=None,
            success=False,
            reason="missing token",
        )
        raise Unauthorized(
            "Missing token. Provide Authorization: Bearer <token> or x-access-token header"
        )
    return services.credentials.verify(token)


def require(capability: Capability) -> Callable[..., Any]:
    """Dependency factory: the caller's role must grant ``capability``."""

    async def dependency(
        services: Annotated[Services, Depends(get_services)],
        principal: Annotated[Principal, Depends(get_principal)],
    ) -> Principal:
        allowed = authorize(principal.role, capability)
        services.audit.log_auth(
            user_id=principal.user_id,
            action=f"access:{capability.value}",
            role=principal.role.value,
            success=allowed,
            reason=None if allowed else "insufficient role",
        )
        if not allowed:
            raise Forbidden(
                f"Role '{principal.role.value}' does not have access to {capability.value}"
            )
        return principal

    return dependency


ServicesDep = Annotated[Services, Depends(get_services)]
ChatUser = Annotated[Principal, Depends(require(Capability.CHAT))]
TerminalUser = Annotated[Principal, Depends(require(Capability.TERMINAL))]
AuthUser = Annotated[Principal, Depends(require(Capability.AUTH))]


def _workflow_payload(outcome: WorkflowOutcome) -> dict[str, Any]:
    if outcome.pending_approval:
        return {
            "pendingApproval": True,
            "command": outcome.command,
            "requiresApprovalReason": outcome.reason,
            "approvalInstructions": APPROVAL_INSTRUCTIONS,
        }
    result = outcome.result.to_dict() if outcome.result is not None else None
    return {
        "executionResult": result,
        "approved": outcome.approved,
    }


def create_app(
    settings: Settings | None = None,
    *,
    agent_client: AgentClient | None = None,
    summarizer: Summarizer | None = None,
    evolver: PersonalityEvolver | None = None,
) -> FastAPI:
    """Create the API. Services are built on startup and closed on shutdown."""
    if settings is None:
        settings = Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services = build_services(
            settings,
            agent_client=agent_client,
            summarizer=summarizer,
            evolver=evolver,
        )
        app.state.services = services
        services.registry.start_cleanup_task()
        logger.info("Shellkeeper started (sessions: %s)", settings.memory.sessions_dir)
        try:
            yield
        finally:
            await services.registry.close()
            logger.info("Shellkeeper stopped")

    app = FastAPI(title="Shellkeeper", lifespan=lifespan)

    @app.exception_handler(ShellkeeperError)
    async def handle_shellkeeper_error(request: Request, exc: ShellkeeperError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.category, exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content=error_body("ValidationError", details))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body("InternalError", "Internal server error"))

    # --- Service ---

    @app.get("/health")
    async def health(services: ServicesDep) -> dict[str, Any]:
        return {
            "status": "ok",
            "service": "Shellkeeper",
            "activeSessions": len(services.registry),
            "timestamp": _now(),
        }

    @app.post("/auth/token")
    async def issue_token(body: TokenRequest, services: ServicesDep, user: AuthUser) -> dict[str, Any]:
        credential = services.credentials.issue(body.user_id, body.role, body.ttl_hours)
        return {
            "success": True,
            **credential.to_dict(),
            "issuedBy": user.user_id,
            "message": f"Token issued for {credential.user_id} ({credential.role.value})",
            "timestamp": _now(),
        }

    # --- Chat and session memory ---

    @app.post("/chat")
    async def chat(body: ChatRequest, services: ServicesDep, user: ChatUser) -> dict[str, Any]:
        async with services.registry.acquire(body.session_id) as handle:
            reply = await services.orchestrator.chat(
                handle, body.message, user_id=user.user_id, context=body.context,
            )
        return {
            "success": True,
            "sessionId": body.session_id,
            "response": reply.to_dict(),
            "user": user.user_id,
            "timestamp": _now(),
        }

    @app.get("/session/{session_id}")
    async def session_info(session_id: str, services: ServicesDep, user: ChatUser) -> dict[str, Any]:
        handle = await services.registry.get(session_id)
        context = services.memory.build_context(handle.session)
        recent = [
            {**i.to_dict(), "text": i.text[:RECENT_PREVIEW_CHARS]}
            for i in context.interactions[-RECENT_INTERACTIONS:]
        ]
        return {
            "success": True,
            "sessionId": session_id,
            "stats": services.memory.stats(handle.session),
            "interactionCount": len(context.interactions),
            "summaryCount": len(context.summaries),
            "recentInteractions": recent,
            "timestamp": _now(),
        }

    @app.get("/session/{session_id}/history")
    async def session_history(session_id: str, services: ServicesDep, user: ChatUser) -> dict[str, Any]:
        handle = await services.registry.get(session_id)
        context = services.memory.build_context(handle.session)
        return {
            "success": True,
            "sessionId": session_id,
            **context.to_dict(),
            "totalInteractions": len(context.interactions),
            "totalSummaries": len(context.summaries),
            "timestamp": _now(),
        }

    @app.post("/session/{session_id}/clear")
    async def clear_session(session_id: str, services: ServicesDep, user: ChatUser) -> dict[str, Any]:
        await services.registry.clear(session_id, services.memory)
        return {
            "success": True,
            "sessionId": session_id,
            "message": "Session cleared",
            "timestamp": _now(),
        }

    @app.post("/session/{session_id}/personality")
    async def update_personality(
        session_id: str,
        body: PersonalityRequest,
        services: ServicesDep,
        user: ChatUser,
    ) -> dict[str, Any]:
        async with services.registry.acquire(session_id) as handle:
            if body.evolution is not None:
                services.memory.set_evolution(handle.session, body.evolution)
            if body.freeze:
                services.memory.freeze_personality(handle.session)
            services.registry.persist(handle)
            stats = services.memory.stats(handle.session)
        return {
            "success": True,
            "sessionId": session_id,
            "stats": stats,
            "timestamp": _now(),
        }

    # --- Terminal ---

    @app.post("/terminal/execute")
    async def execute(body: ExecuteRequest, services: ServicesDep, user: TerminalUser) -> dict[str, Any]:
        async with services.registry.acquire(body.session_id) as handle:
            outcome = await services.orchestrator.execute(
                handle, body.command, user_id=user.user_id, approval=body.approval,
            )
        success = outcome.pending_approval or (outcome.result is not None and outcome.result.success)
        return {
            "success": success,
            "sessionId": body.session_id,
            **_workflow_payload(outcome),
            "timestamp": _now(),
        }

    @app.post("/terminal/chat/{session_id}")
    async def terminal_chat(
        session_id: str,
        body: TerminalChatRequest,
        services: ServicesDep,
        user: TerminalUser,
    ) -> dict[str, Any]:
        async with services.registry.acquire(session_id) as handle:
            reply = await services.orchestrator.chat(
                handle, body.message, user_id=user.user_id, context=body.context,
            )
        return {
            "success": True,
            "sessionId": session_id,
            "response": reply.to_dict(),
            "timestamp": _now(),
        }

    @app.post("/terminal/chat/{session_id}/execute")
    async def chat_and_execute(
        session_id: str,
        body: ChatExecuteRequest,
        services: ServicesDep,
        user: TerminalUser,
    ) -> dict[str, Any]:
        async with services.registry.acquire(session_id) as handle:
            outcome = await services.orchestrator.chat_and_execute(
                handle,
                body.message,
                user_id=user.user_id,
                approval=body.approval,
                approved_command=body.approved_command,
                context=body.context,
            )
        payload: dict[str, Any] = {
            "success": True,
            "sessionId": session_id,
            "response": outcome.reply.to_dict(),
        }
        if outcome.workflow is None:
            payload["executionResult"] = None
        else:
            payload.update(_workflow_payload(outcome.workflow))
        payload["timestamp"] = _now()
        return payload

    @app.get("/terminal/history/{session_id}")
    async def command_history(
        session_id: str,
        services: ServicesDep,
        user: TerminalUser,
        limit: Annotated[int, Query(ge=1, le=1000)] = 50,
    ) -> dict[str, Any]:
        handle = await services.registry.get(session_id)
        return {
            "success": True,
            "sessionId": session_id,
            "history": [r.to_dict() for r in handle.history.recent(limit)],
            "totalRecords": len(handle.history),
            "timestamp": _now(),
        }

    @app.post("/terminal/history/{session_id}/clear")
    async def clear_command_history(session_id: str, services: ServicesDep, user: TerminalUser) -> dict[str, Any]:
        async with services.registry.acquire(session_id) as handle:
            handle.history.clear()
        return {
            "success": True,
            "sessionId": session_id,
            "message": "Command history cleared",
            "timestamp": _now(),
        }

    @app.get("/terminal/stats/{session_id}")
    async def command_stats(session_id: str, services: ServicesDep, user: TerminalUser) -> dict[str, Any]:
        handle = await services.registry.get(session_id)
        return {
            "success": True,
            "sessionId": session_id,
            "stats": handle.history.stats(),
            "timestamp": _now(),
        }

    # --- Audit ---

    @app.get("/audit/logs")
    async def audit_logs(
        services: ServicesDep,
        user: AuthUser,
        type: AuditEventType | None = None,
        user_id: Annotated[str | None, Query(alias="userId")] = None,
        session_id: Annotated[str | None, Query(alias="sessionId")] = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    ) -> dict[str, Any]:
        entries = services.audit.read(
            AuditFilter(
                type=type,
                user_id=user_id,
                session_id=session_id,
                since=since,
                until=until,
            ),
            limit=limit,
        )
        return {
            "success": True,
            "entries": entries,
            "count": len(entries),
            "timestamp": _now(),
        }

    @app.get("/audit/users/{user_id}/stats")
    async def audit_user_stats(user_id: str, services: ServicesDep, user: AuthUser) -> dict[str, Any]:
        return {
            "success": True,
            "stats": services.audit.user_stats(user_id),
            "timestamp": _now(),
        }

    return app
