"""Orchestrator - FastAPI Application.

Provides:
- Chat API for the frontend
- Session inspection
- Health check
"""

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from shared.config import Settings, get_settings
from shared.errors import ErrorKind
from shared.logging import get_logger, setup_logging
from shared.models import ChatMessage
from capabilities import ToolRegistry, load_default_capabilities
from orchestrator.gateway import ChatGateway
from orchestrator.llm import create_llm_provider
from orchestrator.loop import ConversationOrchestrator
from orchestrator.prompts import create_prompt_provider
from orchestrator.responses import USER_MESSAGES
from orchestrator.retry import RetryExecutor
from orchestrator.sessions import SessionStore

logger = get_logger(__name__)


class ChatRequest(BaseModel):
    """Chat request from the frontend."""
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(default_factory=list, description="Conversation so far")
    session_id: str = Field(..., alias="sessionId", min_length=1, description="Session identifier")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    llm_provider: str
    tools: list[str]
    session_count: int


# Global instances
_settings: Optional[Settings] = None
_gateway: Optional[ChatGateway] = None


def build_gateway(settings: Settings, sessions: SessionStore, tools: ToolRegistry) -> ChatGateway:
    """Wire the orchestrator components from settings."""
    orchestrator = ConversationOrchestrator(
        llm_provider=create_llm_provider(settings.llm),
        tools=tools,
        sessions=sessions,
        retry=RetryExecutor.from_settings(settings.retry),
        max_tool_calls=settings.orchestrator.max_tool_calls,
        fallback_reply=settings.orchestrator.fallback_reply.format(
            assistant_name=settings.orchestrator.assistant_name
        ),
    )
    return ChatGateway(
        orchestrator=orchestrator,
        sessions=sessions,
        system_prompt=create_prompt_provider(settings.orchestrator),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global _settings, _gateway

    _settings = get_settings()
    setup_logging(_settings.log_level, json_output=_settings.environment == "production")

    logger.info("Starting Orchestrator")

    sessions = SessionStore()
    await sessions.start()

    tools = ToolRegistry()
    load_default_capabilities(tools, _settings)

    _gateway = build_gateway(_settings, sessions, tools)

    logger.info(
        "Orchestrator started",
        provider=_settings.llm.provider,
        tools=tools.list_names()
    )

    yield

    logger.info("Shutting down Orchestrator")

    await tools.close()
    await sessions.close()
    _gateway = None


app = FastAPI(
    title="Chat Orchestrator",
    description="Tool-augmented chat endpoint with upstream retry handling",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().orchestrator.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed chat bodies get the same {"error": ...} shape as other failures."""
    logger.warning("Rejected malformed request", path=request.url.path, errors=exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": USER_MESSAGES[ErrorKind.INVALID_REQUEST]}
    )


def _require_gateway() -> ChatGateway:
    if _gateway is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Gateway not initialized"
        )
    return _gateway


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint."""
    info = _require_gateway().health_check()

    return HealthResponse(
        status="healthy" if info["sessions"] == "running" else "degraded",
        llm_provider=info["llm_provider"],
        tools=info["tools"],
        session_count=info["session_stats"]["total_sessions"]
    )


@app.post("/api/chat", tags=["Chat"])
async def chat(request: ChatRequest) -> JSONResponse:
    """
    Process a chat message.

    Returns {"message": ...} on success or {"error": ...} with the
    mapped status code.
    """
    result = await _require_gateway().handle(request.session_id, request.messages)
    return JSONResponse(status_code=result.status_code, content=result.body)


@app.get("/sessions/{session_id}", tags=["Sessions"])
async def get_session(session_id: str) -> dict[str, Any]:
    """Get a session's stored turns."""
    history = await _require_gateway().get_history(session_id)
    if not history:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )

    return {"session_id": session_id, "turns": history}


@app.delete("/sessions/{session_id}", tags=["Sessions"])
async def delete_session(session_id: str) -> dict[str, str]:
    """Delete a session."""
    deleted = await _require_gateway().end_session(session_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )

    return {"status": "deleted"}


def main():
    """Run the Orchestrator server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "orchestrator.main:app",
        host=settings.orchestrator.host,
        port=settings.orchestrator.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
