"""Shared models, settings, logging and errors for the chat orchestrator."""

from shared.models import (
    ToolDefinition,
    ToolCall,
    ToolResult,
    Turn,
    TurnRole,
    LLMResponse,
)
from shared.config import Settings, get_settings
from shared.errors import ErrorKind, OrchestratorError, classify_upstream_error
from shared.logging import get_logger, setup_logging

__all__ = [
    "ToolDefinition",
    "ToolCall",
    "ToolResult",
    "Turn",
    "TurnRole",
    "LLMResponse",
    "Settings",
    "get_settings",
    "ErrorKind",
    "OrchestratorError",
    "classify_upstream_error",
    "get_logger",
    "setup_logging",
]
