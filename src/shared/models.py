"""Core data models for the chat orchestrator.

Conversation turns, tool calls and results, LLM responses and the
per-request run state all live here so every component speaks the
same validated types.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


class TurnRole(str, Enum):
    """Role of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_INVOCATION = "tool_invocation"
    TOOL_RESULT = "tool_result"


class ToolCall(BaseModel):
    """
    A tool invocation requested by the model.

    Produced only from a model response, never by the caller.
    """
    id: str = Field(default_factory=_new_call_id)
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultStatus(str, Enum):
    """Status of tool execution."""
    SUCCESS = "success"
    ERROR = "error"
    VALIDATION_ERROR = "validation_error"


class ToolResult(BaseModel):
    """
    Result of a tool execution.

    Failures are carried in the payload so the model can react to them.
    """
    tool_name: str
    call_id: Optional[str] = None
    status: ToolResultStatus = ToolResultStatus.SUCCESS
    payload: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    execution_time_ms: float = 0


class ToolDefinition(BaseModel):
    """Declarative description of a tool as shown to the model."""
    name: str = Field(..., description="Tool name as the model calls it")
    description: str = Field(..., description="Clear description for LLM usage")
    version: str = Field(default="1.0.0")
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        description="JSON Schema for input validation"
    )


class Turn(BaseModel):
    """
    One message unit in a conversation.

    Turns are immutable once created; sessions only ever append them.
    """
    model_config = ConfigDict(frozen=True)

    role: TurnRole
    content: Union[str, dict[str, Any]] = ""
    tool_call: Optional[ToolCall] = None
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role=TurnRole.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "Turn":
        return cls(role=TurnRole.ASSISTANT, content=text)

    @classmethod
    def tool_invocation(cls, call: ToolCall, text: Optional[str] = None) -> "Turn":
        """Record of the model asking for a tool, with any text it produced alongside."""
        return cls(role=TurnRole.TOOL_INVOCATION, content=text or "", tool_call=call)

    @classmethod
    def tool_result(cls, result: ToolResult) -> "Turn":
        return cls(
            role=TurnRole.TOOL_RESULT,
            content=result.payload,
            tool_name=result.tool_name,
            tool_call_id=result.call_id,
        )


class LLMResponse(BaseModel):
    """Response from the LLM layer."""
    text: Optional[str] = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = Field(default_factory=dict)

    @property
    def tool_call(self) -> Optional[ToolCall]:
        """The tool call to honour. Only the first requested call is used."""
        return self.tool_calls[0] if self.tool_calls else None


class RetryState(BaseModel):
    """Retry bookkeeping for a single upstream call."""
    attempts: int = 0
    current_backoff_ms: float
    last_error: Optional[Any] = None


class RunStatus(str, Enum):
    """Lifecycle of an orchestration run."""
    PENDING = "pending"
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"


class OrchestrationRun(BaseModel):
    """State of one request's tool-calling loop. Never persisted."""
    session_id: str
    remaining_tool_calls: int
    rounds: int = 0
    status: RunStatus = RunStatus.PENDING
    final_text: Optional[str] = None
    new_turns: list[Turn] = Field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status == RunStatus.CONVERGED


class ChatMessage(BaseModel):
    """A message as sent by the chat frontend."""
    role: Literal["user", "assistant"]
    content: str


class ChatResult(BaseModel):
    """Outcome of one chat request: an HTTP status and its JSON body."""
    status_code: int = 200
    body: dict[str, str]

    @classmethod
    def success(cls, message: str) -> "ChatResult":
        return cls(status_code=200, body={"message": message})

    @classmethod
    def failure(cls, status_code: int, error: str) -> "ChatResult":
        return cls(status_code=status_code, body={"error": error})
