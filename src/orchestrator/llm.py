"""LLM Integration Layer using LlamaIndex.

Supports multiple LLM providers via LlamaIndex-compatible packages:
- Google Gemini
- OpenAI
- Azure OpenAI

The LLM never executes tools itself; it only declares which tool it
wants. Every failure raised by a provider is classified here, where it
is first observed, into the orchestrator's error taxonomy.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from pydantic import Field, create_model

from shared.config import LLMSettings
from shared.errors import AuthenticationInvalidError, OrchestratorError, classify_upstream_error
from shared.logging import get_logger
from shared.models import LLMResponse, ToolCall, ToolDefinition, Turn, TurnRole

logger = get_logger(__name__)

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
}


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    LLM Integration Rules:
    - LLM receives the conversation, the system instruction and tool schemas
    - LLM outputs either text or text plus tool call requests
    - Failures surface as OrchestratorError subclasses
    """

    name: str = "base"

    @abstractmethod
    async def complete(
        self,
        turns: list[Turn],
        system_instruction: str,
        tools: Optional[list[ToolDefinition]] = None
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            turns: Ordered conversation turns
            system_instruction: System prompt for this request
            tools: Tool definitions the model may call

        Returns:
            LLM response with text and/or tool calls

        Raises:
            OrchestratorError: Classified upstream failure
        """
        pass


def _arguments_model(definition: ToolDefinition):
    """Build a pydantic model mirroring a tool's JSON Schema parameters."""
    schema = definition.input_schema or {}
    required = set(schema.get("required", []))
    fields: dict[str, Any] = {}

    for param, spec in schema.get("properties", {}).items():
        py_type = _JSON_TYPES.get(spec.get("type", "string"), str)
        description = spec.get("description", "")
        if param in required:
            fields[param] = (py_type, Field(..., description=description))
        else:
            fields[param] = (Optional[py_type], Field(default=None, description=description))

    return create_model(f"{definition.name}Arguments", **fields)


def _text_of(content: Union[str, dict[str, Any]]) -> str:
    return content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)


def _declared_only(**kwargs: Any) -> None:
    raise RuntimeError("Declared tools are executed by the ToolRegistry, not by the LLM")


class LlamaIndexProvider(LLMProvider):
    """Shared plumbing for providers backed by a LlamaIndex function-calling LLM."""

    def __init__(self, settings: LLMSettings) -> None:
        self.settings = settings
        self._llm = None

    @abstractmethod
    def _build_llm(self):
        """Create the LlamaIndex LLM client."""
        pass

    def _get_llm(self):
        """Lazy initialization of LlamaIndex LLM."""
        if not self.settings.api_key:
            raise AuthenticationInvalidError(f"{self.name} API key is not configured")
        if self._llm is None:
            self._llm = self._build_llm()
        return self._llm

    def _convert_turns(self, turns: list[Turn], system_instruction: str) -> list:
        """
        Convert turns to LlamaIndex chat messages, system instruction first.

        Tool requests become ToolCallBlocks on an assistant message, which
        every LlamaIndex provider translates to its own function-call format.
        """
        from llama_index.core.base.llms.types import TextBlock, ToolCallBlock
        from llama_index.core.llms import ChatMessage, MessageRole

        messages = [ChatMessage(role=MessageRole.SYSTEM, content=system_instruction)]

        for turn in turns:
            if turn.role == TurnRole.TOOL_INVOCATION and turn.tool_call:
                call = turn.tool_call
                blocks = []
                if isinstance(turn.content, str) and turn.content:
                    blocks.append(TextBlock(text=turn.content))
                blocks.append(ToolCallBlock(
                    tool_call_id=self._call_reference(call.id, call.name),
                    tool_name=call.name,
                    tool_kwargs=dict(call.arguments),
                ))
                messages.append(ChatMessage(role=MessageRole.ASSISTANT, blocks=blocks))
            elif turn.role == TurnRole.TOOL_RESULT:
                messages.append(ChatMessage(
                    role=MessageRole.TOOL,
                    content=json.dumps(turn.content, ensure_ascii=False),
                    additional_kwargs={
                        "tool_call_id": self._call_reference(turn.tool_call_id, turn.tool_name),
                        "name": turn.tool_name
                    }
                ))
            else:
                role = MessageRole.USER if turn.role == TurnRole.USER else MessageRole.ASSISTANT
                messages.append(ChatMessage(role=role, content=_text_of(turn.content)))

        return messages

    def _call_reference(self, call_id: Optional[str], tool_name: Optional[str]) -> Optional[str]:
        """Identifier tying a tool result to the call that requested it."""
        return call_id

    def _declare_tools(self, tools: list[ToolDefinition]) -> list:
        """Schema-only LlamaIndex tools for the model's function declarations."""
        from llama_index.core.tools import FunctionTool

        return [
            FunctionTool.from_defaults(
                fn=_declared_only,
                name=definition.name,
                description=definition.description,
                fn_schema=_arguments_model(definition),
            )
            for definition in tools
        ]

    async def complete(
        self,
        turns: list[Turn],
        system_instruction: str,
        tools: Optional[list[ToolDefinition]] = None
    ) -> LLMResponse:
        """Generate a completion, declaring tools when any are given."""
        llm = self._get_llm()
        chat_messages = self._convert_turns(turns, system_instruction)

        try:
            if tools:
                response = await llm.achat_with_tools(
                    self._declare_tools(tools),
                    chat_history=chat_messages,
                    allow_parallel_tool_calls=False
                )
                selections = llm.get_tool_calls_from_response(
                    response, error_on_no_tool_call=False
                )
            else:
                response = await llm.achat(chat_messages)
                selections = []
        except OrchestratorError:
            raise
        except Exception as e:
            error = classify_upstream_error(e)
            logger.error(
                "LLM completion failed",
                provider=self.name,
                kind=error.kind.value,
                upstream_status=error.upstream_status,
                error=str(e)
            )
            raise error from e

        tool_calls = []
        for selection in selections:
            call = ToolCall(name=selection.tool_name, arguments=dict(selection.tool_kwargs or {}))
            if selection.tool_id:
                call.id = selection.tool_id
            tool_calls.append(call)

        return LLMResponse(
            text=response.message.content if response.message else None,
            tool_calls=tool_calls,
            finish_reason="tool_calls" if tool_calls else "stop",
        )


class GeminiProvider(LlamaIndexProvider):
    """Google Gemini provider using LlamaIndex."""

    name = "gemini"

    def _call_reference(self, call_id, tool_name):
        # Gemini pairs a functionResponse with its functionCall by name
        return tool_name

    def _build_llm(self):
        from llama_index.llms.google_genai import GoogleGenAI

        return GoogleGenAI(
            model=self.settings.model,
            api_key=self.settings.api_key,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )


class OpenAIProvider(LlamaIndexProvider):
    """OpenAI LLM provider using LlamaIndex."""

    name = "openai"

    def _build_llm(self):
        from llama_index.llms.openai import OpenAI

        return OpenAI(
            model=self.settings.model,
            api_key=self.settings.api_key,
            api_base=self.settings.api_base,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )


class AzureOpenAIProvider(LlamaIndexProvider):
    """Azure OpenAI LLM provider using LlamaIndex."""

    name = "azure_openai"

    def _build_llm(self):
        from llama_index.llms.azure_openai import AzureOpenAI

        return AzureOpenAI(
            engine=self.settings.deployment_name or self.settings.model,
            model=self.settings.model,
            api_key=self.settings.api_key,
            azure_endpoint=self.settings.api_base,
            api_version=self.settings.api_version,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )


class MockLLMProvider(LLMProvider):
    """
    Mock LLM provider for testing without API calls.

    Replays a queue of scripted responses; queued exceptions are raised
    instead of returned. Falls back to a plain text reply when empty.
    """

    name = "mock"

    def __init__(self, settings: Optional[LLMSettings] = None) -> None:
        self.settings = settings
        self.call_history: list[dict[str, Any]] = []
        self._queue: list[Union[LLMResponse, Exception]] = []

    def queue(self, *items: Union[LLMResponse, Exception]) -> None:
        """Append responses or exceptions to replay, in order."""
        self._queue.extend(items)

    def set_next_response(self, response: LLMResponse) -> None:
        """Set the next response to return."""
        self._queue.insert(0, response)

    async def complete(
        self,
        turns: list[Turn],
        system_instruction: str,
        tools: Optional[list[ToolDefinition]] = None
    ) -> LLMResponse:
        """Return the next scripted response."""
        self.call_history.append({
            "turns": list(turns),
            "system_instruction": system_instruction,
            "tools": tools,
        })

        if self._queue:
            item = self._queue.pop(0)
            if isinstance(item, Exception):
                raise classify_upstream_error(item)
            return item

        return LLMResponse(text="This is a mock response.", finish_reason="stop")


def create_llm_provider(settings: LLMSettings) -> LLMProvider:
    """
    Factory function to create appropriate LLM provider.

    Supports:
    - gemini: Google Gemini
    - openai: OpenAI API
    - azure_openai: Azure OpenAI Service
    - mock: Mock provider for testing

    Raises:
        ValueError: If provider is not supported
    """
    providers = {
        "gemini": GeminiProvider,
        "openai": OpenAIProvider,
        "azure_openai": AzureOpenAIProvider,
        "mock": MockLLMProvider,
    }

    provider_class = providers.get(settings.provider)
    if not provider_class:
        raise ValueError(
            f"Unsupported LLM provider: {settings.provider}. "
            f"Supported: {list(providers.keys())}"
        )

    logger.info("Creating LLM provider", provider=settings.provider, model=settings.model)
    return provider_class(settings)
