"""Shared fixtures and fakes for orchestrator tests."""

from typing import Any, Optional

import pytest
import pytest_asyncio

from shared.models import LLMResponse, ToolCall, ToolDefinition
from shared.schema import create_tool_schema
from capabilities.base import BaseCapability
from capabilities.registry import ToolRegistry
from orchestrator.sessions import SessionStore


class FakeSearchCapability(BaseCapability):
    """Stand-in for googleSearch that records queries."""

    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.queries: list[str] = []
        self.fail_with = fail_with

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="googleSearch",
            description="Search the web",
            input_schema=create_tool_schema([
                {"name": "query", "type": "string", "description": "Search query"}
            ]),
        )

    async def invoke(self, arguments: dict[str, Any]) -> dict[str, Any]:
        self.queries.append(arguments["query"])
        if self.fail_with:
            raise self.fail_with
        return {"search_snippet": f"Results for {arguments['query']}"}


class SleepRecorder:
    """Replaces asyncio.sleep in retry tests."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def tool_call_response(query: str, text: Optional[str] = None, name: str = "googleSearch") -> LLMResponse:
    return LLMResponse(
        text=text,
        tool_calls=[ToolCall(name=name, arguments={"query": query})],
        finish_reason="tool_calls",
    )


@pytest_asyncio.fixture
async def store():
    sessions = SessionStore()
    await sessions.start()
    yield sessions
    await sessions.close()


@pytest.fixture
def search():
    return FakeSearchCapability()


@pytest.fixture
def registry(search):
    tools = ToolRegistry()
    tools.register(search)
    return tools
