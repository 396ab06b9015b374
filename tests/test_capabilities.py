"""Tests for the tool registry and built-in capabilities."""

import json

import httpx
import pytest

from shared.config import SearchSettings, Settings
from shared.errors import UnknownToolError
from shared.models import ToolCall, ToolResultStatus
from capabilities import ToolRegistry, load_default_capabilities
from capabilities.web_search import (
    ERROR_SNIPPET,
    NO_RESULTS_SNIPPET,
    TOOL_NAME,
    WebSearchCapability,
)
from conftest import FakeSearchCapability


class TestToolRegistry:
    """Tests for the ToolRegistry."""

    def test_register_tool(self):
        """Test registering a capability."""
        registry = ToolRegistry()
        registry.register(FakeSearchCapability())

        assert registry.get("googleSearch") is not None
        assert registry.list_names() == ["googleSearch"]
        assert registry.list_definitions()[0].input_schema["required"] == ["query"]

    def test_register_duplicate_tool_raises(self):
        """Test that registering a duplicate name raises error."""
        registry = ToolRegistry()
        registry.register(FakeSearchCapability())

        with pytest.raises(ValueError, match="already registered"):
            registry.register(FakeSearchCapability())

    def test_unregister(self):
        """Test removing a capability."""
        registry = ToolRegistry()
        registry.register(FakeSearchCapability())

        assert registry.unregister("googleSearch") is True
        assert registry.unregister("googleSearch") is False
        assert registry.list_definitions() == []

    @pytest.mark.asyncio
    async def test_invoke_success(self):
        """Test a successful invocation."""
        registry = ToolRegistry()
        registry.register(FakeSearchCapability())
        call = ToolCall(name="googleSearch", arguments={"query": "python"})

        result = await registry.invoke(call)

        assert result.status == ToolResultStatus.SUCCESS
        assert result.call_id == call.id
        assert result.payload == {"search_snippet": "Results for python"}
        assert result.execution_time_ms >= 0

    @pytest.mark.asyncio
    async def test_invoke_unknown_tool_raises(self):
        """Test that unknown names are a contract error."""
        registry = ToolRegistry()

        with pytest.raises(UnknownToolError):
            await registry.invoke(ToolCall(name="nope", arguments={}))

    @pytest.mark.asyncio
    async def test_invalid_arguments_become_result(self):
        """Test that schema violations are reported, not raised."""
        search = FakeSearchCapability()
        registry = ToolRegistry()
        registry.register(search)

        result = await registry.invoke(ToolCall(name="googleSearch", arguments={}))

        assert result.status == ToolResultStatus.VALIDATION_ERROR
        assert "query" in result.payload["error"]
        assert search.queries == []

    @pytest.mark.asyncio
    async def test_capability_exception_becomes_result(self):
        """Test that capability failures are contained."""
        registry = ToolRegistry()
        registry.register(FakeSearchCapability(fail_with=RuntimeError("backend down")))

        result = await registry.invoke(ToolCall(name="googleSearch", arguments={"query": "x"}))

        assert result.status == ToolResultStatus.ERROR
        assert result.error == "backend down"
        assert "backend down" in result.payload["error"]

    def test_load_default_capabilities(self):
        """Test built-in registration."""
        registry = ToolRegistry()
        load_default_capabilities(registry, Settings())

        assert registry.list_names() == [TOOL_NAME]


class TestWebSearchCapability:
    """Tests for the googleSearch capability."""

    def setup_method(self):
        """Set up test fixtures."""
        self.settings = SearchSettings(api_key="test-key", engine_id="test-cx", num_results=3)
        self.requests: list[httpx.Request] = []

    def make_capability(self, status_code=200, payload=None, settings=None):
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, json=payload or {})

        return WebSearchCapability(settings or self.settings, transport=httpx.MockTransport(handler))

    def test_definition(self):
        """Test the schema declared to the model."""
        definition = WebSearchCapability(self.settings).definition

        assert definition.name == "googleSearch"
        assert definition.input_schema["properties"]["query"]["type"] == "string"
        assert definition.input_schema["required"] == ["query"]
        assert "training data" in definition.description

    @pytest.mark.asyncio
    async def test_search_results(self):
        """Test formatting of search items."""
        capability = self.make_capability(payload={
            "items": [
                {"title": "Osaka weather", "snippet": "Sunny, 24C", "link": "https://w.example/osaka", "kind": "x"},
                {"title": "Forecast", "snippet": "Clear skies", "link": "https://f.example"},
            ]
        })

        payload = await capability.invoke({"query": "Osaka weather"})
        await capability.close()

        snippet = payload["search_snippet"]
        assert snippet.startswith("Web search results: ")
        items = json.loads(snippet[len("Web search results: "):])
        assert items[0] == {
            "title": "Osaka weather",
            "snippet": "Sunny, 24C",
            "link": "https://w.example/osaka",
        }

        params = self.requests[0].url.params
        assert params["q"] == "Osaka weather"
        assert params["cx"] == "test-cx"
        assert params["key"] == "test-key"
        assert params["num"] == "3"

    @pytest.mark.asyncio
    async def test_no_results(self):
        """Test an empty result set."""
        capability = self.make_capability(payload={"searchInformation": {"totalResults": "0"}})

        payload = await capability.invoke({"query": "zzzz"})

        assert payload == {"search_snippet": NO_RESULTS_SNIPPET}

    @pytest.mark.asyncio
    async def test_api_error_is_contained(self):
        """Test that HTTP failures become a descriptive payload."""
        capability = self.make_capability(status_code=500, payload={"error": {"code": 500}})

        payload = await capability.invoke({"query": "anything"})

        assert payload == {"search_snippet": ERROR_SNIPPET}

    @pytest.mark.asyncio
    async def test_transport_error_is_contained(self):
        """Test that connection failures become a descriptive payload."""
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        capability = WebSearchCapability(self.settings, transport=httpx.MockTransport(handler))

        payload = await capability.invoke({"query": "anything"})

        assert payload == {"search_snippet": ERROR_SNIPPET}

    @pytest.mark.asyncio
    async def test_missing_credentials_is_contained(self):
        """Test that an unconfigured search never hits the network."""
        capability = self.make_capability(settings=SearchSettings(api_key=None, engine_id=None))

        payload = await capability.invoke({"query": "anything"})

        assert payload == {"search_snippet": ERROR_SNIPPET}
        assert self.requests == []

    @pytest.mark.asyncio
    async def test_non_object_body_is_contained(self):
        """Test that a 200 response with a non-object body becomes the error snippet."""
        capability = self.make_capability(payload=["unexpected"])

        payload = await capability.invoke({"query": "news"})

        assert payload == {"search_snippet": ERROR_SNIPPET}

    @pytest.mark.asyncio
    async def test_malformed_items_are_contained(self):
        """Test that non-dict result items become the error snippet."""
        capability = self.make_capability(payload={"items": ["not", "objects"]})

        payload = await capability.invoke({"query": "news"})

        assert payload == {"search_snippet": ERROR_SNIPPET}
