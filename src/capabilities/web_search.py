"""Web search capability backed by the Google Custom Search JSON API.

Exposed to the model as ``googleSearch``. Every outcome, including
transport and API failures, is returned as a ``search_snippet`` payload
so the model can answer around it.
"""

import json
from typing import Any, Optional

import httpx

from shared.config import SearchSettings
from shared.logging import get_logger
from shared.models import ToolDefinition
from shared.schema import create_tool_schema
from capabilities.base import HTTPCapability

logger = get_logger(__name__)

TOOL_NAME = "googleSearch"

TOOL_DESCRIPTION = (
    "Use when information outside your training data is needed, such as "
    "real-time news, today's date, recent events or general web information."
)

NO_RESULTS_SNIPPET = "No search results were found."
ERROR_SNIPPET = "An error occurred while searching. The web search API returned an error."


def format_search_results(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep only the fields the model needs from each search item."""
    return [
        {
            "title": item.get("title"),
            "snippet": item.get("snippet"),
            "link": item.get("link"),
        }
        for item in items
    ]


class WebSearchCapability(HTTPCapability):
    """
    Google Custom Search tool.

    Calls the API with the configured key and engine id and returns the
    top results as a JSON snippet.
    """

    def __init__(
        self,
        settings: SearchSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        super().__init__(timeout=settings.timeout_seconds, transport=transport)
        self.settings = settings
        self._definition = ToolDefinition(
            name=TOOL_NAME,
            description=TOOL_DESCRIPTION,
            input_schema=create_tool_schema([
                {
                    "name": "query",
                    "type": "string",
                    "description": "The specific query to search the web for",
                }
            ]),
        )

    @property
    def definition(self) -> ToolDefinition:
        return self._definition

    async def invoke(self, arguments: dict[str, Any]) -> dict[str, Any]:
        query = arguments["query"]
        logger.info("Running web search", query=query)

        try:
            items = await self.search(query)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Web search failed", query=query, error=str(e))
            return {"search_snippet": ERROR_SNIPPET}

        if not items:
            return {"search_snippet": NO_RESULTS_SNIPPET}

        return {
            "search_snippet": f"Web search results: {json.dumps(items, ensure_ascii=False)}"
        }

    async def search(self, query: str) -> list[dict[str, Any]]:
        """
        Query the search API.

        Raises:
            ValueError: If the API key or engine id is not configured, or the
                response body is malformed
            httpx.HTTPError: On transport or non-2xx responses
        """
        if not self.settings.api_key or not self.settings.engine_id:
            raise ValueError("Search API key or engine id is not configured")

        data = await self._get_json(
            self.settings.endpoint,
            params={
                "key": self.settings.api_key,
                "cx": self.settings.engine_id,
                "q": query,
                "num": self.settings.num_results,
            },
        )
        if not isinstance(data, dict):
            raise ValueError("Search response is not a JSON object")

        items = data.get("items") or []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise ValueError("Search response items are malformed")

        return format_search_results(items)
