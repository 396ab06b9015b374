"""Base classes for tool capabilities.

All capabilities must:
- Declare exactly one tool definition
- Perform their own I/O
- Contain their own failures and describe them in the returned payload
- Never depend on the LLM or on conversation state
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from shared.logging import get_logger
from shared.models import ToolDefinition

logger = get_logger(__name__)


class BaseCapability(ABC):
    """
    Base class for an invocable tool.

    The registry looks capabilities up by their definition's name.
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return the tool definition declared to the model."""
        pass

    @property
    def name(self) -> str:
        return self.definition.name

    @abstractmethod
    async def invoke(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Run the capability.

        Args:
            arguments: Validated tool arguments

        Returns:
            Payload handed back to the model
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the capability."""
        return None


class HTTPCapability(BaseCapability):
    """
    Base capability for HTTP backends.

    Provides a lazily created, reusable httpx client.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport
            )
        return self._client

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET a JSON document, raising on non-2xx responses."""
        client = await self._get_client()
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
