"""Tool Registry.

Maps a tool name to an invocable capability. Adding a tool means
registering a capability, not branching in the orchestrator.
"""

import time
from typing import Optional

from shared.errors import UnknownToolError
from shared.logging import get_logger
from shared.models import ToolCall, ToolDefinition, ToolResult, ToolResultStatus
from shared.schema import validate_schema
from capabilities.base import BaseCapability

logger = get_logger(__name__)


class ToolRegistry:
    """
    Central registry for tool capabilities.

    Responsibilities:
    - Register capabilities by tool name
    - Supply tool definitions for the model
    - Validate arguments and invoke capabilities
    - Contain capability failures as error results
    """

    def __init__(self) -> None:
        self._capabilities: dict[str, BaseCapability] = {}

    def register(self, capability: BaseCapability) -> None:
        """
        Register a capability.

        Raises:
            ValueError: If the tool name is already registered
        """
        name = capability.name

        if name in self._capabilities:
            raise ValueError(f"Tool '{name}' is already registered")

        self._capabilities[name] = capability
        logger.info("Tool registered", tool=name)

    def unregister(self, name: str) -> bool:
        """Remove a capability. Returns False if it was not registered."""
        if name in self._capabilities:
            del self._capabilities[name]
            logger.info("Tool unregistered", tool=name)
            return True
        return False

    def get(self, name: str) -> Optional[BaseCapability]:
        return self._capabilities.get(name)

    def list_definitions(self) -> list[ToolDefinition]:
        """Tool definitions in registration order."""
        return [c.definition for c in self._capabilities.values()]

    def list_names(self) -> list[str]:
        return list(self._capabilities)

    async def invoke(self, call: ToolCall) -> ToolResult:
        """
        Execute a tool call.

        Args:
            call: Tool call requested by the model

        Returns:
            Tool result; failures are reported in the result, not raised

        Raises:
            UnknownToolError: If no capability is registered under the name
        """
        capability = self._capabilities.get(call.name)
        if capability is None:
            logger.error("Unknown tool requested", tool=call.name)
            raise UnknownToolError(call.name)

        start_time = time.time()

        is_valid, errors = validate_schema(call.arguments, capability.definition.input_schema)
        if not is_valid:
            message = f"Validation failed: {'; '.join(errors)}"
            logger.warning("Tool arguments rejected", tool=call.name, errors=errors)
            return ToolResult(
                tool_name=call.name,
                call_id=call.id,
                status=ToolResultStatus.VALIDATION_ERROR,
                payload={"error": message},
                error=message,
            )

        logger.info("Executing tool", tool=call.name, call_id=call.id)

        try:
            payload = await capability.invoke(call.arguments)
            result = ToolResult(
                tool_name=call.name,
                call_id=call.id,
                status=ToolResultStatus.SUCCESS,
                payload=payload,
            )
        except Exception as e:
            logger.error("Tool execution failed", tool=call.name, error=str(e), exc_info=True)
            result = ToolResult(
                tool_name=call.name,
                call_id=call.id,
                status=ToolResultStatus.ERROR,
                payload={"error": f"The tool '{call.name}' failed: {e}"},
                error=str(e),
            )

        result.execution_time_ms = (time.time() - start_time) * 1000

        logger.info(
            "Tool executed",
            tool=call.name,
            status=result.status.value,
            execution_time_ms=result.execution_time_ms
        )
        return result

    async def close(self) -> None:
        """Close every registered capability."""
        for capability in self._capabilities.values():
            await capability.close()
