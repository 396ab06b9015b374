"""Tool capabilities.

Each capability contains:
- One tool definition
- Its own backend client
- Its own failure containment

New tools are added by registering a capability with the ToolRegistry.
"""

from shared.config import Settings
from capabilities.base import BaseCapability
from capabilities.registry import ToolRegistry


def load_default_capabilities(registry: ToolRegistry, settings: Settings) -> None:
    """
    Register the built-in capabilities.

    Called at orchestrator startup.
    """
    from capabilities.web_search import WebSearchCapability

    registry.register(WebSearchCapability(settings.search))


__all__ = ["BaseCapability", "ToolRegistry", "load_default_capabilities"]
