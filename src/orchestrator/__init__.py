"""Orchestrator.

Manages session state, drives the model through the tool-calling loop
with retrying upstream calls, and maps failures to user responses.
"""

from orchestrator.llm import LLMProvider, create_llm_provider
from orchestrator.retry import RetryExecutor
from orchestrator.sessions import SessionStore
from orchestrator.loop import ConversationOrchestrator
from orchestrator.gateway import ChatGateway

__all__ = [
    "LLMProvider",
    "create_llm_provider",
    "RetryExecutor",
    "SessionStore",
    "ConversationOrchestrator",
    "ChatGateway",
]
