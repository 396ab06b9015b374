"""Chat Gateway - the outer boundary of a chat request.

The gateway coordinates:
- Session locking and turn persistence
- System prompt generation
- The orchestration loop
- Mapping any terminal failure to exactly one user-facing response
"""

import uuid
from typing import Any, Optional

from shared.errors import InvalidRequestError
from shared.logging import bind_context, clear_context, get_logger
from shared.models import ChatMessage, ChatResult, Turn, TurnRole
from orchestrator.loop import ConversationOrchestrator
from orchestrator.prompts import StaticPromptProvider, SystemPromptProvider
from orchestrator.responses import map_error
from orchestrator.sessions import SessionStore

logger = get_logger(__name__)


class ChatGateway:
    """
    Handles one chat request end to end.

    Turns appended before a failure are kept; nothing is rolled back.
    """

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        sessions: SessionStore,
        system_prompt: Optional[SystemPromptProvider] = None
    ) -> None:
        self.orchestrator = orchestrator
        self.sessions = sessions
        self.system_prompt = system_prompt or StaticPromptProvider("Assistant")

    async def handle(self, session_id: str, messages: list[ChatMessage]) -> ChatResult:
        """
        Process the latest message of a chat request.

        Only the last inbound message is new; earlier context comes
        from the session store.

        Args:
            session_id: Caller's session identifier
            messages: Messages as sent by the frontend

        Returns:
            Status code and JSON body for the response
        """
        request_id = str(uuid.uuid4())
        bind_context(request_id=request_id, session_id=session_id)

        try:
            reply = await self._process(session_id, messages, request_id)
            return ChatResult.success(reply)
        except Exception as e:
            error = map_error(e)
            logger.error(
                "Chat request failed",
                kind=error.kind.value,
                status_code=error.status_code,
                error=str(e),
                exc_info=True
            )
            return ChatResult.failure(error.status_code, error.message)
        finally:
            clear_context()

    async def _process(self, session_id: str, messages: list[ChatMessage], request_id: str) -> str:
        if not messages:
            raise InvalidRequestError("Request contains no messages")

        current = messages[-1]
        logger.info("Processing message", role=current.role, length=len(current.content))

        async with self.sessions.session(session_id):
            await self.sessions.append(
                session_id,
                Turn(role=TurnRole(current.role), content=current.content)
            )

            system_instruction = await self.system_prompt()
            run = await self.orchestrator.run(session_id, system_instruction, request_id=request_id)

            await self.sessions.append(session_id, Turn.assistant(run.final_text))

        return run.final_text

    async def get_history(self, session_id: str) -> list[dict[str, Any]]:
        """Get a session's turns in JSON-friendly form."""
        turns = await self.sessions.get(session_id)
        return [turn.model_dump(mode="json", exclude_none=True) for turn in turns]

    async def end_session(self, session_id: str) -> bool:
        """Delete a session."""
        return await self.sessions.delete(session_id)

    def health_check(self) -> dict[str, Any]:
        """Report gateway dependencies."""
        return {
            "gateway": "healthy",
            "sessions": "running" if self.sessions.running else "stopped",
            "llm_provider": self.orchestrator.llm.name,
            "tools": self.orchestrator.tools.list_names(),
            "session_stats": self.sessions.get_stats(),
        }
