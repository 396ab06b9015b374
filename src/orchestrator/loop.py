"""Conversation Orchestrator - the bounded tool-calling loop.

Each round submits the conversation to the model through the retry
executor and reports an explicit status:

- CONVERGED: the model answered without requesting a tool
- TOOL_PENDING: the model requested a tool; its invocation and result
  turns were produced and the loop continues

The loop ends on convergence, on budget exhaustion (the last response
text becomes the answer), or when an error escapes.
"""

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from shared.logging import get_logger
from shared.models import LLMResponse, OrchestrationRun, RunStatus, Turn
from capabilities.registry import ToolRegistry
from orchestrator.llm import LLMProvider
from orchestrator.retry import RetryExecutor
from orchestrator.sessions import SessionStore

logger = get_logger(__name__)

DEFAULT_FALLBACK_REPLY = "Sorry, I couldn't come up with a proper reply this time."


class RoundStatus(str, Enum):
    """Result of a single model round."""
    CONVERGED = "converged"
    TOOL_PENDING = "tool_pending"


class RoundOutcome(BaseModel):
    """What one round produced."""
    status: RoundStatus
    response: LLMResponse
    turns: list[Turn] = Field(default_factory=list)


class ConversationOrchestrator:
    """
    Drives a session's conversation to a final assistant answer.

    Tool rounds are appended to the session as they happen, so a later
    failure leaves them in place.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        tools: ToolRegistry,
        sessions: SessionStore,
        retry: Optional[RetryExecutor] = None,
        max_tool_calls: int = 5,
        fallback_reply: str = DEFAULT_FALLBACK_REPLY
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            llm_provider: Model used for completions
            tools: Registry dispatching tool calls
            sessions: Store holding conversation turns
            retry: Executor wrapping each model call
            max_tool_calls: Maximum model rounds per request
            fallback_reply: Answer used when the model produced no text
        """
        self.llm = llm_provider
        self.tools = tools
        self.sessions = sessions
        self.retry = retry or RetryExecutor()
        self.max_tool_calls = max_tool_calls
        self.fallback_reply = fallback_reply

    async def run(
        self,
        session_id: str,
        system_instruction: str,
        request_id: Optional[str] = None
    ) -> OrchestrationRun:
        """
        Run the tool-calling loop for a session.

        Args:
            session_id: Session whose turns form the conversation
            system_instruction: System prompt for every round
            request_id: Identifier used in logs

        Returns:
            The finished run, with final_text set

        Raises:
            UnknownToolError: If the model requested an unregistered tool
            OrchestratorError: If an upstream call failed terminally
        """
        request_id = request_id or str(uuid.uuid4())
        conversation = await self.sessions.get(session_id)
        run = OrchestrationRun(session_id=session_id, remaining_tool_calls=self.max_tool_calls)
        last_response: Optional[LLMResponse] = None

        while run.remaining_tool_calls > 0:
            outcome = await self._round(conversation, system_instruction, run.rounds + 1)
            run.rounds += 1
            last_response = outcome.response

            if outcome.status == RoundStatus.CONVERGED:
                run.status = RunStatus.CONVERGED
                break

            for turn in outcome.turns:
                conversation.append(turn)
                run.new_turns.append(turn)
                await self.sessions.append(session_id, turn)

            run.remaining_tool_calls -= 1

        if run.status != RunStatus.CONVERGED:
            run.status = RunStatus.BUDGET_EXHAUSTED
            logger.warning(
                "Tool call budget exhausted",
                request_id=request_id,
                rounds=run.rounds
            )

        run.final_text = (last_response.text if last_response else None) or self.fallback_reply

        logger.info(
            "Orchestration finished",
            request_id=request_id,
            status=run.status.value,
            rounds=run.rounds,
            tool_turns=len(run.new_turns)
        )
        return run

    async def _round(
        self,
        conversation: list[Turn],
        system_instruction: str,
        round_number: int
    ) -> RoundOutcome:
        """Ask the model once and dispatch the first tool call it requests."""
        definitions = self.tools.list_definitions()
        snapshot = list(conversation)

        response = await self.retry.execute(
            lambda: self.llm.complete(snapshot, system_instruction, definitions)
        )

        call = response.tool_call
        if call is None:
            return RoundOutcome(status=RoundStatus.CONVERGED, response=response)

        if len(response.tool_calls) > 1:
            logger.info(
                "Ignoring extra tool calls",
                honoured=call.name,
                ignored=[c.name for c in response.tool_calls[1:]]
            )

        logger.debug("LLM requested tool call", tool=call.name, round=round_number)
        result = await self.tools.invoke(call)

        return RoundOutcome(
            status=RoundStatus.TOOL_PENDING,
            response=response,
            turns=[Turn.tool_invocation(call, response.text), Turn.tool_result(result)],
        )
