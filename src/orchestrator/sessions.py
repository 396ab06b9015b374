"""Session store for the orchestrator.

Process-lifetime, in-memory mapping from session id to its ordered,
append-only list of turns. There is no TTL and no eviction; sessions
grow for as long as the process runs.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from shared.logging import get_logger
from shared.models import Turn

logger = get_logger(__name__)


class SessionStore:
    """
    Owns conversation turns for every session.

    Responsibilities:
    - Return a session's turns (empty for an unknown id)
    - Append turns, never mutating or removing earlier ones
    - Serialize requests for the same session via a per-session lock

    get() and append() on their own do not take the session lock. A
    caller doing read-modify-write across awaits must hold session()
    or it may interleave with another request for the same id.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, list[Turn]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Open the store for use."""
        self._running = True
        logger.info("Session store started")

    async def close(self) -> None:
        """Drop all sessions and stop accepting operations."""
        count = len(self._sessions)
        self._sessions.clear()
        self._locks.clear()
        self._running = False
        logger.info("Session store closed", sessions_dropped=count)

    def _ensure_running(self) -> None:
        if not self._running:
            raise RuntimeError("Session store is not running; call start() first")

    @asynccontextmanager
    async def session(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session's lock for the duration of a request."""
        self._ensure_running()
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            yield

    async def get(self, session_id: str) -> list[Turn]:
        """
        Get a session's turns.

        Args:
            session_id: Session identifier

        Returns:
            Copy of the ordered turns; empty if the session is unknown
        """
        self._ensure_running()
        return list(self._sessions.get(session_id, []))

    async def append(self, session_id: str, turn: Turn) -> None:
        """Append a turn, creating the session if needed."""
        self._ensure_running()
        turns = self._sessions.setdefault(session_id, [])
        turns.append(turn)
        logger.debug(
            "Turn appended",
            session_id=session_id,
            role=turn.role.value,
            turn_count=len(turns)
        )

    async def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Waits for any in-flight request on the session to finish. The
        lock entry is kept so later requests still serialize against it.

        Returns:
            True if deleted, False if not found
        """
        async with self.session(session_id):
            if self._sessions.pop(session_id, None) is not None:
                logger.info("Session deleted", session_id=session_id)
                return True
            return False

    def get_stats(self) -> dict[str, Any]:
        """Get session store statistics."""
        return {
            "total_sessions": len(self._sessions),
            "total_turns": sum(len(t) for t in self._sessions.values()),
        }
