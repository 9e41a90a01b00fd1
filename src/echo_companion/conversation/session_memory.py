"""
Session memory management for the chat backend.

Keeps the full turn history of every live session in process memory and
forgets sessions that have been idle for longer than the configured TTL.
Only the context window read is bounded; stored history is not truncated.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Tuple

from ..core.config.base import CONTEXT_TURNS, SESSION_TTL_SECONDS
from ..core.logging import get_logger
from ..core.types import Speaker, Turn

logger = get_logger(__name__)


@dataclass
class Session:
    """Ordered turn history for one client session."""

    session_id: str
    created_at: float
    last_activity_at: float
    turns: List[Turn] = field(default_factory=list)

    def idle_seconds(self, now: float) -> float:
        return now - self.last_activity_at


class SessionMemoryStore:
    """In-process map of session id -> Session with idle eviction.

    All operations are synchronous, so each one is atomic on the event loop.
    Callers that need a read-call-write sequence on one session (the reply
    orchestrator) hold ``session_lock(session_id)`` for its duration; locks
    are per session, so different sessions never wait on each other.
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        context_turns: int = CONTEXT_TURNS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.context_turns = context_turns
        self._clock = clock or time.time
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def now(self) -> float:
        return self._clock()

    def get_or_create(self, session_id: str) -> Session:
        """Return the session, creating it if needed, and mark it active."""
        now = self._clock()
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(
                session_id=session_id, created_at=now, last_activity_at=now
            )
            self._sessions[session_id] = session
            logger.debug("Created session", session_id=session_id)
        else:
            session.last_activity_at = now
        return session

    def get(self, session_id: str) -> Optional[Session]:
        """Return the session without creating or touching it."""
        return self._sessions.get(session_id)

    def append_turn(self, session_id: str, turn: Turn) -> None:
        """Append a turn and opportunistically sweep idle sessions."""
        session = self.get_or_create(session_id)
        session.turns.append(turn)

        logger.debug(
            "Appended turn",
            session_id=session_id,
            speaker=turn.speaker.value,
            total_turns=len(session.turns),
        )

        # The session was just touched, so it cannot be swept here.
        self.sweep_expired()

    def context_window(
        self, session_id: str, k: Optional[int] = None
    ) -> Tuple[Turn, ...]:
        """Return the last ``k`` turns of a session in the order they were added."""
        if k is None:
            k = self.context_turns
        session = self._sessions.get(session_id)
        if session is None or k <= 0:
            return ()
        return tuple(session.turns[-k:])

    def history(self, session_id: str) -> Tuple[Turn, ...]:
        """Return the full stored history of a session."""
        session = self._sessions.get(session_id)
        return tuple(session.turns) if session else ()

    def sweep_expired(
        self, now: Optional[float] = None, ttl: Optional[float] = None
    ) -> List[str]:
        """Remove every session idle for at least ``ttl`` seconds.

        Returns:
            The ids of the removed sessions.
        """
        if now is None:
            now = self._clock()
        if ttl is None:
            ttl = self.ttl_seconds

        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.idle_seconds(now) >= ttl
        ]
        for session_id in expired:
            del self._sessions[session_id]
            self._drop_unused_lock(session_id)

        if expired:
            logger.info(
                "Evicted idle sessions", count=len(expired), remaining=len(self)
            )
        return expired

    def clear(self, session_id: str) -> bool:
        """Forget one session. Returns False if it did not exist."""
        if self._sessions.pop(session_id, None) is None:
            return False
        self._drop_unused_lock(session_id)
        logger.info("Cleared session", session_id=session_id)
        return True

    def clear_all(self) -> None:
        self._sessions.clear()
        for session_id in list(self._locks):
            self._drop_unused_lock(session_id)
        logger.info("Cleared all sessions")

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncGenerator[None, None]:
        """Hold the lock serializing mutations for one session.

        Holders and waiters are counted, and a session's lock is only
        discarded once nobody holds or waits on it. A lock released to a
        waiter that has not resumed yet therefore survives ``clear`` and
        ``sweep_expired``, and later callers queue behind that waiter.
        """
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if self._lock_users[session_id] == 0:
                del self._lock_users[session_id]
                if session_id not in self._sessions:
                    self._locks.pop(session_id, None)

    def _drop_unused_lock(self, session_id: str) -> None:
        if not self._lock_users.get(session_id):
            self._locks.pop(session_id, None)

    def summary(self, session_id: str) -> Dict[str, Any]:
        """Get a summary of the stored state for one session."""
        session = self._sessions.get(session_id)
        if session is None:
            return {"session_id": session_id, "exists": False, "total_turns": 0}

        now = self._clock()
        return {
            "session_id": session_id,
            "exists": True,
            "total_turns": len(session.turns),
            "user_turns": sum(1 for t in session.turns if t.speaker is Speaker.USER),
            "agent_turns": sum(1 for t in session.turns if t.speaker is Speaker.AGENT),
            "idle_seconds": session.idle_seconds(now),
            "expires_in_seconds": max(0.0, self.ttl_seconds - session.idle_seconds(now)),
            "context_turns": self.context_turns,
        }
