"""Per-user conversation sessions.

Sessions live in memory for the life of the process. Durable memory is the
memory service's job; this store only ties turns together across calls.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from companion.models import Mindstate, Turn

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Ordered turn history for a single user."""

    user_id: str
    session_id: str = field(default_factory=lambda: f"session_{uuid.uuid4().hex[:12]}")
    turns: list[Turn] = field(default_factory=list)
    last_mindstate: Mindstate | None = None

    def add(self, turn: Turn) -> None:
        """Append a completed turn and remember its mindstate."""
        if turn.user_id != self.user_id:
            msg = f"Turn for {turn.user_id!r} cannot join session of {self.user_id!r}"
            raise ValueError(msg)
        self.turns.append(turn)
        self.last_mindstate = turn.mindstate

    def clear(self) -> int:
        """Drop all turns. Returns the count of cleared turns."""
        count = len(self.turns)
        self.turns.clear()
        self.last_mindstate = None
        return count


class SessionStore(ABC):
    """Keyed session storage. Swap implementations for persistence or tests."""

    @abstractmethod
    def get(self, user_id: str) -> Session | None: ...

    @abstractmethod
    def create(self, user_id: str) -> Session: ...

    @abstractmethod
    def append(self, user_id: str, turn: Turn) -> None: ...

    @abstractmethod
    def clear(self, user_id: str) -> int: ...

    def get_or_create(self, user_id: str) -> Session:
        session = self.get(user_id)
        if session is None:
            session = self.create(user_id)
        return session


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Not shared across processes."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get(self, user_id: str) -> Session | None:
        return self._sessions.get(user_id)

    def create(self, user_id: str) -> Session:
        session = Session(user_id=user_id)
        self._sessions[user_id] = session
        logger.info("Created session %s for user %s", session.session_id, user_id)
        return session

    def append(self, user_id: str, turn: Turn) -> None:
        self.get_or_create(user_id).add(turn)

    def clear(self, user_id: str) -> int:
        """Discard the user's session. Returns how many turns were dropped."""
        session = self._sessions.pop(user_id, None)
        if session is None:
            return 0
        count = session.clear()
        logger.info("Cleared session for user %s (%d turns)", user_id, count)
        return count

    def __len__(self) -> int:
        return len(self._sessions)
