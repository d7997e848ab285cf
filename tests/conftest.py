"""Shared test fixtures."""

import uuid

import pytest

from companion.memory import store as memory_store
from companion.memory.models import MemoryFact
from companion.memory.store import MemoryClient
from companion.models import Mindstate, Turn
from companion.orchestrator import Orchestrator


class StubMemory(MemoryClient):
    """Deterministic in-process memory client."""

    def __init__(self, facts: list[MemoryFact] | None = None, *, fail_store: bool = False) -> None:
        self.facts = facts or []
        self.fail_store = fail_store
        self.searches: list[tuple[str, str, int]] = []
        self.stored: list[tuple[str, str, str]] = []

    async def search(self, user_id: str, query: str, max_facts: int = 5) -> list[MemoryFact]:
        self.searches.append((user_id, query, max_facts))
        return self.facts[:max_facts]

    async def store(self, user_id: str, user_message: str, response: str) -> bool:
        if self.fail_store:
            msg = "memory service down"
            raise RuntimeError(msg)
        self.stored.append((user_id, user_message, response))
        return True


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Keep module-level singletons from leaking between tests."""
    Orchestrator._reset()
    memory_store._reset()
    yield
    Orchestrator._reset()
    memory_store._reset()


@pytest.fixture
def stub_memory() -> StubMemory:
    return StubMemory()


@pytest.fixture
def make_turn():
    """Factory for committed-looking turns."""

    def _make(
        user_message: str = "hello",
        response: str = "hi there",
        user_id: str = "user-1",
        mindstate: Mindstate | None = None,
    ) -> Turn:
        return Turn(
            turn_id=f"turn_{uuid.uuid4().hex[:8]}",
            user_id=user_id,
            user_message=user_message,
            response=response,
            mindstate=mindstate or Mindstate(identity_kernel="kernel"),
        )

    return _make
