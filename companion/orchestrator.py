"""Turn pipeline: unconscious assembly, conscious generation, memory write.

Every turn walks the same six phases in order::

    receiving -> unconscious -> integrating -> conscious -> responding -> remembering

``chat_stream`` surfaces each phase, the context summary and every token as
events and ends with exactly one ``done`` or ``error`` (or nothing at all if
the caller cancels). ``chat`` runs the same phases and returns the Turn.

Concurrent turns for the same user are not serialized unless
``serialize_turns`` is on; callers that submit overlapping turns for one user
should serialize them themselves.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any, ClassVar

from companion.config import settings
from companion.context.assembler import ContextAssembler
from companion.events import ContextEvent, DoneEvent, ErrorEvent, PhaseEvent, TokenEvent
from companion.llm import client as llm_client
from companion.memory.persistence import PersistenceGateway
from companion.mindstate import build_mindstate
from companion.models import BriefSummary, ConsciousMetrics, DebugInfo, Turn
from companion.session import InMemorySessionStore
from companion.unconscious.runner import AgentProcessRunner

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable

    from companion.events import Phase, StreamEvent
    from companion.llm.client import Generation
    from companion.models import ContextBrief, Mindstate
    from companion.session import Session, SessionStore

logger = logging.getLogger(__name__)


class TurnError(Exception):
    """A turn was aborted. Nothing was committed to the session."""

    def __init__(self, phase: Phase, message: str) -> None:
        super().__init__(f"{phase} phase failed: {message}")
        self.phase = phase


class _PhaseClock:
    """Records wall-clock time spent in each phase."""

    def __init__(self) -> None:
        self.latency_ms: dict[str, int] = {}
        self._phase: str | None = None
        self._start = 0.0

    def enter(self, phase: Phase) -> None:
        self._close()
        self._phase = phase
        self._start = time.monotonic()
        logger.debug("Phase: %s", phase)

    def _close(self) -> None:
        if self._phase is not None:
            self.latency_ms[self._phase] = int((time.monotonic() - self._start) * 1000)

    def snapshot(self) -> dict[str, int]:
        self._close()
        self._phase = None
        return dict(self.latency_ms)


def _summarize(brief: ContextBrief) -> BriefSummary:
    return BriefSummary(
        emotion=brief.detected_emotion,
        intent=brief.primary_intent,
        depth=brief.depth_guidance,
        memories_used=len(brief.relevant_memories),
        processing_time_ms=brief.processing_time_ms,
    )


def _cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


class Orchestrator:
    """Runs turns against injected collaborators.

    Args:
        sessions: Session store. Defaults to a fresh in-memory store.
        assembler: Context assembler for the unconscious phase.
        generate: Batch generator ``(mindstate, message) -> Generation``.
        stream: Streaming generator ``(mindstate, message) -> async iterator of str``.
        gateway: Persistence gateway for the remembering phase.
        serialize_turns: Hold a per-user lock for the length of each turn.
    """

    _instance: ClassVar[Orchestrator | None] = None

    def __init__(
        self,
        sessions: SessionStore | None = None,
        assembler: ContextAssembler | None = None,
        generate: Callable[[Mindstate, str], Awaitable[Generation]] | None = None,
        stream: Callable[[Mindstate, str], AsyncGenerator[str, None]] | None = None,
        gateway: PersistenceGateway | None = None,
        *,
        serialize_turns: bool | None = None,
    ) -> None:
        self.sessions = sessions or InMemorySessionStore()
        self.assembler = assembler or ContextAssembler(
            executor=AgentProcessRunner() if settings.deep_unconscious_enabled else None
        )
        self._generate = generate or llm_client.generate
        self._stream = stream or llm_client.stream
        self.gateway = gateway or PersistenceGateway()
        self._serialize = settings.serialize_turns if serialize_turns is None else serialize_turns
        self._locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def get(cls) -> Orchestrator:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Drop the shared instance (for testing)."""
        cls._instance = None

    # -- Sessions ------------------------------------------------------------

    def get_session(self, user_id: str) -> Session | None:
        return self.sessions.get(user_id)

    def clear_session(self, user_id: str) -> int:
        return self.sessions.clear(user_id)

    def _turn_lock(self, user_id: str) -> Any:
        if not self._serialize:
            return contextlib.nullcontext()
        return self._locks.setdefault(user_id, asyncio.Lock())

    # -- Shared phase steps --------------------------------------------------

    async def _assemble(self, session: Session, message: str) -> ContextBrief:
        return await self.assembler.assemble_context_brief(
            session.user_id,
            message,
            list(session.turns),
            session_id=session.session_id,
        )

    def _complete(
        self,
        session: Session,
        message: str,
        response: str,
        mindstate: Mindstate,
        brief: ContextBrief,
        metrics: ConsciousMetrics,
        clock: _PhaseClock,
        debug: bool,
    ) -> Turn:
        """Build the turn and commit it to the session."""
        debug_info = None
        if debug:
            debug_info = DebugInfo(
                conscious=metrics,
                context=_summarize(brief),
                memory_queries=brief.memory_queries,
                phase_latency_ms=clock.snapshot(),
                mindstate_version=len(session.turns) + 1,
            )
        turn = Turn(
            turn_id=f"turn_{uuid.uuid4().hex[:12]}",
            user_id=session.user_id,
            user_message=message,
            response=response,
            mindstate=mindstate,
            debug=debug_info,
        )
        if self.sessions.get(session.user_id) is session:
            self.sessions.append(session.user_id, turn)
        else:
            logger.info(
                "Session for %s was cleared mid-turn; turn %s not committed",
                session.user_id,
                turn.turn_id,
            )
        return turn

    def _remember(self, turn: Turn) -> None:
        self.gateway.dispatch(turn.user_id, turn.user_message, turn.response)

    # -- Batch ---------------------------------------------------------------

    async def chat(self, message: str, user_id: str, *, debug: bool = False) -> Turn:
        """Run one turn to completion. Raises TurnError if it aborts."""
        async with self._turn_lock(user_id):
            clock = _PhaseClock()
            clock.enter("receiving")
            session = self.sessions.get_or_create(user_id)

            clock.enter("unconscious")
            try:
                brief = await self._assemble(session, message)
            except Exception as exc:
                logger.exception("Context assembly failed for %s", user_id)
                raise TurnError("unconscious", str(exc)) from exc

            clock.enter("integrating")
            mindstate = build_mindstate(session.turns, brief)

            clock.enter("conscious")
            try:
                generation = await self._generate(mindstate, message)
            except Exception as exc:
                logger.exception("Generation failed for %s", user_id)
                raise TurnError("conscious", str(exc)) from exc

            clock.enter("responding")
            metrics = ConsciousMetrics(
                model=generation.model,
                latency_ms=generation.latency_ms,
                prompt_tokens=generation.prompt_tokens,
                completion_tokens=generation.completion_tokens,
            )
            turn = self._complete(session, message, generation.text, mindstate, brief, metrics, clock, debug)

            clock.enter("remembering")
            self._remember(turn)
            return turn

    # -- Streaming -----------------------------------------------------------

    async def chat_stream(
        self,
        message: str,
        user_id: str,
        *,
        debug: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn, yielding events as it goes.

        Setting *cancel* (or closing the iterator) stops the turn before the
        next token: nothing further is emitted and nothing is committed.
        """
        async with self._turn_lock(user_id):
            clock = _PhaseClock()
            clock.enter("receiving")
            yield PhaseEvent("receiving")
            session = self.sessions.get_or_create(user_id)

            if _cancelled(cancel):
                logger.info("Turn for %s cancelled before assembly", user_id)
                return

            clock.enter("unconscious")
            yield PhaseEvent("unconscious")
            try:
                brief = await self._assemble(session, message)
            except Exception as exc:
                logger.exception("Context assembly failed for %s", user_id)
                yield ErrorEvent(str(exc), "unconscious")
                return
            yield ContextEvent(_summarize(brief))

            if _cancelled(cancel):
                logger.info("Turn for %s cancelled before generation", user_id)
                return

            clock.enter("integrating")
            yield PhaseEvent("integrating")
            mindstate = build_mindstate(session.turns, brief)

            clock.enter("conscious")
            yield PhaseEvent("conscious")
            start = time.monotonic()
            fragments: list[str] = []
            tokens = self._stream(mindstate, message)
            try:
                while True:
                    if _cancelled(cancel):
                        logger.info("Turn for %s cancelled mid-generation", user_id)
                        return
                    try:
                        fragment = await anext(tokens)
                    except StopAsyncIteration:
                        break
                    except Exception as exc:
                        logger.exception("Generation failed for %s", user_id)
                        yield ErrorEvent(str(exc), "conscious")
                        return
                    fragments.append(fragment)
                    yield TokenEvent(fragment)
            finally:
                await tokens.aclose()

            clock.enter("responding")
            yield PhaseEvent("responding")
            if _cancelled(cancel):
                logger.info("Turn for %s cancelled before commit", user_id)
                return

            metrics = ConsciousMetrics(
                model=settings.conscious_model,
                latency_ms=int((time.monotonic() - start) * 1000),
            )
            turn = self._complete(session, message, "".join(fragments), mindstate, brief, metrics, clock, debug)

            clock.enter("remembering")
            yield PhaseEvent("remembering")
            self._remember(turn)
            yield DoneEvent(turn)


# -- Module-level API --------------------------------------------------------


async def chat(message: str, user_id: str = "default", *, debug: bool = False) -> Turn:
    return await Orchestrator.get().chat(message, user_id, debug=debug)


def chat_stream(
    message: str,
    user_id: str = "default",
    *,
    debug: bool = False,
    cancel: asyncio.Event | None = None,
) -> AsyncIterator[StreamEvent]:
    return Orchestrator.get().chat_stream(message, user_id, debug=debug, cancel=cancel)


def get_session(user_id: str) -> Session | None:
    return Orchestrator.get().get_session(user_id)


def clear_session(user_id: str) -> int:
    return Orchestrator.get().clear_session(user_id)
