"""Context assembly: the unconscious pass that runs before every reply.

Pulls associations from the memory service (falling back to pattern
matching), reads the emotional and intent signals in the message, and
decides how the reply should be approached. Optionally runs a deep sweep of
agent tasks alongside memory retrieval.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from companion.config import settings
from companion.context.analysis import (
    classify_intent,
    detect_emotion,
    determine_approach,
    extract_preferences,
    relationship_sentence,
)
from companion.context.patterns import MAX_ASSOCIATIONS, match_patterns
from companion.memory.store import facts_to_associations, get_memory_client
from companion.models import ContextBrief

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from companion.memory.store import MemoryClient
    from companion.models import Association, Turn
    from companion.unconscious.models import SweepResult
    from companion.unconscious.runner import TaskExecutor

logger = logging.getLogger(__name__)

MAX_WITH_SWEEP = 5


class ContextAssembler:
    """Builds a ContextBrief for one incoming message.

    Args:
        memory: Memory-service client. Defaults to the shared client.
        executor: Task executor for deep sweeps. Deep mode is a no-op without one.
        deep_enabled: Run a sweep alongside retrieval. Defaults to settings.
        known_names: Names the identity pattern recognises. Defaults to settings.
    """

    def __init__(
        self,
        memory: MemoryClient | None = None,
        executor: TaskExecutor | None = None,
        *,
        deep_enabled: bool | None = None,
        known_names: Iterable[str] | None = None,
        max_facts: int | None = None,
    ) -> None:
        self._memory = memory
        self._executor = executor
        self._deep_enabled = settings.deep_unconscious_enabled if deep_enabled is None else deep_enabled
        self._known_names = list(known_names) if known_names is not None else settings.get_known_names()
        self._max_facts = max_facts or settings.memory_max_facts

    @property
    def memory(self) -> MemoryClient:
        if self._memory is None:
            self._memory = get_memory_client()
        return self._memory

    async def assemble_context_brief(
        self,
        user_id: str,
        message: str,
        previous_turns: Sequence[Turn],
        *,
        session_id: str | None = None,
        existing: Sequence[Association] = (),
    ) -> ContextBrief:
        start = time.monotonic()

        sweep_task: asyncio.Task[SweepResult] | None = None
        if self._deep_enabled and self._executor is not None:
            sweep_task = asyncio.create_task(
                self._executor.process_sweep(user_id, session_id or f"adhoc-{user_id}", message),
                name=f"sweep-{user_id}",
            )

        try:
            associations, source, queries = await self._retrieve(user_id, message, existing)
            if sweep_task is not None:
                associations = await self._merge_sweep(sweep_task, associations)
        finally:
            if sweep_task is not None and not sweep_task.done():
                sweep_task.cancel()

        emotion, emotional_context = detect_emotion(message)
        intent = classify_intent(message, emotion, has_history=len(previous_turns) > 0)
        approach = determine_approach(intent, emotion)

        brief = ContextBrief(
            relevant_memories=associations,
            user_preferences=extract_preferences(associations),
            relationship_history=relationship_sentence(len(previous_turns), associations),
            detected_emotion=emotion,
            emotional_context=emotional_context,
            primary_intent=intent,
            suggested_approach=approach.suggestion,
            topics_to_explore=approach.topics,
            tone_guidance=approach.tone,
            depth_guidance=approach.depth,
            memory_source=source,
            memory_queries=queries,
            processing_time_ms=int((time.monotonic() - start) * 1000),
        )
        logger.debug(
            "Brief for %s: emotion=%s intent=%s depth=%s memories=%d (%s) in %dms",
            user_id,
            emotion,
            intent,
            approach.depth,
            len(associations),
            source,
            brief.processing_time_ms,
        )
        return brief

    # -- Phase 1: memory retrieval -------------------------------------------

    async def _retrieve(
        self, user_id: str, message: str, existing: Sequence[Association]
    ) -> tuple[list[Association], str, int]:
        """Return ``(associations, memory_source, query_count)``."""
        if len(existing) >= MAX_ASSOCIATIONS:
            return list(existing), "none", 0

        queries = 0
        if self.memory.enabled:
            queries = 1
            try:
                facts = await self.memory.search(user_id, message, self._max_facts)
            except Exception:
                logger.exception("Memory search raised, using pattern fallback")
                facts = []
            if facts:
                found = facts_to_associations(facts)
                return [*existing, *found][:MAX_ASSOCIATIONS], "memory-service", queries

        found = match_patterns(message, self._known_names)
        source = "pattern-fallback" if found else "none"
        return [*existing, *found][:MAX_ASSOCIATIONS], source, queries

    async def _merge_sweep(
        self, sweep_task: asyncio.Task[SweepResult], associations: list[Association]
    ) -> list[Association]:
        try:
            sweep = await sweep_task
        except Exception:
            logger.exception("Deep sweep failed, continuing without it")
            return associations
        return [*associations, *sweep.to_associations()][:MAX_WITH_SWEEP]
