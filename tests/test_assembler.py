"""Tests for ContextAssembler."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import StubMemory

from companion.context.assembler import ContextAssembler
from companion.memory.models import MemoryFact
from companion.memory.store import DisabledMemory
from companion.models import Association
from companion.unconscious.models import EmotionClassificationResult, SweepResult


def _assembler(memory=None, **kwargs) -> ContextAssembler:
    kwargs.setdefault("known_names", [])
    kwargs.setdefault("deep_enabled", False)
    return ContextAssembler(memory=memory or DisabledMemory(), **kwargs)


# -- Scenarios ---------------------------------------------------------------


async def test_sad_message_without_history():
    brief = await _assembler().assemble_context_brief("user-1", "I am feeling really sad today", [])

    assert brief.detected_emotion == "sad"
    assert brief.primary_intent == "venting"
    assert brief.depth_guidance == "deep"
    assert brief.tone_guidance == "gentle, grounding, and supportive"
    assert brief.emotional_context == "They may need support and validation."
    assert brief.relationship_history == "This is a new person reaching out."


async def test_greeting_is_brief():
    brief = await _assembler().assemble_context_brief("user-1", "Hello there!", [])

    assert brief.primary_intent == "greeting"
    assert brief.depth_guidance == "brief"
    assert brief.detected_emotion == "neutral"


async def test_continuation_and_relationship_from_history(make_turn):
    turns = [make_turn() for _ in range(11)]

    brief = await _assembler().assemble_context_brief("user-1", "Then I went home", turns)

    assert brief.primary_intent == "continuation"
    assert brief.relationship_history == "This is someone you know well. You have history together."


async def test_identical_inputs_give_identical_briefs(make_turn):
    memory = StubMemory([MemoryFact(id="f1", fact="They like long walks")])
    assembler = _assembler(memory)
    turns = [make_turn()]

    first = await assembler.assemble_context_brief("user-1", "What should I do this weekend?", turns)
    second = await assembler.assemble_context_brief("user-1", "What should I do this weekend?", turns)

    assert first.model_dump(exclude={"processing_time_ms"}) == second.model_dump(
        exclude={"processing_time_ms"}
    )


# -- Memory retrieval --------------------------------------------------------


async def test_memory_facts_become_associations():
    memory = StubMemory(
        [
            MemoryFact(id="f1", fact="They like green tea"),
            MemoryFact(id="f2", fact="Their dog is called Biscuit"),
            MemoryFact(id="f3", fact="They worry about their mother's health"),
            MemoryFact(id="f4", fact="They ran a marathon"),
        ]
    )

    brief = await _assembler(memory, max_facts=5).assemble_context_brief("user-1", "Morning walk done", [])

    assert memory.searches == [("user-1", "Morning walk done", 5)]
    assert brief.memory_source == "memory-service"
    assert brief.memory_queries == 1
    assert [a.type for a in brief.relevant_memories] == ["preference", "recollection", "signal"]
    assert all(a.source == "memory-service" for a in brief.relevant_memories)
    assert brief.user_preferences == ["They like green tea"]
    assert brief.relationship_history == "You have memories of this person from before."


async def test_empty_memory_result_falls_back_to_patterns():
    memory = StubMemory([])

    brief = await _assembler(memory).assemble_context_brief("user-1", "I'm stuck on my project", [])

    assert brief.memory_source == "pattern-fallback"
    assert brief.memory_queries == 1
    assert [a.source for a in brief.relevant_memories] == ["pattern-fallback", "pattern-fallback"]


async def test_no_memory_and_no_pattern_gives_no_associations():
    brief = await _assembler(StubMemory([])).assemble_context_brief("user-1", "The weather is nice", [])

    assert brief.relevant_memories == []
    assert brief.memory_source == "none"


async def test_memory_failure_degrades_to_patterns():
    memory = StubMemory()
    memory.search = AsyncMock(side_effect=RuntimeError("connection reset"))

    brief = await _assembler(memory).assemble_context_brief("user-1", "What gives life meaning?", [])

    assert brief.memory_source == "pattern-fallback"
    assert brief.relevant_memories[0].type == "hunch"


async def test_disabled_memory_not_queried():
    brief = await _assembler(DisabledMemory()).assemble_context_brief("user-1", "Let's build something", [])

    assert brief.memory_queries == 0
    assert brief.memory_source == "pattern-fallback"


async def test_existing_associations_skip_retrieval():
    memory = StubMemory([MemoryFact(id="f1", fact="unused")])
    existing = [Association(type="recollection", text=f"known {i}") for i in range(3)]

    brief = await _assembler(memory).assemble_context_brief(
        "user-1", "anything", [], existing=existing
    )

    assert memory.searches == []
    assert brief.relevant_memories == existing
    assert brief.memory_queries == 0


# -- Deep sweep --------------------------------------------------------------


def _executor(sweep=None, error=None) -> MagicMock:
    executor = MagicMock()
    executor.process_sweep = AsyncMock(return_value=sweep, side_effect=error)
    return executor


async def test_deep_sweep_adds_inference_associations():
    sweep = SweepResult(emotion=EmotionClassificationResult(primary="grief", intensity=0.95))
    executor = _executor(sweep)
    assembler = _assembler(StubMemory([MemoryFact(id="f1", fact="Their father passed in May")]),
                           executor=executor, deep_enabled=True)

    brief = await assembler.assemble_context_brief("user-1", "I miss him", [], session_id="s-1")

    executor.process_sweep.assert_awaited_once_with("user-1", "s-1", "I miss him")
    assert [a.source for a in brief.relevant_memories] == ["memory-service", "inference"]
    assert brief.relevant_memories[1].text == "Strong grief detected."


async def test_deep_sweep_failure_does_not_fail_brief():
    executor = _executor(error=RuntimeError("agent crashed"))
    assembler = _assembler(executor=executor, deep_enabled=True)

    brief = await assembler.assemble_context_brief("user-1", "Hello there!", [])

    assert brief.primary_intent == "greeting"


async def test_deep_mode_off_skips_sweep():
    executor = _executor(SweepResult())
    await _assembler(executor=executor, deep_enabled=False).assemble_context_brief("user-1", "hi", [])
    executor.process_sweep.assert_not_called()


@pytest.mark.parametrize("names", [["maya"], ["Maya"]])
async def test_known_names_feed_identity_pattern(names):
    brief = await _assembler(known_names=names).assemble_context_brief("user-1", "maya here", [])
    assert brief.relevant_memories[0].type == "recollection"
