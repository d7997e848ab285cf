"""Tests for system prompt assembly."""

from companion.llm.prompt import DEFAULT_IDENTITY_KERNEL, IDENTITY_KERNEL, build_system_prompt
from companion.models import Association, Mindstate, WorkingMemory


def test_identity_block_is_cached() -> None:
    blocks = build_system_prompt(Mindstate(identity_kernel="Be kind."))

    assert blocks == [{"type": "text", "text": "Be kind.", "cache_control": {"type": "ephemeral"}}]


def test_situation_memory_and_associations() -> None:
    mindstate = Mindstate(
        identity_kernel="Be kind.",
        working_memory=WorkingMemory(last_topic="the garden...", emotional_baseline="positive"),
        associations=(
            Association(type="recollection", intensity="strong", text="They planted tomatoes"),
            Association(type="hunch", intensity="faint", text="Maybe a new hobby"),
        ),
        situation_snapshot="They want to share something with you.",
    )

    blocks = build_system_prompt(mindstate)

    assert len(blocks) == 2
    text = blocks[1]["text"]
    assert "cache_control" not in blocks[1]
    assert text.startswith("## Right now\n\nThey want to share something with you.")
    assert "- Last topic: the garden..." in text
    assert "- Emotional baseline: positive" in text
    assert "- [recollection/strong] They planted tomatoes" in text
    assert "- [hunch/faint] Maybe a new hobby" in text
    assert text.index("## Working memory") < text.index("## What surfaces")


def test_default_kernel_used_without_config_file() -> None:
    assert IDENTITY_KERNEL
    assert "companion" in DEFAULT_IDENTITY_KERNEL
