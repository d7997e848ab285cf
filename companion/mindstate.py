"""Mindstate builder: folds history and the context brief into one snapshot."""

from __future__ import annotations

from typing import TYPE_CHECKING

from companion.context.analysis import NEW_PERSON
from companion.llm.prompt import IDENTITY_KERNEL
from companion.models import Mindstate, WorkingMemory

if TYPE_CHECKING:
    from collections.abc import Sequence

    from companion.models import ContextBrief, Turn

_INTENT_SENTENCES = {
    "question": "They have a question they want answered.",
    "venting": "They need to express something and be heard.",
    "sharing": "They want to share something with you.",
    "request": "They have a specific request.",
    "greeting": "They are greeting you.",
    "continuation": "They are continuing an earlier thread.",
}


def extract_topic(message: str, max_words: int = 5) -> str:
    words = message.split()
    topic = " ".join(words[:max_words])
    return f"{topic}..." if len(words) > max_words else topic


def situation_snapshot(brief: ContextBrief) -> str:
    """Render the brief as prose, in a fixed order, skipping empty parts."""
    parts = [
        f"The person seems {brief.detected_emotion}." if brief.detected_emotion != "neutral" else "",
        brief.relationship_history or NEW_PERSON,
        _INTENT_SENTENCES[brief.primary_intent],
        f"Approach: {brief.suggested_approach}" if brief.suggested_approach else "",
        f"Remember: {'; '.join(brief.user_preferences)}" if brief.user_preferences else "",
        f"Could naturally explore: {', '.join(brief.topics_to_explore)}" if brief.topics_to_explore else "",
        f"Tone: {brief.tone_guidance}" if brief.tone_guidance else "",
    ]
    return " ".join(p for p in parts if p)


def build_mindstate(
    previous_turns: Sequence[Turn],
    brief: ContextBrief | None = None,
    identity_kernel: str = IDENTITY_KERNEL,
) -> Mindstate:
    """Build the Mindstate for the next reply. Pure given its inputs."""
    last = previous_turns[-1] if previous_turns else None

    working_memory = WorkingMemory(
        last_topic=extract_topic(last.user_message) if last else None,
        emotional_baseline=brief.detected_emotion if brief else "neutral",
        open_loops=last.mindstate.working_memory.open_loops if last else (),
        continuity_anchor=last.mindstate.working_memory.continuity_anchor if last else None,
    )

    if brief is not None:
        snapshot = situation_snapshot(brief)
        associations = tuple(brief.relevant_memories)
    elif last is None:
        snapshot = "A new person is reaching out for the first time."
        associations = ()
    else:
        snapshot = (
            "Continuing conversation. Last exchange was about "
            f"{working_memory.last_topic or 'various topics'}."
        )
        associations = ()

    return Mindstate(
        identity_kernel=identity_kernel,
        working_memory=working_memory,
        associations=associations,
        situation_snapshot=snapshot,
    )
