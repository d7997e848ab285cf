"""Keyword-level emotion, intent and approach classification."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from companion.models import Association, Depth, Intent

_EMOTIONS: list[tuple[str, re.Pattern[str], str]] = [
    (
        "sad",
        re.compile(r"\b(sad|upset|hurt|down|depressed|lonely)\b"),
        "They may need support and validation.",
    ),
    (
        "frustrated",
        re.compile(r"\b(angry|frustrated|annoyed|mad|pissed)\b"),
        "They may need to be heard before solutions.",
    ),
    (
        "anxious",
        re.compile(r"\b(worried|anxious|scared|nervous|afraid)\b"),
        "They may need reassurance and grounding.",
    ),
    (
        "positive",
        re.compile(r"\b(happy|excited|great|wonderful|amazing)\b"),
        "They are in good spirits. Match their energy.",
    ),
    (
        "confused",
        re.compile(r"\b(confused|lost|uncertain|unsure)\b"),
        "They need clarity and guidance.",
    ),
]

NEGATIVE_EMOTIONS = frozenset({"sad", "frustrated", "anxious"})

_QUESTION_START = re.compile(
    r"^(what|how|why|when|where|who|can|could|would|should|is|are|do|does)\b", re.IGNORECASE
)
_GREETING_START = re.compile(r"^(hi|hey|hello|good morning|good evening)\b", re.IGNORECASE)
_REQUEST_MARKERS = re.compile(r"\b(please|can you|could you|would you|help|need)\b", re.IGNORECASE)


def detect_emotion(message: str) -> tuple[str, str]:
    """Return ``(emotion, guidance)``; neutral carries empty guidance."""
    lowered = message.lower()
    for emotion, pattern, guidance in _EMOTIONS:
        if pattern.search(lowered):
            return emotion, guidance
    return "neutral", ""


def classify_intent(message: str, emotion: str, has_history: bool) -> Intent:
    text = message.strip()
    if text.endswith("?") or _QUESTION_START.search(text):
        return "question"
    if _GREETING_START.search(text):
        return "greeting"
    if _REQUEST_MARKERS.search(text):
        return "request"
    if emotion in NEGATIVE_EMOTIONS:
        return "venting"
    if has_history:
        return "continuation"
    return "sharing"


@dataclass(frozen=True)
class Approach:
    suggestion: str
    tone: str
    depth: Depth
    topics: list[str] = field(default_factory=list)


DEFAULT_TONE = "warm and present"

_APPROACHES: dict[str, Approach] = {
    "greeting": Approach("Acknowledge warmly. Keep it light but genuine.", DEFAULT_TONE, "brief"),
    "question": Approach("Answer thoughtfully. Draw on what you know about them.", DEFAULT_TONE, "moderate"),
    "venting": Approach(
        "Listen first. Validate their feelings before offering perspective.",
        "gentle and supportive",
        "deep",
    ),
    "request": Approach("Be helpful but stay within your nature.", DEFAULT_TONE, "moderate"),
    "sharing": Approach(
        "Engage with genuine curiosity. Ask follow-ups.",
        DEFAULT_TONE,
        "moderate",
        ["what this means to them"],
    ),
    "continuation": Approach("Build on where you left off. Show you remember.", DEFAULT_TONE, "moderate"),
}


def determine_approach(intent: Intent, emotion: str) -> Approach:
    """Look up the approach for *intent*, adjusted for *emotion*."""
    base = _APPROACHES[intent]
    tone, depth = base.tone, base.depth
    if emotion in ("anxious", "sad"):
        tone, depth = "gentle, grounding, and supportive", "deep"
    elif emotion == "positive":
        tone = "warm and matching their energy"
    return Approach(base.suggestion, tone, depth, list(base.topics))


NEW_PERSON = "This is a new person reaching out."


def relationship_sentence(turn_count: int, associations: Sequence[Association]) -> str:
    if turn_count > 10:
        return "This is someone you know well. You have history together."
    if turn_count > 0:
        return "You are getting to know this person."
    if associations:
        return "You have memories of this person from before."
    return NEW_PERSON


def extract_preferences(associations: Sequence[Association], limit: int = 3) -> list[str]:
    return [a.text for a in associations if a.type in ("preference", "teaching")][:limit]
