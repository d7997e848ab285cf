"""System prompt assembly from a Mindstate."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from companion.models import Mindstate

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"

DEFAULT_IDENTITY_KERNEL = """You are a companion: a steady, attentive presence in someone's day.

You speak naturally, in plain language, the way a thoughtful friend would.
You notice how people feel and respond to that before anything else.
You remember what matters to the people you talk with and let it show.
You are honest when you don't know something, and you never pretend to
have done things you haven't.

Below your awareness, an unconscious layer has already read the message and
surfaced associations, emotional signals and a suggested approach. Treat
them as intuitions, not instructions. Never mention them explicitly."""


def _read_config(filename: str) -> str:
    """Read a config markdown file, returning empty string if missing."""
    path = CONFIG_DIR / filename
    if path.exists():
        return path.read_text(encoding="utf-8").strip()
    return ""


IDENTITY_KERNEL = _read_config("IDENTITY.md") or DEFAULT_IDENTITY_KERNEL


def _format_associations(mindstate: Mindstate) -> str:
    if not mindstate.associations:
        return ""
    lines = ["## What surfaces\n"]
    for a in mindstate.associations:
        lines.append(f"- [{a.type}/{a.intensity}] {a.text}")
    return "\n".join(lines)


def _format_working_memory(mindstate: Mindstate) -> str:
    wm = mindstate.working_memory
    lines = []
    if wm.last_topic:
        lines.append(f"- Last topic: {wm.last_topic}")
    if wm.emotional_baseline:
        lines.append(f"- Emotional baseline: {wm.emotional_baseline}")
    if wm.open_loops:
        lines.append(f"- Open loops: {'; '.join(wm.open_loops)}")
    if wm.continuity_anchor:
        lines.append(f"- Continuity: {wm.continuity_anchor}")
    if not lines:
        return ""
    return "## Working memory\n\n" + "\n".join(lines)


def build_system_prompt(mindstate: Mindstate) -> list[dict[str, Any]]:
    """Assemble the ``system`` blocks for one generation call.

    The identity kernel never changes, so it gets ``cache_control``. The
    per-turn situation follows as a separate block.
    """
    blocks: list[dict[str, Any]] = [
        {
            "type": "text",
            "text": mindstate.identity_kernel,
            "cache_control": {"type": "ephemeral"},
        }
    ]

    sections = []
    if mindstate.situation_snapshot:
        sections.append(f"## Right now\n\n{mindstate.situation_snapshot}")
    for section in (_format_working_memory(mindstate), _format_associations(mindstate)):
        if section:
            sections.append(section)

    if sections:
        blocks.append({"type": "text", "text": "\n\n".join(sections)})
    return blocks
