"""Instruction templates for each unconscious task type."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from companion.unconscious.models import ExternalTask

_HEADER = """Task: {title}
User ID: {user_id}
Session ID: {session_id}
Input: "{input}"
Context: {context}
"""

_FOOTER = "\nRespond with a single JSON object and nothing else:\n{shape}"

_TEMPLATES: dict[str, tuple[str, str, str]] = {
    "memory_retrieval": (
        "Memory Retrieval",
        """Search your memory for associations relevant to this input. Include:
- Past conversations or topics related to this
- Emotional patterns you've observed
- Commitments or promises that might be relevant
- Connections to the user's goals or projects""",
        '{"type": "memory_retrieval", "associations": [{"type": "RECALL|HUNCH|PULL|SIGN", '
        '"intensity": "faint|medium|strong", "text": "...", "source": "inference"}], '
        '"synthesis": "..."}',
    ),
    "emotion_classification": (
        "Emotion Classification",
        """Analyze the emotional content of this input. Detect:
- Primary emotion (joy, sadness, anger, fear, surprise, disgust, neutral)
- Secondary or nuanced emotions
- Emotional intensity (0-1)
- Specific signals that led to your classification""",
        '{"type": "emotion_classification", "primary": "...", "secondary": ["..."], '
        '"intensity": 0.0, "signals": ["..."]}',
    ),
    "intent_recognition": (
        "Intent Recognition",
        """Identify what the user is trying to accomplish. Consider:
- Explicit stated intent
- Implicit or unstated needs
- Potential sub-intents or secondary goals
- What they might need but haven't articulated""",
        '{"type": "intent_recognition", "primary_intent": "...", "sub_intents": ["..."], '
        '"confidence": 0.0, "needs": ["..."]}',
    ),
    "insight_generation": (
        "Insight Generation",
        """Generate insights that could enrich the response to this input. Look for:
- Non-obvious connections
- Reframings that might help
- Patterns across time
- Actionable suggestions""",
        '{"type": "insight_generation", "insights": [{"content": "...", "relevance": 0.0, '
        '"novelty": 0.0, "actionable": false}], "connections": ["..."]}',
    ),
}


def build_prompt(task: ExternalTask) -> str:
    """Fill the template for *task*'s type with its input and context."""
    title, body, shape = _TEMPLATES[task.type]
    header = _HEADER.format(
        title=title,
        user_id=task.user_id,
        session_id=task.session_id,
        input=task.input,
        context=json.dumps(task.context) if task.context else "none",
    )
    return f"{header}\n{body}\n{_FOOTER.format(shape=shape)}"
