"""Deterministic pattern fallback for when the memory service has nothing.

Five independent families, each contributing at most one association.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from companion.config import settings
from companion.models import Association

if TYPE_CHECKING:
    from collections.abc import Iterable

MAX_ASSOCIATIONS = 3


def _meaning(lowered: str, names: Iterable[str]) -> Association | None:
    if any(w in lowered for w in ("meaningful", "purpose", "meaning")):
        return Association(
            type="hunch",
            intensity="medium",
            text="Something about searching for meaning surfaces... "
            "there may be past conversations about purpose here.",
            source="pattern-fallback",
        )
    return None


def _creation(lowered: str, names: Iterable[str]) -> Association | None:
    if any(w in lowered for w in ("project", "build", "create")):
        return Association(
            type="pull",
            intensity="faint",
            text="I find myself curious about what they want to create...",
            source="pattern-fallback",
        )
    return None


def _identity(lowered: str, names: Iterable[str]) -> Association | None:
    for name in names:
        if re.search(rf"\b{re.escape(name)}\b", lowered):
            return Association(
                type="recollection",
                intensity="strong",
                text=f"This is {name.title()}. Their name carries weight. I should remember our history.",
                source="pattern-fallback",
            )
    return None


def _struggle(lowered: str, names: Iterable[str]) -> Association | None:
    if any(w in lowered for w in ("frustrat", "stuck", "hard", "difficult")):
        return Association(
            type="signal",
            intensity="medium",
            text="There may be emotional weight here that needs acknowledgment...",
            source="pattern-fallback",
        )
    return None


def _inner_experience(lowered: str, names: Iterable[str]) -> Association | None:
    if "you" in lowered and any(w in lowered for w in ("think", "feel", "remember")):
        return Association(
            type="pull",
            intensity="medium",
            text="They are asking about my inner experience... "
            "this is a chance for genuine connection.",
            source="pattern-fallback",
        )
    return None


PATTERN_FAMILIES = (_meaning, _creation, _identity, _struggle, _inner_experience)


def match_patterns(
    message: str,
    known_names: Iterable[str] | None = None,
    limit: int = MAX_ASSOCIATIONS,
) -> list[Association]:
    """Return the first *limit* associations the pattern families produce."""
    lowered = message.lower()
    names = [n.lower() for n in known_names] if known_names is not None else settings.get_known_names()

    found = []
    for family in PATTERN_FAMILIES:
        association = family(lowered, names)
        if association is not None:
            found.append(association)
            if len(found) >= limit:
                break
    return found
