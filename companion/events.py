"""Events emitted by the streaming turn pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from companion.models import BriefSummary, Turn

Phase = Literal["receiving", "unconscious", "integrating", "conscious", "responding", "remembering"]

PHASES: tuple[Phase, ...] = (
    "receiving",
    "unconscious",
    "integrating",
    "conscious",
    "responding",
    "remembering",
)


@dataclass(frozen=True)
class PhaseEvent:
    phase: Phase
    type: Literal["phase"] = "phase"


@dataclass(frozen=True)
class ContextEvent:
    """Summary of the context brief, sent once the unconscious phase finishes."""

    data: BriefSummary
    type: Literal["context"] = "context"


@dataclass(frozen=True)
class TokenEvent:
    content: str
    type: Literal["token"] = "token"


@dataclass(frozen=True)
class DoneEvent:
    turn: Turn
    type: Literal["done"] = "done"


@dataclass(frozen=True)
class ErrorEvent:
    error: str
    phase: Phase | None = None
    type: Literal["error"] = "error"


StreamEvent = PhaseEvent | ContextEvent | TokenEvent | DoneEvent | ErrorEvent
