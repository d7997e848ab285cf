"""Core data models shared by the unconscious and conscious layers."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AssociationType = Literal["recollection", "hunch", "pull", "signal", "preference", "teaching"]
Intensity = Literal["faint", "medium", "strong"]
Provenance = Literal["memory-service", "pattern-fallback", "inference"]
Intent = Literal["question", "venting", "sharing", "request", "greeting", "continuation"]
Depth = Literal["brief", "moderate", "deep"]

# Tags the external agents and older memory payloads still emit
_TYPE_ALIASES: dict[str, str] = {
    "recall": "recollection",
    "sign": "signal",
}
_PROVENANCE_ALIASES: dict[str, str] = {
    "graphiti": "memory-service",
    "mem0": "memory-service",
    "pattern": "pattern-fallback",
}


class Association(BaseModel):
    """A retrieved or inferred memory fragment."""

    model_config = ConfigDict(frozen=True)

    type: AssociationType
    intensity: Intensity = "medium"
    text: str
    source: Provenance = "inference"

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.lower()
            return _TYPE_ALIASES.get(lowered, lowered)
        return value

    @field_validator("intensity", mode="before")
    @classmethod
    def _normalize_intensity(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @field_validator("source", mode="before")
    @classmethod
    def _normalize_source(cls, value: object) -> object:
        if isinstance(value, str):
            return _PROVENANCE_ALIASES.get(value.lower(), value.lower())
        return value


class WorkingMemory(BaseModel):
    """Short-horizon state carried from one turn to the next."""

    model_config = ConfigDict(frozen=True)

    last_topic: str | None = None
    emotional_baseline: str | None = None
    open_loops: tuple[str, ...] = ()
    continuity_anchor: str | None = None


class Mindstate(BaseModel):
    """Everything the conscious layer knows when it speaks."""

    model_config = ConfigDict(frozen=True)

    identity_kernel: str
    working_memory: WorkingMemory = Field(default_factory=WorkingMemory)
    associations: tuple[Association, ...] = ()
    situation_snapshot: str = ""


class ContextBrief(BaseModel):
    """Per-turn output of context assembly. Never persisted."""

    relevant_memories: list[Association] = Field(default_factory=list)
    user_preferences: list[str] = Field(default_factory=list)
    relationship_history: str | None = None

    detected_emotion: str = "neutral"
    emotional_context: str = ""

    primary_intent: Intent = "sharing"
    suggested_approach: str = ""

    topics_to_explore: list[str] = Field(default_factory=list)
    tone_guidance: str = ""
    depth_guidance: Depth = "moderate"

    memory_source: Literal["memory-service", "pattern-fallback", "none"] = "none"
    memory_queries: int = 0
    processing_time_ms: int = 0


class ConsciousMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    latency_ms: int
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class BriefSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    emotion: str
    intent: Intent
    depth: Depth
    memories_used: int
    processing_time_ms: int


class DebugInfo(BaseModel):
    """Optional per-turn metrics, attached when the caller asks for debug."""

    model_config = ConfigDict(frozen=True)

    conscious: ConsciousMetrics
    context: BriefSummary
    memory_queries: int = 0
    phase_latency_ms: dict[str, int] = Field(default_factory=dict)
    mindstate_version: int = 1


class Turn(BaseModel):
    """One user-message/response exchange. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    turn_id: str
    user_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    user_message: str
    response: str
    mindstate: Mindstate
    debug: DebugInfo | None = None
