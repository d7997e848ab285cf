"""Task, result and sweep models for the unconscious agents."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from companion.models import Association

TaskType = Literal[
    "memory_retrieval",
    "emotion_classification",
    "intent_recognition",
    "insight_generation",
]

_ID_PREFIXES: dict[str, str] = {
    "memory_retrieval": "mem",
    "emotion_classification": "emo",
    "intent_recognition": "int",
    "insight_generation": "ins",
}


def make_task_id(task_type: TaskType) -> str:
    """Generate a short, prefixed task ID."""
    return f"{_ID_PREFIXES[task_type]}_{uuid.uuid4().hex[:8]}"


@dataclass
class ExternalTask:
    """One unit of work for an unconscious agent.

    Attributes:
        id: Unique within its dispatch batch.
        type: Which analysis to run; selects the instruction template.
        user_id: Owning user.
        session_id: Owning session.
        input: The user message under analysis.
        context: Optional structured context rendered into the prompt.
    """

    id: str
    type: TaskType
    user_id: str
    session_id: str
    input: str
    context: dict[str, Any] | None = None

    @classmethod
    def new(
        cls,
        task_type: TaskType,
        user_id: str,
        session_id: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> ExternalTask:
        return cls(
            id=make_task_id(task_type),
            type=task_type,
            user_id=user_id,
            session_id=session_id,
            input=message,
            context=context,
        )


# -- Result payloads ---------------------------------------------------------


class MemoryRetrievalResult(BaseModel):
    type: Literal["memory_retrieval"] = "memory_retrieval"
    associations: list[Association] = Field(default_factory=list)
    synthesis: str = ""


class EmotionClassificationResult(BaseModel):
    type: Literal["emotion_classification"] = "emotion_classification"
    primary: str = "neutral"
    secondary: list[str] = Field(default_factory=list)
    intensity: float = Field(default=0.0, ge=0.0, le=1.0)
    signals: list[str] = Field(default_factory=list)


class IntentRecognitionResult(BaseModel):
    type: Literal["intent_recognition"] = "intent_recognition"
    primary_intent: str = ""
    sub_intents: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    needs: list[str] = Field(default_factory=list)


class Insight(BaseModel):
    content: str
    relevance: float = 0.0
    novelty: float = 0.0
    actionable: bool = False


class InsightGenerationResult(BaseModel):
    type: Literal["insight_generation"] = "insight_generation"
    insights: list[Insight] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)


TaskPayload = (
    MemoryRetrievalResult
    | EmotionClassificationResult
    | IntentRecognitionResult
    | InsightGenerationResult
)

RESULT_MODELS: dict[str, type[BaseModel]] = {
    "memory_retrieval": MemoryRetrievalResult,
    "emotion_classification": EmotionClassificationResult,
    "intent_recognition": IntentRecognitionResult,
    "insight_generation": InsightGenerationResult,
}


# -- Outcomes ----------------------------------------------------------------


@dataclass
class TaskFailure:
    """Why a task produced no result.

    ``kind`` is one of ``"timeout"``, ``"exit"`` (non-zero exit code),
    ``"parse"`` (no usable JSON) or ``"spawn"`` (process never started).
    """

    kind: Literal["timeout", "exit", "parse", "spawn"]
    message: str
    raw_output: str = ""
    stderr: str = ""
    exit_code: int | None = None


@dataclass
class TaskResult:
    """Outcome of one task: a payload or a failure, plus elapsed time."""

    task_id: str
    task_type: TaskType
    latency_ms: int
    payload: TaskPayload | None = None
    failure: TaskFailure | None = None

    @property
    def success(self) -> bool:
        return self.failure is None and self.payload is not None

    @property
    def error(self) -> str | None:
        return self.failure.message if self.failure else None


@dataclass
class SweepResult:
    """Typed results of a parallel sweep. A failed task leaves its slot None."""

    memory: MemoryRetrievalResult | None = None
    emotion: EmotionClassificationResult | None = None
    intent: IntentRecognitionResult | None = None
    insights: InsightGenerationResult | None = None
    total_latency_ms: int = 0
    results: list[TaskResult] = field(default_factory=list)

    def to_associations(self, limit: int = 5) -> list[Association]:
        """Distill sweep output into associations for the conscious layer."""
        associations: list[Association] = []

        if self.memory:
            associations.extend(self.memory.associations)

        if self.emotion and self.emotion.intensity > 0.6:
            text = f"Strong {self.emotion.primary} detected."
            if self.emotion.secondary:
                text += f" Secondary: {', '.join(self.emotion.secondary)}"
            associations.append(
                Association(
                    type="signal",
                    intensity="strong" if self.emotion.intensity > 0.8 else "medium",
                    text=text,
                    source="inference",
                )
            )

        if self.intent and self.intent.needs:
            associations.append(
                Association(
                    type="pull",
                    intensity="medium" if self.intent.confidence > 0.7 else "faint",
                    text=f"Unstated needs: {'; '.join(self.intent.needs[:2])}",
                    source="inference",
                )
            )

        return associations[:limit]
