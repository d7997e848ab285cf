"""Unconscious layer: parallel analysis tasks run outside the conversation."""

from companion.unconscious.models import (
    ExternalTask,
    SweepResult,
    TaskFailure,
    TaskResult,
    TaskType,
)
from companion.unconscious.runner import AgentProcessRunner, TaskExecutor

__all__ = [
    "AgentProcessRunner",
    "ExternalTask",
    "SweepResult",
    "TaskExecutor",
    "TaskFailure",
    "TaskResult",
    "TaskType",
]
