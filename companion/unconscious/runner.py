"""Task executors for the unconscious layer.

``TaskExecutor`` is the seam the context assembler talks to. The shipped
implementation, ``AgentProcessRunner``, runs every task as its own agent CLI
process so analyses happen in parallel without sharing state with the
interactive session.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from companion.config import settings
from companion.unconscious.models import (
    RESULT_MODELS,
    EmotionClassificationResult,
    ExternalTask,
    InsightGenerationResult,
    IntentRecognitionResult,
    MemoryRetrievalResult,
    SweepResult,
    TaskFailure,
    TaskPayload,
    TaskResult,
    TaskType,
)
from companion.unconscious.prompts import build_prompt

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

DEFAULT_ARGV = ["{command}", "--print", "--output-format=json", "--model", "{model}", "-p", "{prompt}"]

_STDERR_LIMIT = 500


class TaskFailed(Exception):
    """Internal signal carrying a TaskFailure out of the process helpers."""

    def __init__(self, failure: TaskFailure) -> None:
        super().__init__(failure.message)
        self.failure = failure


# -- Output parsing ----------------------------------------------------------


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span in *text*, or None.

    Braces inside JSON strings (including escaped quotes) are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def _load_object(text: str) -> dict[str, Any]:
    span = extract_json_object(text)
    if span is None:
        raise TaskFailed(TaskFailure(kind="parse", message="No JSON object in agent output", raw_output=text))
    try:
        data = json.loads(span)
    except json.JSONDecodeError as exc:
        raise TaskFailed(
            TaskFailure(kind="parse", message=f"Invalid JSON in agent output: {exc}", raw_output=text)
        ) from exc
    return data


def parse_output(stdout: str, task_type: TaskType) -> TaskPayload:
    """Parse agent stdout into the typed payload for *task_type*."""
    data = _load_object(stdout)

    # CLI envelope: {"type": "result", "result": "<model text>"}
    if data.get("type") == "result" and isinstance(data.get("result"), str):
        data = _load_object(data["result"])

    declared = data.get("type")
    if declared != task_type:
        if declared is not None:
            logger.debug("Agent returned type %r for a %s task, correcting", declared, task_type)
        data["type"] = task_type

    try:
        return RESULT_MODELS[task_type].model_validate(data)
    except ValidationError as exc:
        raise TaskFailed(
            TaskFailure(kind="parse", message=f"Unexpected {task_type} payload: {exc}", raw_output=stdout)
        ) from exc


# -- Executors ---------------------------------------------------------------


class TaskExecutor(ABC):
    """Runs unconscious analysis tasks. Subclasses decide how."""

    @abstractmethod
    async def execute_task(self, task: ExternalTask) -> TaskResult:
        """Run one task. Never raises for task-level failures."""

    async def execute_parallel(self, tasks: Sequence[ExternalTask]) -> list[TaskResult]:
        """Run *tasks* concurrently; results come back in input order."""
        ids = [t.id for t in tasks]
        if len(set(ids)) != len(ids):
            msg = f"Duplicate task ids in batch: {ids}"
            raise ValueError(msg)
        return list(await asyncio.gather(*(self.execute_task(t) for t in tasks)))

    async def process_sweep(
        self,
        user_id: str,
        session_id: str,
        message: str,
        *,
        include_insights: bool | None = None,
        context: dict[str, Any] | None = None,
    ) -> SweepResult:
        """Run memory, emotion and intent tasks (and optionally insight) for one message."""
        if include_insights is None:
            include_insights = settings.deep_include_insights

        types: list[TaskType] = ["memory_retrieval", "emotion_classification", "intent_recognition"]
        if include_insights:
            types.append("insight_generation")
        tasks = [ExternalTask.new(t, user_id, session_id, message, context) for t in types]

        start = time.monotonic()
        results = await self.execute_parallel(tasks)
        total_ms = int((time.monotonic() - start) * 1000)

        by_type = {r.task_type: r.payload for r in results if r.success}
        for r in results:
            if not r.success:
                logger.warning("Unconscious task %s (%s) failed: %s", r.task_id, r.task_type, r.error)

        sweep = SweepResult(
            memory=_typed(by_type.get("memory_retrieval"), MemoryRetrievalResult),
            emotion=_typed(by_type.get("emotion_classification"), EmotionClassificationResult),
            intent=_typed(by_type.get("intent_recognition"), IntentRecognitionResult),
            insights=_typed(by_type.get("insight_generation"), InsightGenerationResult),
            total_latency_ms=total_ms,
            results=results,
        )
        logger.debug(
            "Sweep for %s: %d/%d tasks ok in %dms",
            user_id,
            len(by_type),
            len(tasks),
            total_ms,
        )
        return sweep

    async def run_task(
        self,
        task_type: TaskType,
        user_id: str,
        message: str,
        session_id: str = "adhoc",
        context: dict[str, Any] | None = None,
    ) -> TaskPayload | None:
        """Run a single task and return its payload, or None on failure."""
        result = await self.execute_task(ExternalTask.new(task_type, user_id, session_id, message, context))
        if not result.success:
            logger.warning("Task %s failed: %s", result.task_id, result.error)
            return None
        return result.payload


def _typed(payload: TaskPayload | None, cls: type) -> Any:
    return payload if isinstance(payload, cls) else None


class AgentProcessRunner(TaskExecutor):
    """Runs each task as an agent CLI process.

    Args:
        command: Executable to run. Defaults to ``settings.agent_command``.
        model: Model id passed to the agent.
        max_concurrent: Ceiling on processes in flight at once.
        timeout_ms: Per-task timeout.
        kill_grace_ms: How long a timed-out process gets between the
            termination signal and a forced kill.
        config_dir: Isolated configuration directory for the agent.
        argv_template: Argument list; the tokens ``{command}``, ``{model}``
            and ``{prompt}`` are replaced whole.
    """

    def __init__(
        self,
        command: str | None = None,
        model: str | None = None,
        *,
        max_concurrent: int | None = None,
        timeout_ms: int | None = None,
        kill_grace_ms: int | None = None,
        config_dir: Path | str | None = None,
        config_dir_env: str | None = None,
        argv_template: Sequence[str] | None = None,
    ) -> None:
        self.command = command or settings.agent_command
        self.model = model or settings.agent_model
        self.max_concurrent = max_concurrent or settings.agent_max_concurrent
        self.timeout_ms = timeout_ms or settings.agent_timeout_ms
        self.kill_grace_ms = kill_grace_ms if kill_grace_ms is not None else settings.agent_kill_grace_ms
        self.config_dir = Path(config_dir or settings.agent_config_dir).resolve()
        self.config_dir_env = config_dir_env or settings.agent_config_dir_env
        self.argv_template = list(argv_template or DEFAULT_ARGV)
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._active = 0

    def status(self) -> dict[str, int]:
        return {"active": self._active, "max_concurrent": self.max_concurrent}

    def build_argv(self, prompt: str) -> list[str]:
        values = {"{command}": self.command, "{model}": self.model, "{prompt}": prompt}
        return [values.get(arg, arg) for arg in self.argv_template]

    def _env(self) -> dict[str, str]:
        return {**os.environ, self.config_dir_env: str(self.config_dir)}

    async def execute_task(self, task: ExternalTask) -> TaskResult:
        start = time.monotonic()
        async with self._semaphore:
            self._active += 1
            try:
                stdout = await self._run(task)
                payload = parse_output(stdout, task.type)
            except TaskFailed as exc:
                latency = int((time.monotonic() - start) * 1000)
                logger.debug("Task %s failed (%s) after %dms", task.id, exc.failure.kind, latency)
                return TaskResult(task.id, task.type, latency, failure=exc.failure)
            finally:
                self._active -= 1

        latency = int((time.monotonic() - start) * 1000)
        logger.debug("Task %s (%s) completed in %dms", task.id, task.type, latency)
        return TaskResult(task.id, task.type, latency, payload=payload)

    async def _run(self, task: ExternalTask) -> str:
        """Spawn the agent for *task* and return its stdout."""
        argv = self.build_argv(build_prompt(task))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(),
            )
        except OSError as exc:
            raise TaskFailed(TaskFailure(kind="spawn", message=f"Failed to spawn {argv[0]}: {exc}")) from exc

        try:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_ms / 1000)
        except TimeoutError:
            await self._terminate(proc, task.id)
            raise TaskFailed(
                TaskFailure(kind="timeout", message=f"Task {task.id} timed out after {self.timeout_ms}ms")
            ) from None
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            raise

        stdout = stdout_b.decode(errors="replace")
        stderr = stderr_b.decode(errors="replace")
        if proc.returncode != 0:
            raise TaskFailed(
                TaskFailure(
                    kind="exit",
                    message=f"Agent exited with code {proc.returncode}: {stderr.strip()[:_STDERR_LIMIT]}",
                    raw_output=stdout,
                    stderr=stderr,
                    exit_code=proc.returncode,
                )
            )
        return stdout

    async def _terminate(self, proc: asyncio.subprocess.Process, task_id: str) -> None:
        """SIGTERM, then SIGKILL if the process outlives the grace period."""
        if proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_grace_ms / 1000)
        except TimeoutError:
            logger.warning("Task %s ignored SIGTERM, killing", task_id)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
