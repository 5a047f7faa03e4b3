"""Bounded-parallel execution of a TaskGraph.

This module is intentionally app-agnostic and must not import `rdkbuild.*`.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Protocol

from .graph import TaskGraph
from .tasks import ExecutionReport, TaskOutcome, TaskResult, TaskSpec, utc_now_iso8601

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionContext:
    """What a running task can see: its own path and its predecessors' results."""

    path: str
    logger: logging.Logger
    results: Mapping[str, TaskResult]

    def outcome_of(self, path: str) -> TaskOutcome | None:
        result = self.results.get(path)
        return result.outcome if result is not None else None

    def result_of(self, path: str) -> Any:
        result = self.results.get(path)
        if result is None:
            raise ValueError(f"Task {self.path} requested the result of {path}, which has not run")
        if not result.succeeded:
            raise ValueError(
                f"Task {self.path} requested the result of {path}, which ended {result.outcome.value}"
            )
        return result.value


class TaskRecorder(Protocol):
    def on_task_start(self, ctx: ExecutionContext, spec: TaskSpec) -> None:
        ...

    def on_task_end(self, ctx: ExecutionContext, result: TaskResult) -> None:
        ...

    def on_task_error(self, ctx: ExecutionContext, spec: TaskSpec, exc: Exception) -> None:
        ...

    def on_task_skipped(self, result: TaskResult) -> None:
        ...


class DefaultTaskRecorder:
    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def on_task_start(self, ctx: ExecutionContext, spec: TaskSpec) -> None:
        tokens: list[str] = []
        if spec.group:
            tokens.append(f"group={spec.group}")
        if spec.action is None:
            tokens.append("lifecycle")
        if tokens:
            self._log.info("> Task %s (%s)", spec.path, ", ".join(tokens))
        else:
            self._log.info("> Task %s", spec.path)

    def on_task_end(self, ctx: ExecutionContext, result: TaskResult) -> None:
        self._log.debug("Completed %s in %.0f ms", result.path, result.duration_ms or 0.0)

    def on_task_error(self, ctx: ExecutionContext, spec: TaskSpec, exc: Exception) -> None:
        self._log.error("Task %s FAILED: %s", spec.path, exc)

    def on_task_skipped(self, result: TaskResult) -> None:
        self._log.warning("> Task %s SKIPPED (%s)", result.path, result.reason)


class NullTaskRecorder:
    def on_task_start(self, ctx: ExecutionContext, spec: TaskSpec) -> None:
        return

    def on_task_end(self, ctx: ExecutionContext, result: TaskResult) -> None:
        return

    def on_task_error(self, ctx: ExecutionContext, spec: TaskSpec, exc: Exception) -> None:
        return

    def on_task_skipped(self, result: TaskResult) -> None:
        return


class TaskExecutor:
    """Run a graph with at most `max_workers` tasks in flight.

    A task starts once every hard predecessor succeeded, every soft predecessor
    finished, and no running task holds one of its outputs. When a task fails,
    everything that hard-depends on it is skipped; unrelated tasks continue.
    """

    def __init__(
        self,
        *,
        max_workers: int = 4,
        recorder: TaskRecorder | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            raise ValueError(f"max_workers must be an int >= 1 (got {max_workers!r})")
        self._max_workers = max_workers
        self._log = log or logger
        self._recorder = recorder or DefaultTaskRecorder(self._log)
        for name in ("on_task_start", "on_task_end", "on_task_error", "on_task_skipped"):
            if not callable(getattr(self._recorder, name, None)):
                raise TypeError(f"Task recorder missing required method: {name}")

    def execute(self, graph: TaskGraph) -> ExecutionReport:
        results: dict[str, TaskResult] = {}
        pending: list[str] = list(graph.order())
        running: dict[Future[TaskResult], str] = {}
        claimed: dict[str, str] = {}

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="task") as pool:
            while pending or running:
                progressed = True
                while progressed:
                    progressed = False
                    for path in list(pending):
                        verdict, reason = self._readiness(graph, path, results)
                        if verdict == "skip":
                            pending.remove(path)
                            skipped = TaskResult(path=path, outcome=TaskOutcome.SKIPPED, reason=reason)
                            results[path] = skipped
                            self._recorder.on_task_skipped(skipped)
                            progressed = True
                            continue
                        if verdict != "ready" or len(running) >= self._max_workers:
                            continue
                        spec = graph.spec(path)
                        if any(output in claimed for output in spec.outputs):
                            continue
                        for output in spec.outputs:
                            claimed[output] = path
                        pending.remove(path)
                        ctx = ExecutionContext(
                            path=path,
                            logger=self._log,
                            results=MappingProxyType(dict(results)),
                        )
                        running[pool.submit(self._run_one, ctx, spec)] = path
                        progressed = True

                if not running:
                    if pending:
                        raise RuntimeError(f"Task scheduler stalled with pending tasks: {', '.join(pending)}")
                    break

                done, _ = wait(tuple(running), return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: running[f]):
                    path = running.pop(future)
                    results[path] = future.result()
                    for output in graph.spec(path).outputs:
                        if claimed.get(output) == path:
                            del claimed[output]

        ordered = {path: results[path] for path in graph.order()}
        return ExecutionReport(results=MappingProxyType(ordered))

    def _readiness(
        self, graph: TaskGraph, path: str, results: Mapping[str, TaskResult]
    ) -> tuple[str, str | None]:
        for pred in graph.hard_predecessors(path):
            result = results.get(pred)
            if result is None:
                return "wait", None
            if result.outcome is TaskOutcome.FAILED:
                return "skip", f"{pred} failed"
            if result.outcome is TaskOutcome.SKIPPED:
                return "skip", f"{pred} was skipped"
        for pred in graph.soft_predecessors(path):
            if pred not in results:
                return "wait", None
        return "ready", None

    def _run_one(self, ctx: ExecutionContext, spec: TaskSpec) -> TaskResult:
        started_at = utc_now_iso8601()
        start = time.perf_counter()
        try:
            self._recorder.on_task_start(ctx, spec)
            value = spec.action(ctx) if spec.action is not None else None
        except Exception as exc:
            try:
                self._recorder.on_task_error(ctx, spec, exc)
            except Exception:
                self._log.exception("Task recorder failed during error handling for %s", spec.path)
            return TaskResult(
                path=spec.path,
                outcome=TaskOutcome.FAILED,
                error=exc,
                reason=str(exc),
                started_at=started_at,
                duration_ms=(time.perf_counter() - start) * 1000.0,
            )

        result = TaskResult(
            path=spec.path,
            outcome=TaskOutcome.SUCCESS,
            value=value,
            started_at=started_at,
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        self._recorder.on_task_end(ctx, result)
        return result
