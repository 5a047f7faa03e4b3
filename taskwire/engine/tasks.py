"""Task specs and execution records.

This module is intentionally app-agnostic and must not import `rdkbuild.*`.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

PATH_SEPARATOR = ":"


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def task_path(owner: str | None, name: str) -> str:
    """Build a fully-qualified task path (`:owner:name`, or `:name` for the root)."""

    if not isinstance(name, str) or not name.strip() or PATH_SEPARATOR in name:
        raise ValueError(f"Invalid task name: {name!r}")
    if not owner:
        return f"{PATH_SEPARATOR}{name.strip()}"
    return f"{PATH_SEPARATOR}{owner.strip()}{PATH_SEPARATOR}{name.strip()}"


def split_task_path(path: str) -> tuple[str | None, str]:
    if not isinstance(path, str) or not path.startswith(PATH_SEPARATOR):
        raise ValueError(f"Task path must start with '{PATH_SEPARATOR}': {path!r}")
    parts = path[1:].split(PATH_SEPARATOR)
    if len(parts) == 1 and parts[0]:
        return None, parts[0]
    if len(parts) == 2 and all(parts):
        return parts[0], parts[1]
    raise ValueError(f"Malformed task path: {path!r}")


class TaskOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class TaskRunContext(Protocol):
    path: str
    logger: logging.Logger

    def result_of(self, path: str) -> Any:
        ...

    def outcome_of(self, path: str) -> TaskOutcome | None:
        ...


TaskAction = Callable[[TaskRunContext], Any]


def _normalize_paths(values: Any, *, label: str, owner: str) -> tuple[str, ...]:
    if isinstance(values, str):
        raise TypeError(f"Task {owner} {label} must be a sequence of task paths, not a string")
    normalized: list[str] = []
    for value in values:
        split_task_path(value)
        if value not in normalized:
            normalized.append(value)
    return tuple(normalized)


@dataclass(frozen=True)
class TaskSpec:
    """One node of the task graph.

    `depends_on` edges are hard: the task only runs when every dependency
    succeeded. `should_run_after` only orders two tasks that are both scheduled.
    Tasks listed in `finalized_by` are pulled into the graph with this task and
    run after it, but only when it succeeded.
    """

    path: str
    action: TaskAction | None = None
    depends_on: tuple[str, ...] = ()
    should_run_after: tuple[str, ...] = ()
    finalized_by: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    group: str | None = None
    description: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        split_task_path(self.path)
        if self.action is not None and not callable(self.action):
            raise TypeError(f"Task {self.path} action must be callable (type={type(self.action).__name__})")
        object.__setattr__(
            self, "depends_on", _normalize_paths(self.depends_on, label="depends_on", owner=self.path)
        )
        object.__setattr__(
            self,
            "should_run_after",
            _normalize_paths(self.should_run_after, label="should_run_after", owner=self.path),
        )
        object.__setattr__(
            self, "finalized_by", _normalize_paths(self.finalized_by, label="finalized_by", owner=self.path)
        )
        for label, values in (
            ("depends_on", self.depends_on),
            ("should_run_after", self.should_run_after),
            ("finalized_by", self.finalized_by),
        ):
            if self.path in values:
                raise ValueError(f"Task {self.path} lists itself in {label}")
        object.__setattr__(self, "outputs", tuple(str(item) for item in self.outputs))
        if not isinstance(self.meta, dict):
            raise TypeError(f"Task meta must be a dict (type={type(self.meta).__name__})")

    @property
    def owner(self) -> str | None:
        return split_task_path(self.path)[0]

    @property
    def name(self) -> str:
        return split_task_path(self.path)[1]


@dataclass(frozen=True)
class TaskResult:
    path: str
    outcome: TaskOutcome
    value: Any = None
    error: BaseException | None = None
    reason: str | None = None
    started_at: str | None = None
    duration_ms: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is TaskOutcome.SUCCESS


@dataclass(frozen=True)
class ExecutionReport:
    results: Mapping[str, TaskResult]

    def _with(self, outcome: TaskOutcome) -> tuple[str, ...]:
        return tuple(path for path, result in self.results.items() if result.outcome is outcome)

    @property
    def succeeded(self) -> tuple[str, ...]:
        return self._with(TaskOutcome.SUCCESS)

    @property
    def failed(self) -> tuple[str, ...]:
        return self._with(TaskOutcome.FAILED)

    @property
    def skipped(self) -> tuple[str, ...]:
        return self._with(TaskOutcome.SKIPPED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def outcome_of(self, path: str) -> TaskOutcome | None:
        result = self.results.get(path)
        return result.outcome if result is not None else None
