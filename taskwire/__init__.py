"""Reusable build kernel (task graph, executor, strict config, named registries).

This package is intentionally independent of `rdkbuild.*`. Anything that knows
about Java modules, conventions or build files lives in the consuming
application.
"""

from taskwire.config_namespace import ConfigNamespace
from taskwire.engine import (
    DefaultTaskRecorder,
    Edge,
    ExecutionContext,
    ExecutionReport,
    NullTaskRecorder,
    TaskExecutor,
    TaskGraph,
    TaskOutcome,
    TaskRecorder,
    TaskResult,
    TaskSpec,
    split_task_path,
    task_path,
    utc_now_iso8601,
)
from taskwire.registry import NamedRegistry

__all__ = [
    "ConfigNamespace",
    "DefaultTaskRecorder",
    "Edge",
    "ExecutionContext",
    "ExecutionReport",
    "NamedRegistry",
    "NullTaskRecorder",
    "TaskExecutor",
    "TaskGraph",
    "TaskOutcome",
    "TaskRecorder",
    "TaskResult",
    "TaskSpec",
    "split_task_path",
    "task_path",
    "utc_now_iso8601",
]
