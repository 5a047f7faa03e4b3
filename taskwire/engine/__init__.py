"""Engine primitives for building and running task graphs."""

from taskwire.engine.executor import (
    DefaultTaskRecorder,
    ExecutionContext,
    NullTaskRecorder,
    TaskExecutor,
    TaskRecorder,
)
from taskwire.engine.graph import Edge, EdgeKind, TaskGraph
from taskwire.engine.tasks import (
    ExecutionReport,
    TaskAction,
    TaskOutcome,
    TaskResult,
    TaskRunContext,
    TaskSpec,
    split_task_path,
    task_path,
    utc_now_iso8601,
)

__all__ = [
    "DefaultTaskRecorder",
    "Edge",
    "EdgeKind",
    "ExecutionContext",
    "ExecutionReport",
    "NullTaskRecorder",
    "TaskAction",
    "TaskExecutor",
    "TaskGraph",
    "TaskOutcome",
    "TaskRecorder",
    "TaskResult",
    "TaskRunContext",
    "TaskSpec",
    "split_task_path",
    "task_path",
    "utc_now_iso8601",
]
