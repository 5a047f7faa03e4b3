"""Materialization of configured module contexts into task specs.

Local task references become full paths, project dependencies on a task's
classpath configurations become edges to the producing module's archive tasks,
and each action is bound to its final module context and the build services.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from rdkbuild.errors import ConfigurationError
from rdkbuild.framework.dependencies import ProjectDependency
from rdkbuild.framework.model import ModuleContext, TaskDef
from rdkbuild.framework.resolution import (
    EXPORTED_CONFIGURATIONS,
    FIXTURE_EXPORTED_CONFIGURATIONS,
    DependencyResolutionError,
    walk_declarations,
)
from rdkbuild.framework.runtime import BuildServices, TaskRuntime
from taskwire import ExecutionContext, TaskSpec
from taskwire.engine.tasks import PATH_SEPARATOR

MAIN_ARCHIVE_TASK = "jar"
FIXTURES_ARCHIVE_TASK = "testFixturesJar"


def resolve_reference(ctx: ModuleContext, ref: str) -> str:
    if ref.startswith(PATH_SEPARATOR):
        return ref
    return ctx.module.task_path(ref)


def _archive_tasks_for(
    dependency: ProjectDependency,
    contexts: Mapping[str, ModuleContext],
    *,
    transitive: bool,
    seen: set[tuple[str, bool]],
) -> list[str]:
    key = (dependency.module, dependency.fixtures)
    if key in seen:
        return []
    seen.add(key)

    target = contexts[dependency.module]
    paths: list[str] = []
    if dependency.fixtures and FIXTURES_ARCHIVE_TASK in target.tasks:
        paths.append(target.module.task_path(FIXTURES_ARCHIVE_TASK))
    if MAIN_ARCHIVE_TASK in target.tasks:
        paths.append(target.module.task_path(MAIN_ARCHIVE_TASK))
    if not transitive:
        return paths

    exported = EXPORTED_CONFIGURATIONS + (FIXTURE_EXPORTED_CONFIGURATIONS if dependency.fixtures else ())
    for name in exported:
        config = target.configurations.get(name)
        if config is None:
            continue
        for decl in config.dependencies:
            if isinstance(decl.dependency, ProjectDependency):
                paths.extend(_archive_tasks_for(decl.dependency, contexts, transitive=True, seen=seen))
    return paths


def classpath_task_edges(
    ctx: ModuleContext, configuration: str, contexts: Mapping[str, ModuleContext]
) -> tuple[str, ...]:
    """Archive tasks that must finish before `configuration` of `ctx` can be resolved."""

    config = ctx.configurations.get(configuration)
    if config is None:
        raise ConfigurationError(
            f"Module {ctx.name} wires unknown configuration {configuration} into a task", module=ctx.name
        )
    paths: list[str] = []
    seen: set[tuple[str, bool]] = set()
    try:
        for decl in walk_declarations(ctx, configuration):
            if isinstance(decl.dependency, ProjectDependency):
                paths.extend(_archive_tasks_for(decl.dependency, contexts, transitive=config.transitive, seen=seen))
    except DependencyResolutionError as exc:
        raise ConfigurationError(str(exc), module=ctx.name) from exc
    return tuple(dict.fromkeys(paths))


def bind_action(
    action: Callable[[TaskRuntime], Any], ctx: ModuleContext, services: BuildServices
) -> Callable[[ExecutionContext], Any]:
    def _run(execution: ExecutionContext) -> Any:
        return action(TaskRuntime(execution=execution, module=ctx, services=services))

    return _run


def _spec_for(
    ctx: ModuleContext,
    task: TaskDef,
    *,
    contexts: Mapping[str, ModuleContext],
    services: BuildServices,
    known: set[str],
) -> TaskSpec:
    path = ctx.module.task_path(task.name)
    depends_on = [resolve_reference(ctx, ref) for ref in task.depends_on]
    for configuration in task.classpath_configurations:
        depends_on.extend(classpath_task_edges(ctx, configuration, contexts))
    depends_on = [ref for ref in dict.fromkeys(depends_on) if ref != path]
    should_run_after = [resolve_reference(ctx, ref) for ref in task.should_run_after]
    finalized_by = [resolve_reference(ctx, ref) for ref in task.finalized_by]

    for label, refs in (("depends on", depends_on), ("finalized by", finalized_by)):
        for ref in refs:
            if ref not in known:
                raise ConfigurationError(f"Task {path} is {label} unknown task {ref}", module=ctx.name)

    return TaskSpec(
        path=path,
        action=bind_action(task.action, ctx, services) if task.action is not None else None,
        depends_on=tuple(depends_on),
        should_run_after=tuple(should_run_after),
        finalized_by=tuple(finalized_by),
        outputs=tuple(str(output) for output in task.outputs),
        group=task.group,
        description=task.description,
        meta={"module": ctx.name},
    )


def materialize(contexts: Mapping[str, ModuleContext], services: BuildServices) -> tuple[TaskSpec, ...]:
    """Every registered task of every module as a `TaskSpec`, sorted by path."""

    known = {ctx.module.task_path(name) for ctx in contexts.values() for name in ctx.tasks}
    specs: list[TaskSpec] = []
    for ctx in contexts.values():
        for name in sorted(ctx.tasks):
            specs.append(_spec_for(ctx, ctx.tasks[name], contexts=contexts, services=services, known=known))
    return tuple(sorted(specs, key=lambda spec: spec.path))
