"""Configuration-time model: modules, configurations, task definitions, module contexts.

Everything here is immutable. Convention bundles receive a `ModuleContext` and
return a new one; the `with_*` helpers always copy the touched mapping, so two
modules configured by the same bundle never share mutable state.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Literal, Mapping, TypeAlias

from rdkbuild.framework.dependencies import DependencyDecl
from taskwire import task_path

if TYPE_CHECKING:
    from rdkbuild.framework.agent import AgentDescriptor
    from rdkbuild.framework.formatter import FormatRuleSet
    from rdkbuild.framework.publisher import Publication
    from rdkbuild.framework.runtime import TaskRuntime
    from rdkbuild.framework.settings import BuildSettings, VersionCatalog
    from rdkbuild.framework.suites import TestSuite

ModuleRole: TypeAlias = Literal["root", "library", "library_with_fixtures"]

MAIN = "main"
TEST = "test"
INTEGRATION_TEST = "integrationTest"
TEST_FIXTURES = "testFixtures"


def configuration_name(source_set: str, role: str) -> str:
    """`("main", "implementation")` -> `implementation`; `("test", "runtimeOnly")` -> `testRuntimeOnly`."""

    if source_set == MAIN:
        return role
    return f"{source_set}{role[0].upper()}{role[1:]}"


@dataclass(frozen=True)
class ModuleLayout:
    """Fixed on-disk locations for one module; part of the persisted build-state contract."""

    directory: Path
    build_dir: Path

    @classmethod
    def for_directory(cls, directory: Path, build_dir: str) -> "ModuleLayout":
        return cls(directory=directory, build_dir=directory / build_dir)

    def java_dir(self, source_set: str) -> Path:
        return self.directory / "src" / source_set / "java"

    def resources_dir(self, source_set: str) -> Path:
        return self.directory / "src" / source_set / "resources"

    def classes_dir(self, source_set: str) -> Path:
        return self.build_dir / "classes" / "java" / source_set

    def libs_dir(self) -> Path:
        return self.build_dir / "libs"

    def archive(self, base_name: str, version: str, classifier: str | None = None) -> Path:
        suffix = f"-{classifier}" if classifier else ""
        return self.libs_dir() / f"{base_name}-{version}{suffix}.jar"

    def javadoc_dir(self) -> Path:
        return self.build_dir / "docs" / "javadoc"

    def execution_data(self, test_task: str) -> Path:
        return self.build_dir / "coverage" / f"{test_task}.exec"

    def coverage_report_dir(self, test_task: str) -> Path:
        return self.build_dir / "reports" / "coverage" / test_task

    def test_results_dir(self, test_task: str) -> Path:
        return self.build_dir / "test-results" / test_task

    def format_report(self) -> Path:
        return self.build_dir / "reports" / "format" / "violations.json"


@dataclass(frozen=True)
class Module:
    name: str
    layout: ModuleLayout
    conventions: tuple[str, ...]
    dependencies: tuple[DependencyDecl, ...] = ()
    automatic_module_name: str | None = None
    description: str | None = None
    is_root: bool = False

    @property
    def directory(self) -> Path:
        return self.layout.directory

    @property
    def role(self) -> ModuleRole:
        if self.is_root:
            return "root"
        if "test-fixtures" in self.conventions:
            return "library_with_fixtures"
        return "library"

    def task_path(self, name: str) -> str:
        return task_path(None if self.is_root else self.name, name)

    def project_dependencies(self, *, configurations: tuple[str, ...] | None = None) -> tuple[str, ...]:
        names: list[str] = []
        for decl in self.dependencies:
            if configurations is not None and decl.configuration not in configurations:
                continue
            module = getattr(decl.dependency, "module", None)
            if module and module not in names:
                names.append(module)
        return tuple(names)


@dataclass(frozen=True)
class Configuration:
    name: str
    dependencies: tuple[DependencyDecl, ...] = ()
    extends_from: tuple[str, ...] = ()
    transitive: bool = True
    can_be_resolved: bool = False
    can_be_consumed: bool = False
    description: str | None = None

    def with_dependency(self, decl: DependencyDecl) -> "Configuration":
        if decl in self.dependencies:
            return self
        return dataclasses.replace(self, dependencies=(*self.dependencies, decl))


@dataclass(frozen=True)
class SourceSet:
    name: str
    compile_classpath: str
    runtime_classpath: str


@dataclass(frozen=True)
class TaskDef:
    """A task as a bundle registers it, before paths and project edges are resolved.

    Task references may be local names (`test`) or full paths (`:lib:jar`).
    `classpath_configurations` name configurations whose project dependencies
    add edges to the producing module's archive task.
    """

    name: str
    action: Callable[["TaskRuntime"], Any] | None = None
    depends_on: tuple[str, ...] = ()
    should_run_after: tuple[str, ...] = ()
    finalized_by: tuple[str, ...] = ()
    classpath_configurations: tuple[str, ...] = ()
    outputs: tuple[Path, ...] = ()
    group: str | None = None
    description: str | None = None

    def with_depends_on(self, *refs: str) -> "TaskDef":
        merged = tuple(dict.fromkeys((*self.depends_on, *refs)))
        return dataclasses.replace(self, depends_on=merged)

    def with_finalized_by(self, *refs: str) -> "TaskDef":
        merged = tuple(dict.fromkeys((*self.finalized_by, *refs)))
        return dataclasses.replace(self, finalized_by=merged)


@dataclass(frozen=True)
class ModuleContext:
    module: Module
    settings: "BuildSettings"
    catalog: "VersionCatalog"
    applied: tuple[str, ...] = ()
    configurations: Mapping[str, Configuration] = field(default_factory=dict)
    source_sets: Mapping[str, SourceSet] = field(default_factory=dict)
    tasks: Mapping[str, TaskDef] = field(default_factory=dict)
    suites: Mapping[str, "TestSuite"] = field(default_factory=dict)
    format_rules: Mapping[str, "FormatRuleSet"] = field(default_factory=dict)
    agents: tuple["AgentDescriptor", ...] = ()
    publication: "Publication | None" = None
    java_release: int | None = None
    encoding: str | None = None

    @property
    def name(self) -> str:
        return self.module.name

    @property
    def layout(self) -> ModuleLayout:
        return self.module.layout

    def is_applied(self, bundle: str) -> bool:
        return bundle in self.applied

    def mark_applied(self, bundle: str) -> "ModuleContext":
        if bundle in self.applied:
            return self
        return dataclasses.replace(self, applied=(*self.applied, bundle))

    def with_configuration(self, configuration: Configuration) -> "ModuleContext":
        if configuration.name in self.configurations:
            raise ValueError(f"Configuration {configuration.name} already exists in {self.name}")
        return dataclasses.replace(
            self, configurations={**self.configurations, configuration.name: configuration}
        )

    def configure_configuration(
        self, name: str, configure: Callable[[Configuration], Configuration]
    ) -> "ModuleContext":
        existing = self.configurations.get(name)
        if existing is None:
            raise ValueError(f"Configuration {name} is not defined in {self.name}")
        return dataclasses.replace(self, configurations={**self.configurations, name: configure(existing)})

    def add_dependency(self, decl: DependencyDecl) -> "ModuleContext":
        existing = self.configurations.get(decl.configuration)
        if existing is None:
            available = ", ".join(sorted(self.configurations)) or "<none>"
            raise ValueError(
                f"Unknown configuration {decl.configuration} in {self.name} (available: {available})"
            )
        return dataclasses.replace(
            self,
            configurations={**self.configurations, decl.configuration: existing.with_dependency(decl)},
        )

    def with_source_set(self, source_set: SourceSet) -> "ModuleContext":
        if source_set.name in self.source_sets:
            raise ValueError(f"Source set {source_set.name} already exists in {self.name}")
        return dataclasses.replace(self, source_sets={**self.source_sets, source_set.name: source_set})

    def with_task(self, task: TaskDef) -> "ModuleContext":
        if task.name in self.tasks:
            raise ValueError(f"Task {self.module.task_path(task.name)} is already registered")
        return dataclasses.replace(self, tasks={**self.tasks, task.name: task})

    def configure_task(self, name: str, configure: Callable[[TaskDef], TaskDef]) -> "ModuleContext":
        existing = self.tasks.get(name)
        if existing is None:
            raise ValueError(f"Task {self.module.task_path(name)} is not registered")
        return dataclasses.replace(self, tasks={**self.tasks, name: configure(existing)})

    def with_suite(self, suite: "TestSuite") -> "ModuleContext":
        if suite.kind in self.suites:
            raise ValueError(f"Test suite {suite.kind} already exists in {self.name}")
        return dataclasses.replace(self, suites={**self.suites, suite.kind: suite})

    def with_format_rules(self, rules: "FormatRuleSet") -> "ModuleContext":
        if rules.name in self.format_rules:
            raise ValueError(f"Format rule set {rules.name} already exists in {self.name}")
        return dataclasses.replace(self, format_rules={**self.format_rules, rules.name: rules})

    def with_agent(self, descriptor: "AgentDescriptor") -> "ModuleContext":
        if descriptor in self.agents:
            return self
        return dataclasses.replace(self, agents=(*self.agents, descriptor))

    def with_publication(self, publication: "Publication") -> "ModuleContext":
        if self.publication is not None:
            raise ValueError(f"{self.name} already declares a publication")
        return dataclasses.replace(self, publication=publication)

    def with_java(self, *, release: int, encoding: str) -> "ModuleContext":
        return dataclasses.replace(self, java_release=release, encoding=encoding)
