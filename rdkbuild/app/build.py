from __future__ import annotations

import dataclasses
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from rdkbuild.conventions import ConventionRegistry, get_convention_registry
from rdkbuild.errors import ConfigurationError
from rdkbuild.foundation.config_io import load_settings_document
from rdkbuild.framework.model import ModuleContext
from rdkbuild.framework.module_graph import ModuleGraph
from rdkbuild.framework.resolution import RepositoryResolver
from rdkbuild.framework.runtime import BuildServices
from rdkbuild.framework.settings import BuildSettings, VersionCatalog
from rdkbuild.framework.toolchain import JdkToolchain, Toolchain
from rdkbuild.framework.wiring import materialize
from taskwire import (
    DefaultTaskRecorder,
    ExecutionReport,
    TaskExecutor,
    TaskGraph,
    TaskRecorder,
    TaskSpec,
    split_task_path,
)
from taskwire.engine.tasks import PATH_SEPARATOR
from taskwire.registry import NamedRegistry

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
PUBLISH_TASK = "publish"
CHECK_TASK = "check"


def configure_stdio_utf8() -> None:
    """Force stdout/stderr to UTF-8 so test output never crashes a narrow console."""
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if not callable(reconfigure):
            continue
        try:
            reconfigure(encoding="utf-8", errors="replace")
        except ValueError:
            # Streams that already decoded input keep their encoding.
            pass


def setup_build_logger(log_dir: str | os.PathLike[str], *, name: str = "rdkbuild.build") -> tuple[logging.Logger, str]:
    """Logger writing DEBUG to `<log_dir>/build.log` and INFO to the console."""

    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "build.log")

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.INFO)
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    logger.debug("Build log file: %s", log_file)
    return logger, log_file


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.flush()
        handler.close()
    logger.handlers.clear()
    logger.propagate = True


def load_settings(project_dir: str | os.PathLike[str] | None = None) -> BuildSettings:
    try:
        data, meta = load_settings_document(project_dir)
    except FileNotFoundError as exc:
        raise ConfigurationError(str(exc)) from exc
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    return BuildSettings.from_dict(data, root_dir=meta["root"])


@dataclass
class BuildContext:
    """Everything one build invocation configures, constructed once and passed explicitly."""

    settings: BuildSettings
    catalog: VersionCatalog
    registry: ConventionRegistry
    graph: ModuleGraph
    contexts: dict[str, ModuleContext]
    services: BuildServices
    specs: tuple[TaskSpec, ...] = field(default_factory=tuple)

    @classmethod
    def configure(
        cls,
        settings: BuildSettings,
        *,
        catalog: VersionCatalog | None = None,
        registry: ConventionRegistry | None = None,
        definitions: dict[str, dict[str, Any]] | None = None,
        toolchain: Toolchain | None = None,
        resolver: RepositoryResolver | None = None,
        logger: logging.Logger | None = None,
        show_test_output: bool = False,
    ) -> "BuildContext":
        """Build the module graph, apply every bundle and materialize the task specs.

        All configuration errors surface here; no task has run yet.
        """

        log = logger or logging.getLogger("rdkbuild.build")
        catalog = catalog if catalog is not None else VersionCatalog.load(settings.catalog_path)
        registry = registry if registry is not None else get_convention_registry()
        if definitions is None:
            graph = ModuleGraph.load(settings, catalog, bundles=registry)
        else:
            graph = ModuleGraph.from_definitions(settings, catalog, definitions, bundles=registry)

        contexts: dict[str, ModuleContext] = {}
        for module in graph.all_modules():
            ctx = registry.apply_all(ModuleContext(module=module, settings=settings, catalog=catalog), module.conventions)
            for decl in module.dependencies:
                try:
                    ctx = ctx.add_dependency(decl)
                except ValueError as exc:
                    raise ConfigurationError(f"{module.name}: {exc}", module=module.name) from exc
            contexts[module.name] = ctx
            log.debug("Configured %s with %s", module.name, ", ".join(ctx.applied))

        services = BuildServices(
            settings=settings,
            toolchain=toolchain if toolchain is not None else JdkToolchain(java_home=settings.toolchain.java_home),
            resolver=resolver if resolver is not None else RepositoryResolver(settings.resolution.repository),
            logger=log,
            show_test_output=show_test_output,
            modules=contexts,
        )
        build = cls(
            settings=settings,
            catalog=catalog,
            registry=registry,
            graph=graph,
            contexts=contexts,
            services=services,
        )
        build.rewire()
        return build

    def rewire(self) -> None:
        self.specs = materialize(self.contexts, self.services)
        try:
            TaskGraph.build(self.specs, [spec.path for spec in self.specs])
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    def apply(self, module_name: str, bundle_name: str) -> ModuleContext:
        """Apply one more bundle to a configured module; a bundle already applied is a no-op."""

        module = self.graph.module(module_name)
        updated = self.registry.apply(self.contexts[module.name], bundle_name)
        if updated is not self.contexts[module.name]:
            self.contexts[module.name] = updated
            self.rewire()
        return updated

    def _spec_index(self) -> NamedRegistry[TaskSpec]:
        return NamedRegistry.from_items(((spec.path, spec) for spec in self.specs), kind="task")

    def select(self, selectors: Iterable[str]) -> tuple[str, ...]:
        """`:module:name` (or `:name` for the root) selects one task; `name` selects it in every module."""

        index = self._spec_index()
        selected: list[str] = []
        for selector in selectors:
            raw = (selector or "").strip()
            if raw.startswith(PATH_SEPARATOR):
                try:
                    index.get(raw)
                except KeyError as exc:
                    raise ConfigurationError(exc.args[0]) from exc
                matches = [raw]
            else:
                matches = [spec.path for spec in self.specs if split_task_path(spec.path)[1] == raw]
                if not matches:
                    names = sorted({split_task_path(spec.path)[1] for spec in self.specs})
                    hint = NamedRegistry.from_items(((n, n) for n in names), kind="task").suggest(raw)
                    suffix = f"; did you mean: {', '.join(hint)}" if hint else ""
                    raise ConfigurationError(f"Task {raw!r} not found in any module{suffix}")
            for path in matches:
                if path not in selected:
                    selected.append(path)
        return tuple(selected)

    def task_graph(self, selectors: Sequence[str], *, exclude: Sequence[str] = ()) -> TaskGraph:
        requested = self.select(selectors)
        excluded = set(self.select(exclude)) if exclude else set()
        clash = sorted(set(requested) & excluded)
        if clash:
            raise ConfigurationError(f"Task(s) both requested and excluded: {', '.join(clash)}")

        specs = self.specs
        if excluded:
            specs = tuple(
                dataclasses.replace(
                    spec,
                    depends_on=tuple(ref for ref in spec.depends_on if ref not in excluded),
                    should_run_after=tuple(ref for ref in spec.should_run_after if ref not in excluded),
                    finalized_by=tuple(ref for ref in spec.finalized_by if ref not in excluded),
                )
                for spec in specs
                if spec.path not in excluded
            )
        try:
            graph = TaskGraph.build(specs, requested)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        self._require_verification_before_publish(graph)
        return graph

    @staticmethod
    def _require_verification_before_publish(graph: TaskGraph) -> None:
        for path in graph.order():
            owner, name = split_task_path(path)
            if name != PUBLISH_TASK:
                continue
            check = f"{PATH_SEPARATOR}{owner}{PATH_SEPARATOR}{CHECK_TASK}" if owner else f"{PATH_SEPARATOR}{CHECK_TASK}"
            if check not in graph.hard_predecessors(path):
                raise ConfigurationError(
                    f"Task {path} would run without verification: {check} is not scheduled before it",
                    module=owner,
                )

    def execute(
        self,
        graph: TaskGraph,
        *,
        max_workers: int | None = None,
        recorder: TaskRecorder | None = None,
    ) -> ExecutionReport:
        log = self.services.logger
        executor = TaskExecutor(
            max_workers=max_workers or self.settings.max_workers,
            recorder=recorder or DefaultTaskRecorder(log),
            log=log,
        )
        return executor.execute(graph)


@dataclass(frozen=True)
class BuildResult:
    graph: TaskGraph
    report: ExecutionReport | None
    log_path: str | None = None

    @property
    def ok(self) -> bool:
        return self.report is None or self.report.ok

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


def run_build(
    tasks: Sequence[str],
    *,
    project_dir: str | os.PathLike[str] | None = None,
    exclude: Sequence[str] = (),
    max_workers: int | None = None,
    dry_run: bool = False,
    show_test_output: bool = False,
    toolchain: Toolchain | None = None,
    resolver: RepositoryResolver | None = None,
) -> BuildResult:
    """Load, configure, plan and (unless `dry_run`) execute one build invocation.

    Raises ConfigurationError before anything runs; task failures are reported
    in the returned result instead.
    """

    if max_workers is not None and (isinstance(max_workers, bool) or max_workers < 1):
        raise ConfigurationError(f"max_workers must be >= 1 (got {max_workers!r})")
    settings = load_settings(project_dir)
    logger, log_path = setup_build_logger(Path(settings.root_dir) / settings.build_dir / "logs")
    try:
        logger.info("Build %s %s: %s", settings.root_project, settings.version, " ".join(tasks))
        try:
            build = BuildContext.configure(
                settings,
                toolchain=toolchain,
                resolver=resolver,
                logger=logger,
                show_test_output=show_test_output,
            )
            graph = build.task_graph(tasks, exclude=exclude)
        except ConfigurationError as exc:
            logger.error("Configuration failed: %s", exc)
            raise

        if dry_run:
            for path in graph.order():
                logger.info("%s SKIPPED (dry run)", path)
            return BuildResult(graph=graph, report=None, log_path=log_path)

        report = build.execute(graph, max_workers=max_workers)
        if report.ok:
            logger.info("BUILD SUCCESSFUL: %d task(s) executed", len(report.succeeded))
        else:
            logger.error(
                "BUILD FAILED: %d failed (%s), %d skipped, %d succeeded",
                len(report.failed),
                ", ".join(report.failed),
                len(report.skipped),
                len(report.succeeded),
            )
        return BuildResult(graph=graph, report=report, log_path=log_path)
    finally:
        close_logger(logger)
