"""Test suite composition: a unit and an integration suite per library module.

The unit suite (`test`) runs against the module's compiled classes plus its
test-only dependencies and is finalized by `testCoverageReport`, which takes its
execution data from the live result of the suite. The integration suite
(`integrationTest`) runs against the module's own jar, its production
dependencies and any declared sibling fixtures. It should run after `test`
and is finalized by `integrationTestCoverageReport`, which reads the suite's
fixed execution-data path instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, TypeAlias

from rdkbuild.errors import AmbiguousArtifactError, TaskFailedError
from rdkbuild.framework.coverage import CoverageReport, ExecutionData, generate_report
from rdkbuild.framework.dependencies import Coordinates, DependencyDecl, ExternalDependency, ProjectDependency
from rdkbuild.framework.java_tasks import compile_source_set, compile_task_name, source_files
from rdkbuild.framework.model import (
    INTEGRATION_TEST,
    MAIN,
    TEST,
    TEST_FIXTURES,
    Configuration,
    ModuleContext,
    SourceSet,
    TaskDef,
    configuration_name,
)
from rdkbuild.framework.runtime import TaskRuntime
from rdkbuild.framework.toolchain import TestLaunch, TestRunResult

logger = logging.getLogger(__name__)

SuiteKind: TypeAlias = Literal["unit", "integration"]
UNIT: SuiteKind = "unit"
INTEGRATION: SuiteKind = "integration"

VERIFICATION_GROUP = "verification"
JUNIT_VERSION = "junit"
JUNIT_JUPITER = ("org.junit.jupiter", "junit-jupiter")
LAUNCHER_CONFIGURATION = "testLauncher"
LAUNCHER_ALIAS = "junit-platform-console-standalone"


@dataclass(frozen=True)
class TestSuite:
    __test__ = False

    module: str
    kind: SuiteKind
    source_set: str
    framework_version: str
    execution_data: Path
    configurations: tuple[str, ...]
    description: str

    @property
    def task_name(self) -> str:
        return self.source_set

    @property
    def compile_task_name(self) -> str:
        return compile_task_name(self.source_set)

    @property
    def report_task_name(self) -> str:
        return f"{self.source_set}CoverageReport"

    def dependencies(self, ctx: ModuleContext) -> tuple[DependencyDecl, ...]:
        """Dependencies declared directly on this suite's configurations."""

        decls: list[DependencyDecl] = []
        for name in self.configurations:
            config = ctx.configurations.get(name)
            if config is not None:
                decls.extend(config.dependencies)
        return tuple(decls)


@dataclass(frozen=True)
class SuiteRun:
    __test__ = False

    suite: TestSuite
    result: TestRunResult
    execution_data: Path


def _suite_configurations(ctx: ModuleContext, source_set: str, *, runtime_extends: tuple[str, ...]) -> ModuleContext:
    implementation = configuration_name(source_set, "implementation")
    compile_only = configuration_name(source_set, "compileOnly")
    runtime_only = configuration_name(source_set, "runtimeOnly")
    extends_main = source_set == TEST

    ctx = ctx.with_configuration(
        Configuration(
            implementation,
            extends_from=("implementation",) if extends_main else (),
            description=f"Implementation dependencies for the {source_set} suite.",
        )
    )
    ctx = ctx.with_configuration(Configuration(compile_only))
    ctx = ctx.with_configuration(
        Configuration(runtime_only, extends_from=("runtimeOnly",) if extends_main else ())
    )
    ctx = ctx.with_configuration(
        Configuration(
            configuration_name(source_set, "compileClasspath"),
            extends_from=(compile_only, implementation),
            can_be_resolved=True,
        )
    )
    ctx = ctx.with_configuration(
        Configuration(
            configuration_name(source_set, "runtimeClasspath"),
            extends_from=(runtime_only, implementation, *runtime_extends),
            can_be_resolved=True,
        )
    )
    return ctx.with_source_set(
        SourceSet(
            name=source_set,
            compile_classpath=configuration_name(source_set, "compileClasspath"),
            runtime_classpath=configuration_name(source_set, "runtimeClasspath"),
        )
    )


def _with_launcher(ctx: ModuleContext) -> ModuleContext:
    if LAUNCHER_CONFIGURATION in ctx.configurations or LAUNCHER_ALIAS not in ctx.catalog.libraries:
        return ctx
    ctx = ctx.with_configuration(
        Configuration(
            LAUNCHER_CONFIGURATION,
            transitive=False,
            can_be_resolved=True,
            description="JUnit Platform console launcher used to run test suites.",
        )
    )
    return ctx.add_dependency(
        DependencyDecl(LAUNCHER_CONFIGURATION, ExternalDependency(ctx.catalog.libraries[LAUNCHER_ALIAS]))
    )


def _framework_dependency(source_set: str, version: str) -> DependencyDecl:
    group, artifact = JUNIT_JUPITER
    coordinates = Coordinates(group=group, artifact=artifact, version=version)
    return DependencyDecl(configuration_name(source_set, "implementation"), ExternalDependency(coordinates))


def compose_suites(ctx: ModuleContext) -> ModuleContext:
    """Register the unit and integration suites, their compile tasks and coverage reports."""

    version = ctx.catalog.find_version(JUNIT_VERSION, where=f"{ctx.name} test suites")
    layout = ctx.layout
    ctx = _with_launcher(ctx)

    # unit
    ctx = _suite_configurations(ctx, TEST, runtime_extends=())
    unit = TestSuite(
        module=ctx.name,
        kind=UNIT,
        source_set=TEST,
        framework_version=version,
        execution_data=layout.execution_data(TEST),
        configurations=(
            configuration_name(TEST, "implementation"),
            configuration_name(TEST, "compileOnly"),
            configuration_name(TEST, "runtimeOnly"),
        ),
        description="Runs the unit tests.",
    )
    ctx = ctx.with_suite(unit).add_dependency(_framework_dependency(TEST, version))
    ctx = ctx.with_task(
        TaskDef(
            name=unit.compile_task_name,
            action=compile_source_set(TEST, classpath="testCompileClasspath", include_outputs=(MAIN,)),
            depends_on=(compile_task_name(MAIN),),
            classpath_configurations=("testCompileClasspath",),
            outputs=(layout.classes_dir(TEST),),
            description="Compiles the unit test sources.",
        )
    )
    ctx = ctx.with_task(
        TaskDef(
            name=unit.task_name,
            action=run_suite(unit),
            depends_on=(unit.compile_task_name, compile_task_name(MAIN)),
            finalized_by=(unit.report_task_name,),
            classpath_configurations=("testRuntimeClasspath",),
            outputs=(unit.execution_data, layout.test_results_dir(TEST)),
            group=VERIFICATION_GROUP,
            description=unit.description,
        )
    )
    ctx = ctx.with_task(
        TaskDef(
            name=unit.report_task_name,
            action=unit_coverage_report(unit),
            depends_on=(unit.task_name,),
            outputs=(layout.coverage_report_dir(TEST),),
            group=VERIFICATION_GROUP,
            description="Generates the coverage report for the unit tests.",
        )
    )

    # integration
    ctx = _suite_configurations(ctx, INTEGRATION_TEST, runtime_extends=("implementation", "runtimeOnly"))
    integration = TestSuite(
        module=ctx.name,
        kind=INTEGRATION,
        source_set=INTEGRATION_TEST,
        framework_version=version,
        execution_data=layout.execution_data(INTEGRATION_TEST),
        configurations=(
            configuration_name(INTEGRATION_TEST, "implementation"),
            configuration_name(INTEGRATION_TEST, "compileOnly"),
            configuration_name(INTEGRATION_TEST, "runtimeOnly"),
        ),
        description="Runs integration and system tests.",
    )
    implementation = configuration_name(INTEGRATION_TEST, "implementation")
    ctx = ctx.with_suite(integration)
    ctx = ctx.add_dependency(DependencyDecl(implementation, ProjectDependency(ctx.name)))
    ctx = ctx.add_dependency(_framework_dependency(INTEGRATION_TEST, version))
    ctx = ctx.with_task(
        TaskDef(
            name=integration.compile_task_name,
            action=compile_source_set(INTEGRATION_TEST, classpath="integrationTestCompileClasspath"),
            classpath_configurations=("integrationTestCompileClasspath",),
            outputs=(layout.classes_dir(INTEGRATION_TEST),),
            description="Compiles the integration test sources.",
        )
    )
    ctx = ctx.with_task(
        TaskDef(
            name=integration.task_name,
            action=run_suite(integration),
            depends_on=(integration.compile_task_name,),
            should_run_after=(unit.task_name,),
            finalized_by=(integration.report_task_name,),
            classpath_configurations=("integrationTestRuntimeClasspath",),
            outputs=(integration.execution_data, layout.test_results_dir(INTEGRATION_TEST)),
            group=VERIFICATION_GROUP,
            description=integration.description,
        )
    )
    return ctx.with_task(
        TaskDef(
            name=integration.report_task_name,
            action=integration_coverage_report(integration),
            depends_on=(integration.task_name,),
            outputs=(layout.coverage_report_dir(INTEGRATION_TEST),),
            group=VERIFICATION_GROUP,
            description="Generates the coverage report for the integration tests.",
        )
    )


# Execution ----------------------------------------------------------------


def _launch_classpath(runtime: TaskRuntime, suite: TestSuite) -> tuple[Path, ...]:
    ctx = runtime.module
    layout = ctx.layout
    local = [layout.resources_dir(suite.source_set)]
    if suite.kind == UNIT:
        local += [layout.classes_dir(MAIN), layout.resources_dir(MAIN)]
        if TEST_FIXTURES in ctx.source_sets:
            local += [layout.classes_dir(TEST_FIXTURES), layout.resources_dir(TEST_FIXTURES)]
    resolved = runtime.services.resolve(ctx, ctx.source_sets[suite.source_set].runtime_classpath)
    return tuple(dict.fromkeys([*(p for p in local if p.exists()), *resolved]))


def _launcher(runtime: TaskRuntime) -> Path | None:
    ctx = runtime.module
    if LAUNCHER_CONFIGURATION not in ctx.configurations:
        return None
    files = runtime.services.resolve(ctx, LAUNCHER_CONFIGURATION)
    if len(files) != 1:
        raise AmbiguousArtifactError(LAUNCHER_CONFIGURATION, tuple(str(f) for f in files))
    return files[0]


def _jvm_args(runtime: TaskRuntime) -> tuple[str, ...]:
    args: list[str] = []
    for descriptor in runtime.module.agents:
        args.extend(runtime.services.agent_provider(runtime.module, descriptor).as_arguments())
    return tuple(args)


def _log_results(runtime: TaskRuntime, suite: TestSuite, result: TestRunResult) -> None:
    log = runtime.logger
    path = runtime.execution.path
    for failure in result.failures:
        log.error("%s > %s FAILED\n%s", path, failure.name, failure.detail or failure.message)
    for name in result.skipped_names:
        log.warning("%s > %s SKIPPED", path, name)
    if runtime.services.show_test_output and result.output:
        log.info("%s output:\n%s", path, result.output.rstrip())
    log.info(
        "%s: %d test(s), %d failed, %d skipped", path, result.tests, result.failed, result.skipped
    )


def run_suite(suite: TestSuite) -> Callable[[TaskRuntime], SuiteRun]:
    def _run(runtime: TaskRuntime) -> SuiteRun:
        ctx = runtime.module
        layout = ctx.layout
        execution_data = suite.execution_data
        if execution_data.exists():
            execution_data.unlink()

        if not source_files(layout.java_dir(suite.source_set)):
            runtime.logger.info("%s: no test sources, nothing to run", runtime.execution.path)
            ExecutionData().write(execution_data)
            return SuiteRun(suite=suite, result=TestRunResult(tests=0), execution_data=execution_data)

        launch = TestLaunch(
            module=ctx.name,
            suite=suite.task_name,
            test_classes_dir=layout.classes_dir(suite.source_set),
            classpath=_launch_classpath(runtime, suite),
            jvm_args=_jvm_args(runtime),
            execution_data=execution_data,
            reports_dir=layout.test_results_dir(suite.task_name),
            working_dir=layout.directory,
            framework_version=suite.framework_version,
            launcher=_launcher(runtime),
            show_output=runtime.services.show_test_output,
        )
        result = runtime.services.toolchain.run_tests(launch)
        _log_results(runtime, suite, result)
        if not result.succeeded:
            raise TaskFailedError(
                f"{result.failed} of {result.tests} test(s) failed in {ctx.name} {suite.task_name}"
            )
        return SuiteRun(suite=suite, result=result, execution_data=execution_data)

    return _run


def _generate(runtime: TaskRuntime, suite: TestSuite, execution_data: Path) -> CoverageReport:
    layout = runtime.module.layout
    return generate_report(
        suite.kind,
        execution_data,
        [layout.classes_dir(MAIN)],
        [layout.java_dir(MAIN)],
        output_dir=layout.coverage_report_dir(suite.task_name),
        module=runtime.module.name,
    )


def unit_coverage_report(suite: TestSuite) -> Callable[[TaskRuntime], CoverageReport]:
    def _report(runtime: TaskRuntime) -> CoverageReport:
        run: SuiteRun = runtime.execution.result_of(runtime.task_path(suite.task_name))
        return _generate(runtime, suite, run.execution_data)

    return _report


def integration_coverage_report(suite: TestSuite) -> Callable[[TaskRuntime], CoverageReport]:
    def _report(runtime: TaskRuntime) -> CoverageReport:
        return _generate(runtime, suite, suite.execution_data)

    return _report
