"""The `common` convention: a java-library module with tests, coverage and publishing.

Layers on `root`: the Java formatter rule set joins the rule sets the root
convention's format tasks already run.
"""

from __future__ import annotations

from rdkbuild.errors import ConfigurationError
from rdkbuild.framework import formatter
from rdkbuild.framework.agent import AgentDescriptor
from rdkbuild.framework.dependencies import Coordinates, DependencyDecl, ExternalDependency
from rdkbuild.framework.formatter import FormatRuleSet, step
from rdkbuild.framework.java_tasks import (
    annotation_processor_configuration,
    compile_source_set,
    javadoc,
    javadoc_jar,
    main_jar,
    sources_jar,
)
from rdkbuild.framework.model import MAIN, Configuration, ModuleContext, SourceSet, TaskDef, configuration_name
from rdkbuild.framework.publisher import Publication, PublicationArtifacts, publish
from rdkbuild.framework.runtime import TaskRuntime
from rdkbuild.framework.suites import VERIFICATION_GROUP, compose_suites
from taskwire import TaskOutcome

NAME = "common"
REQUIRES = ("root",)

MOCKITO_AGENT = "mockitoAgent"
MOCKITO_CORE = ("org.mockito", "mockito-core")
LOMBOK = "lombok"
BUILD_GROUP = "build"
DOCUMENTATION_GROUP = "documentation"
PUBLISHING_GROUP = "publishing"
PUBLICATION_NAME = "mavenJava"

# (configuration, catalog alias) added to every library module.
COMMON_DEPENDENCIES: tuple[tuple[str, str], ...] = (
    ("implementation", "slf4j"),
    ("testImplementation", "assertj-core"),
    ("testImplementation", "mockito-junit-jupiter"),
    ("testRuntimeOnly", "logback-classic"),
    ("integrationTestImplementation", "assertj-core"),
    ("integrationTestImplementation", "mockito-junit-jupiter"),
    ("integrationTestRuntimeOnly", "logback-classic"),
)


def java_rules() -> FormatRuleSet:
    return FormatRuleSet(
        name="java",
        targets=("src/*/java/**/*.java",),
        steps=(
            step("normalizeLineEndings", formatter.normalize_line_endings),
            step("leadingTabsToSpaces", formatter.leading_tabs_to_spaces(4)),
            step("removeUnusedImports", formatter.remove_unused_imports),
            step("orderImports", formatter.order_imports),
            step("collapseBlankLines", formatter.collapse_blank_lines),
            step("trimTrailingWhitespace", formatter.trim_trailing_whitespace),
            step("endWithNewline", formatter.end_with_newline),
        ),
    )


def _main_configurations(ctx: ModuleContext) -> ModuleContext:
    for configuration in (
        Configuration("api", description="Dependencies exported to consumers."),
        Configuration("implementation", extends_from=("api",)),
        Configuration("compileOnly"),
        Configuration("runtimeOnly"),
        Configuration("compileClasspath", extends_from=("compileOnly", "implementation"), can_be_resolved=True),
        Configuration("runtimeClasspath", extends_from=("runtimeOnly", "implementation"), can_be_resolved=True),
    ):
        ctx = ctx.with_configuration(configuration)
    return ctx.with_source_set(SourceSet(MAIN, "compileClasspath", "runtimeClasspath"))


def _mockito_agent(ctx: ModuleContext) -> ModuleContext:
    version = ctx.catalog.find_version("mockito", where=f"{ctx.name} {MOCKITO_AGENT}")
    group, artifact = MOCKITO_CORE
    coordinates = Coordinates(group=group, artifact=artifact, version=version)
    ctx = ctx.with_configuration(
        Configuration(
            MOCKITO_AGENT,
            transitive=False,
            can_be_resolved=True,
            can_be_consumed=False,
            description="Pins the Mockito agent jar attached to every test process.",
        )
    )
    ctx = ctx.add_dependency(DependencyDecl(MOCKITO_AGENT, ExternalDependency(coordinates)))
    return ctx.with_agent(AgentDescriptor(configuration=MOCKITO_AGENT, artifacts=(coordinates.notation,)))


def with_lombok(ctx: ModuleContext, source_set: str) -> ModuleContext:
    """Lombok on the source set's compile-only and annotation processor configurations."""

    processors = annotation_processor_configuration(source_set)
    ctx = ctx.with_configuration(
        Configuration(
            processors,
            transitive=False,
            can_be_resolved=True,
            can_be_consumed=False,
            description=f"Annotation processors for the {source_set} sources.",
        )
    )
    coordinates = ctx.catalog.find_library(LOMBOK, where=f"{ctx.name} {processors}")
    for configuration in (configuration_name(source_set, "compileOnly"), processors):
        ctx = ctx.add_dependency(DependencyDecl(configuration, ExternalDependency(coordinates)))
    return ctx


def _common_dependencies(ctx: ModuleContext) -> ModuleContext:
    for configuration, alias in COMMON_DEPENDENCIES:
        coordinates = ctx.catalog.find_library(alias, where=f"{ctx.name} common dependencies")
        ctx = ctx.add_dependency(DependencyDecl(configuration, ExternalDependency(coordinates)))
    return ctx


def _main_tasks(ctx: ModuleContext) -> ModuleContext:
    layout = ctx.layout
    version = ctx.settings.version
    for task in (
        TaskDef(
            name="compileJava",
            action=compile_source_set(MAIN, classpath="compileClasspath"),
            classpath_configurations=("compileClasspath",),
            outputs=(layout.classes_dir(MAIN),),
            description="Compiles the main sources.",
        ),
        TaskDef(
            name="jar",
            action=main_jar,
            depends_on=("compileJava",),
            outputs=(layout.archive(ctx.name, version),),
            group=BUILD_GROUP,
            description="Assembles the main jar with its Automatic-Module-Name.",
        ),
        TaskDef(
            name="sourcesJar",
            action=sources_jar,
            outputs=(layout.archive(ctx.name, version, "sources"),),
            group=DOCUMENTATION_GROUP,
            description="Assembles the sources jar.",
        ),
        TaskDef(
            name="javadoc",
            action=javadoc,
            depends_on=("compileJava",),
            classpath_configurations=("compileClasspath",),
            outputs=(layout.javadoc_dir(),),
            group=DOCUMENTATION_GROUP,
            description="Generates the API documentation.",
        ),
        TaskDef(
            name="javadocJar",
            action=javadoc_jar,
            depends_on=("javadoc",),
            outputs=(layout.archive(ctx.name, version, "javadoc"),),
            group=DOCUMENTATION_GROUP,
            description="Assembles the javadoc jar.",
        ),
    ):
        ctx = ctx.with_task(task)
    return ctx


def publish_module(runtime: TaskRuntime):
    ctx = runtime.module
    check_outcome = runtime.execution.outcome_of(runtime.task_path("check"))
    verified = (ctx.name,) if check_outcome is TaskOutcome.SUCCESS else ()
    return publish(
        ctx,
        PublicationArtifacts.for_module(ctx),
        verified=verified,
        repository=ctx.settings.publish_repository,
    )


def _lifecycle(ctx: ModuleContext) -> ModuleContext:
    ctx = ctx.with_task(
        TaskDef(
            name="check",
            depends_on=("test", "integrationTest"),
            group=VERIFICATION_GROUP,
            description="Runs the unit and integration suites.",
        )
    )
    ctx = ctx.with_task(
        TaskDef(
            name="assemble",
            depends_on=("jar", "sourcesJar", "javadocJar"),
            group=BUILD_GROUP,
            description="Assembles the published archives.",
        )
    )
    ctx = ctx.with_task(
        TaskDef(
            name="build",
            depends_on=("assemble", "check"),
            group=BUILD_GROUP,
            description="Assembles and verifies this module.",
        )
    )
    return ctx.with_task(
        TaskDef(
            name="publish",
            action=publish_module,
            depends_on=("check", "jar", "sourcesJar", "javadocJar"),
            group=PUBLISHING_GROUP,
            description=f"Publishes the {PUBLICATION_NAME} publication to the output repository.",
        )
    )


def apply_common(ctx: ModuleContext) -> ModuleContext:
    if ctx.module.is_root:
        raise ConfigurationError(f"Convention {NAME} applies to library modules, not the root project", module=ctx.name)
    if not ctx.module.automatic_module_name:
        raise ConfigurationError(
            f"Module {ctx.name} applies {NAME} but declares no automatic_module_name", module=ctx.name
        )

    toolchain = ctx.settings.toolchain
    ctx = ctx.with_java(release=toolchain.language_version, encoding=toolchain.encoding)
    ctx = _main_configurations(ctx)
    ctx = _main_tasks(ctx)
    ctx = compose_suites(ctx)
    for source_set in tuple(ctx.source_sets):
        ctx = with_lombok(ctx, source_set)
    ctx = _mockito_agent(ctx)
    ctx = _common_dependencies(ctx)
    ctx = _lifecycle(ctx)
    ctx = ctx.with_format_rules(java_rules())
    return ctx.with_publication(
        Publication(
            name=PUBLICATION_NAME,
            group=ctx.settings.group,
            artifact=ctx.name,
            version=ctx.settings.version,
            automatic_module_name=ctx.module.automatic_module_name,
            description=ctx.module.description,
        )
    )
