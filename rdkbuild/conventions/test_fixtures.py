"""The `test-fixtures` convention: `src/testFixtures/java` shared with sibling test suites.

The fixtures jar depends on the owning module's unit suite, so a consumer's
suites never run against fixtures of a module whose own tests failed. Fixture
archives are never part of the module's publication.
"""

from __future__ import annotations

import dataclasses

from rdkbuild.conventions.common import with_lombok
from rdkbuild.framework.java_tasks import compile_source_set, compile_task_name, source_set_jar
from rdkbuild.framework.model import MAIN, TEST, TEST_FIXTURES, Configuration, ModuleContext, SourceSet, TaskDef

NAME = "test-fixtures"
REQUIRES = ("common",)
FIXTURES_JAR = "testFixturesJar"
FIXTURES_CLASSIFIER = "test-fixtures"


def _configurations(ctx: ModuleContext) -> ModuleContext:
    for configuration in (
        Configuration("testFixturesApi", description="Dependencies exported to fixture consumers."),
        Configuration("testFixturesImplementation", extends_from=("testFixturesApi",)),
        Configuration("testFixturesCompileOnly"),
        Configuration("testFixturesRuntimeOnly"),
        Configuration(
            "testFixturesCompileClasspath",
            extends_from=("testFixturesCompileOnly", "testFixturesImplementation", "api"),
            can_be_resolved=True,
        ),
        Configuration(
            "testFixturesRuntimeClasspath",
            extends_from=("testFixturesRuntimeOnly", "testFixturesImplementation", "implementation", "runtimeOnly"),
            can_be_resolved=True,
        ),
    ):
        ctx = ctx.with_configuration(configuration)
    ctx = ctx.with_source_set(
        SourceSet(TEST_FIXTURES, "testFixturesCompileClasspath", "testFixturesRuntimeClasspath")
    )
    ctx = with_lombok(ctx, TEST_FIXTURES)
    # The module's own unit tests see its fixtures and their dependencies.
    return ctx.configure_configuration(
        "testImplementation",
        lambda config: dataclasses.replace(
            config, extends_from=(*config.extends_from, "testFixturesApi", "testFixturesImplementation")
        ),
    )


def apply_test_fixtures(ctx: ModuleContext) -> ModuleContext:
    layout = ctx.layout
    compile_fixtures = compile_task_name(TEST_FIXTURES)
    ctx = _configurations(ctx)
    ctx = ctx.with_task(
        TaskDef(
            name=compile_fixtures,
            action=compile_source_set(
                TEST_FIXTURES, classpath="testFixturesCompileClasspath", include_outputs=(MAIN,)
            ),
            depends_on=(compile_task_name(MAIN),),
            classpath_configurations=("testFixturesCompileClasspath",),
            outputs=(layout.classes_dir(TEST_FIXTURES),),
            description="Compiles the test fixture sources.",
        )
    )
    ctx = ctx.with_task(
        TaskDef(
            name=FIXTURES_JAR,
            action=source_set_jar(TEST_FIXTURES, FIXTURES_CLASSIFIER),
            depends_on=(compile_fixtures, TEST),
            outputs=(layout.archive(ctx.name, ctx.settings.version, FIXTURES_CLASSIFIER),),
            group="build",
            description="Assembles the test fixtures jar once the module's unit suite passed.",
        )
    )
    return ctx.configure_task(
        compile_task_name(TEST),
        lambda task: dataclasses.replace(
            task,
            action=compile_source_set(TEST, classpath="testCompileClasspath", include_outputs=(MAIN, TEST_FIXTURES)),
        ).with_depends_on(compile_fixtures),
    )
