import pytest

from rdkbuild.conventions import get_convention_registry
from rdkbuild.conventions.registry import ConventionBundle, ConventionRegistry
from rdkbuild.errors import ConfigurationError
from rdkbuild.framework.dependencies import DependencyDecl, ProjectDependency
from rdkbuild.framework.model import ModuleContext


def _two_modules(project):
    project.module("core", conventions=["root", "common", "test-fixtures"])
    project.module(
        "download",
        dependencies={"api": ["project(:core)"], "implementation": ["libs.guava"]},
        testing={"integration_test": {"implementation": ["test_fixtures(:core)"]}},
    )


def test_configuring_twice_yields_identical_task_graphs(project, configure):
    _two_modules(project)

    first = configure().task_graph(["build", "publish"])
    second = configure().task_graph(["build", "publish"])

    assert first.order() == second.order()
    assert first.edges == second.edges


def test_root_only_gets_format_tasks_and_modules_get_the_library_lifecycle(project, configure):
    _two_modules(project)
    build = configure()

    root_tasks = sorted(spec.path for spec in build.specs if spec.owner is None)
    assert root_tasks == [":formatApply", ":formatCheck"]

    core_tasks = {spec.name for spec in build.specs if spec.owner == "core"}
    assert {
        "compileJava",
        "jar",
        "sourcesJar",
        "javadoc",
        "javadocJar",
        "compileTestJava",
        "test",
        "testCoverageReport",
        "compileIntegrationTestJava",
        "integrationTest",
        "integrationTestCoverageReport",
        "check",
        "assemble",
        "build",
        "publish",
        "compileTestFixturesJava",
        "testFixturesJar",
        "formatCheck",
        "formatApply",
    } <= core_tasks
    assert "testFixturesJar" not in {spec.name for spec in build.specs if spec.owner == "download"}


def test_project_dependencies_become_edges_to_archive_tasks(project, configure):
    _two_modules(project)
    graph = configure().task_graph([":download:integrationTest"])

    assert ":core:jar" in graph.hard_predecessors(":download:compileJava")
    compile_it = graph.hard_predecessors(":download:compileIntegrationTestJava")
    assert ":core:testFixturesJar" in compile_it
    assert ":core:jar" in compile_it
    assert ":download:jar" in compile_it
    assert ":core:test" in graph.hard_predecessors(":core:testFixturesJar")


def test_suites_are_ordered_and_finalized_by_their_reports(project, configure):
    _two_modules(project)
    graph = configure().task_graph([":core:check"])

    assert ":core:testCoverageReport" in graph
    assert ":core:integrationTestCoverageReport" in graph
    assert graph.soft_predecessors(":core:integrationTest") == (":core:test",)
    assert ":core:integrationTest" in graph.hard_predecessors(":core:integrationTestCoverageReport")
    order = graph.order()
    assert order.index(":core:test") < order.index(":core:integrationTest")


def test_selectors_match_every_module_or_one_path(project, configure):
    _two_modules(project)
    build = configure()

    assert build.select(["test"]) == (":core:test", ":download:test")
    assert build.select([":core:test", "test"]) == (":core:test", ":download:test")
    assert build.select(["formatCheck"]) == (":core:formatCheck", ":download:formatCheck", ":formatCheck")

    with pytest.raises(ConfigurationError, match=r"Task 'tset' not found in any module; did you mean: test"):
        build.select(["tset"])
    with pytest.raises(ConfigurationError, match=r"Unknown task: :core:tset"):
        build.select([":core:tset"])


def test_excluded_tasks_and_their_edges_leave_the_graph(project, configure):
    _two_modules(project)
    graph = configure().task_graph(["build"], exclude=["integrationTest"])

    assert ":core:integrationTest" not in graph
    assert ":download:integrationTest" not in graph
    assert ":core:check" in graph
    assert ":core:test" in graph.hard_predecessors(":core:check")


def test_publish_without_verification_is_rejected_at_graph_time(project, configure):
    _two_modules(project)
    build = configure()

    assert ":core:check" in build.task_graph(["publish"]).hard_predecessors(":core:publish")
    with pytest.raises(ConfigurationError, match=r"Task :(core|download):publish would run without verification"):
        build.task_graph(["publish"], exclude=["check"])
    with pytest.raises(ConfigurationError, match=r"both requested and excluded: :core:test"):
        build.task_graph([":core:test"], exclude=["test"])


def test_module_contexts_never_share_mutable_state(project, configure):
    _two_modules(project)
    build = configure()
    core = build.contexts["core"]
    download = build.contexts["download"]

    assert core.configurations is not download.configurations
    assert core.tasks is not download.tasks

    extended = core.add_dependency(DependencyDecl("implementation", ProjectDependency("download")))
    assert len(extended.configurations["implementation"].dependencies) == 2
    assert len(core.configurations["implementation"].dependencies) == 1
    assert len(download.configurations["implementation"].dependencies) == 2


def test_applying_an_applied_bundle_is_a_no_op(project, configure):
    _two_modules(project)
    build = configure()
    before = build.contexts["core"]

    assert build.apply("core", "common") is before
    assert before.applied == ("root", "common", "test-fixtures")


def test_applying_fixtures_later_rewires_the_task_graph(project, configure):
    project.module("core")
    build = configure()
    assert ":core:testFixturesJar" not in {spec.path for spec in build.specs}

    updated = build.apply("core", "test-fixtures")

    assert updated.module.conventions == ("root", "common")
    assert "testFixturesJar" in updated.tasks
    assert ":core:testFixturesJar" in {spec.path for spec in build.specs}


def test_bundle_requirements_are_checked(project, configure):
    project.module("core", conventions=["root", "test-fixtures"])
    with pytest.raises(ConfigurationError, match=r"Convention test-fixtures requires common to be applied first"):
        configure()


def test_common_rejects_root_project_and_missing_module_name(project, configure):
    project.module("core")
    build = configure()
    with pytest.raises(ConfigurationError, match=r"applies to library modules, not the root project"):
        build.apply("rdk", "common")

    project.modules["core"].pop("automatic_module_name")
    with pytest.raises(ConfigurationError, match=r"declares no automatic_module_name"):
        configure()


def test_registry_apply_marks_bundles_in_order(project, configure):
    project.module("core")
    build = configure()
    module = build.graph.module("core")
    fresh = ModuleContext(module=module, settings=build.settings, catalog=build.catalog)

    registry = get_convention_registry()
    ctx = registry.apply(fresh, "root")

    assert ctx.applied == ("root",)
    assert fresh.applied == ()
    with pytest.raises(ConfigurationError, match=r"Unknown convention bundle: comon"):
        registry.apply(ctx, "comon")
    assert [row["name"] for row in registry.describe()] == ["common", "root", "test-fixtures"]


def test_registry_rejects_duplicate_and_misnamed_bundles():
    registry = get_convention_registry()
    root = ConventionBundle(name="root", apply=lambda ctx: ctx)
    fresh = ConventionRegistry([root])

    with pytest.raises(ConfigurationError, match=r"Duplicate convention bundle name: root"):
        fresh.register("root", root)
    with pytest.raises(ConfigurationError, match=r"registered under a different name: base"):
        fresh.register("base", root)
    assert registry.names() == ("common", "root", "test-fixtures")
