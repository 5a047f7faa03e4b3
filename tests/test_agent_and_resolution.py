import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from rdkbuild.errors import AmbiguousArtifactError
from rdkbuild.framework.agent import AgentArgumentProvider, AgentDescriptor, AgentInjector
from rdkbuild.framework.resolution import DependencyResolutionError
from taskwire import TaskOutcome

DESCRIPTOR = AgentDescriptor(configuration="mockitoAgent", artifacts=("org.mockito:mockito-core:5.12.0",))


def test_agent_file_is_resolved_once_under_concurrent_launches(tmp_path):
    agent = tmp_path / "mockito-core-5.12.0.jar"
    agent.write_bytes(b"PK")
    calls = []
    gate = threading.Barrier(8)

    def resolve():
        calls.append(1)
        return (agent,)

    provider = AgentArgumentProvider(DESCRIPTOR, resolve)

    def launch(_):
        gate.wait()
        return provider.as_arguments()

    with ThreadPoolExecutor(max_workers=8) as pool:
        arguments = list(pool.map(launch, range(8)))

    assert len(calls) == 1
    assert provider.resolutions == 1
    assert all(args == [f"-javaagent:{agent.resolve()}"] for args in arguments)


def test_agent_configuration_must_pin_exactly_one_file(tmp_path):
    provider = AgentArgumentProvider(DESCRIPTOR, lambda: (tmp_path / "a.jar", tmp_path / "b.jar"))

    with pytest.raises(AmbiguousArtifactError, match=r"mockitoAgent must resolve to exactly one file \(got 2"):
        provider.agent_path()

    empty = AgentArgumentProvider(DESCRIPTOR, lambda: ())
    with pytest.raises(AmbiguousArtifactError, match=r"\(got 0: <none>\)"):
        empty.as_arguments()


def test_injector_shares_one_provider_per_pinned_artifact(tmp_path):
    injector = AgentInjector()
    other = AgentDescriptor(configuration="otherAgent", artifacts=("g:a:1",))

    first = injector.provider(DESCRIPTOR, lambda: (tmp_path / "x.jar",))
    again = injector.provider(DESCRIPTOR, lambda: (tmp_path / "y.jar",))
    third = injector.provider(other, lambda: (tmp_path / "z.jar",))

    assert first is again
    assert third is not first
    assert injector.providers() == (first, third)


def test_mockito_agent_is_pinned_by_a_non_transitive_configuration(project, configure):
    project.module("core")
    build = configure()
    core = build.contexts["core"]

    (descriptor,) = core.agents
    assert descriptor == DESCRIPTOR
    config = core.configurations["mockitoAgent"]
    assert config.transitive is False
    assert config.can_be_resolved
    (jar,) = build.services.resolve(core, "mockitoAgent")
    assert jar.name == "mockito-core-5.12.0.jar"


def test_project_dependencies_resolve_to_sibling_archives_and_exports(project, configure):
    project.module("core", dependencies={"api": ["libs.guava"]})
    project.module("download", dependencies={"implementation": ["project(:core)"]})
    build = configure()
    core = build.contexts["core"]
    download = build.contexts["download"]

    files = build.services.resolve(download, "compileClasspath")

    assert core.layout.archive("core", "1.0.0") in files
    assert {"guava-33.2.1-jre.jar", "slf4j-api-2.0.13.jar"} <= {path.name for path in files}
    assert len(files) == len(set(files))


def test_resolution_reports_missing_artifacts_and_unresolvable_configurations(project, configure):
    project.module("core", dependencies={"implementation": ["libs.guava"]})
    build = configure()
    core = build.contexts["core"]
    (project.repository / "com/google/guava/guava/33.2.1-jre/guava-33.2.1-jre.jar").unlink()

    with pytest.raises(DependencyResolutionError, match=r"Could not resolve com\.google\.guava:guava:33\.2\.1-jre: not found in repository local"):
        build.services.resolve(core, "compileClasspath")
    with pytest.raises(DependencyResolutionError, match=r"Configuration implementation in core cannot be resolved directly"):
        build.services.resolve(core, "implementation")


def test_resolution_failures_fail_only_the_task_that_needs_the_classpath(project, configure, toolchain):
    project.module("core", dependencies={"implementation": ["org.example:absent:1.0"]})
    project.source("core", "main", "Api")
    build = configure()

    report = build.execute(build.task_graph([":core:jar", ":core:sourcesJar"]))

    assert report.failed == (":core:compileJava",)
    assert report.outcome_of(":core:jar") is TaskOutcome.SKIPPED
    assert report.results[":core:jar"].reason == ":core:compileJava failed"
    assert report.outcome_of(":core:sourcesJar") is TaskOutcome.SUCCESS


def test_lombok_is_the_annotation_processor_of_every_source_set(project, configure, toolchain):
    project.module("core", conventions=["root", "common", "test-fixtures"])
    for source_set, name in (("main", "Api"), ("test", "ApiTest"), ("testFixtures", "ApiFixture"), ("integrationTest", "ApiIT")):
        project.source("core", source_set, name)
    build = configure()
    core = build.contexts["core"]
    compile_tasks = [":core:compileJava", ":core:compileTestJava", ":core:compileTestFixturesJava", ":core:compileIntegrationTestJava"]

    report = build.execute(build.task_graph(compile_tasks))

    assert report.ok, report.failed
    lombok = project.repository.resolve() / "org/projectlombok/lombok/1.18.32/lombok-1.18.32.jar"
    assert len(toolchain.compiled) == 4
    for request in toolchain.compiled:
        assert request.processor_path == (lombok,)
        assert lombok in request.classpath
    for name in ("annotationProcessor", "testAnnotationProcessor", "testFixturesAnnotationProcessor", "integrationTestAnnotationProcessor"):
        config = core.configurations[name]
        assert config.can_be_resolved and not config.can_be_consumed and not config.transitive
    assert lombok not in build.services.resolve(core, "testRuntimeClasspath")
    assert lombok not in build.services.resolve(core, "runtimeClasspath")
