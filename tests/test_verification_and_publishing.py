import zipfile

import pytest

from rdkbuild.errors import ConfigurationError
from rdkbuild.framework.archives import read_manifest
from rdkbuild.framework.coverage import ExecutionData
from rdkbuild.framework.publisher import PublicationArtifacts, publish
from taskwire import TaskOutcome


def _run(build, *tasks, **kwargs):
    return build.execute(build.task_graph(list(tasks)), **kwargs)


def _library(project, name, **kwargs):
    project.module(name, **kwargs)
    project.source(name, "main", "Api", "    public int answer() {\n        return 42;\n    }\n")
    project.source(name, "test", "ApiTest")


def test_check_runs_both_suites_and_an_empty_integration_suite_still_reports(project, configure, toolchain):
    _library(project, "core")
    build = configure()

    report = _run(build, "check")

    assert report.ok, report.failed
    assert report.outcome_of(":core:integrationTest") is TaskOutcome.SUCCESS
    assert [(launch.module, launch.suite) for launch in toolchain.launches] == [("core", "test")]

    layout = build.contexts["core"].layout
    assert ExecutionData.load(layout.execution_data("integrationTest")) == ExecutionData()
    empty = report.results[":core:integrationTestCoverageReport"].value
    assert empty.classes == ()
    assert empty.index_html.is_file()

    unit = report.results[":core:testCoverageReport"].value
    assert unit.execution_data == layout.execution_data("test")
    assert (unit.covered, unit.missed) == (1, 1)
    assert [c.name for c in unit.classes] == ["org.example.rdk.core.Api"]
    assert (unit.output_dir / "sources" / "org.example.rdk.core.Api.java.html").is_file()


def test_unit_suite_classpath_and_agent_arguments(project, configure, toolchain):
    _library(project, "core")
    build = configure()

    _run(build, ":core:test")

    (launch,) = toolchain.launches
    agent = project.repository.resolve() / "org/mockito/mockito-core/5.12.0/mockito-core-5.12.0.jar"
    assert launch.jvm_args == (f"-javaagent:{agent}",)
    layout = build.contexts["core"].layout
    assert layout.classes_dir("main") in launch.classpath
    names = {path.name for path in launch.classpath}
    assert {"junit-jupiter-5.10.2.jar", "assertj-core-3.26.0.jar", "logback-classic-1.5.6.jar", "slf4j-api-2.0.13.jar"} <= names
    assert launch.execution_data == layout.execution_data("test")
    assert launch.framework_version == "5.10.2"


def test_agent_is_resolved_once_for_all_concurrent_launches(project, configure, toolchain):
    for name in ("alpha", "beta", "gamma"):
        _library(project, name)
        project.source(name, "integrationTest", "ApiIT")
    build = configure()

    report = _run(build, "check", max_workers=4)

    assert report.ok, report.failed
    assert len(toolchain.launches) == 6
    providers = build.services.agents.providers()
    assert len(providers) == 1
    assert providers[0].resolutions == 1
    assert len({launch.jvm_args for launch in toolchain.launches}) == 1


def test_failing_fixture_owner_skips_consumers_that_need_its_fixtures(project, configure, toolchain):
    _library(project, "core", conventions=["root", "common", "test-fixtures"])
    project.source("core", "testFixtures", "CoreFixtures")
    _library(
        project,
        "download",
        dependencies={"api": ["project(:core)"]},
        testing={"integration_test": {"implementation": ["test_fixtures(:core)"]}},
    )
    project.source("download", "integrationTest", "DownloadIT")
    toolchain.failing_suites.add(("core", "test"))
    build = configure()

    report = _run(build, "check")

    assert not report.ok
    assert report.failed == (":core:test",)
    skipped = set(report.skipped)
    assert {
        ":core:testCoverageReport",
        ":core:testFixturesJar",
        ":core:check",
        ":download:compileIntegrationTestJava",
        ":download:integrationTest",
        ":download:integrationTestCoverageReport",
        ":download:check",
    } <= skipped
    assert report.outcome_of(":download:test") is TaskOutcome.SUCCESS
    assert report.outcome_of(":core:integrationTest") is TaskOutcome.SUCCESS
    assert ("download", "integrationTest") not in {(l.module, l.suite) for l in toolchain.launches}


def test_unit_suite_failure_is_reported_with_the_failing_test(project, configure, toolchain, caplog):
    _library(project, "core")
    toolchain.failing_suites.add(("core", "test"))
    build = configure()

    with caplog.at_level("INFO"):
        report = _run(build, ":core:test")

    result = report.results[":core:test"]
    assert result.outcome is TaskOutcome.FAILED
    assert "1 of 2 test(s) failed in core test" in str(result.error)
    assert ":core:test > ApiTest.breaks() FAILED" in caplog.text


def test_publish_writes_archives_pom_and_checksums_after_verification(project, configure):
    _library(project, "core")
    _library(project, "download", dependencies={"api": ["project(:core)"], "implementation": ["libs.guava"]})
    build = configure()

    report = _run(build, ":download:publish")

    assert report.ok, report.failed
    target = project.root / "build" / "repo" / "org" / "example" / "rdk" / "download" / "1.0.0"
    names = sorted(path.name for path in target.iterdir())
    assert "download-1.0.0.jar" in names
    assert "download-1.0.0-sources.jar" in names
    assert "download-1.0.0-javadoc.jar" in names
    assert "download-1.0.0.pom" in names
    assert "download-1.0.0.jar.sha1" in names
    assert "download-1.0.0.pom.md5" in names
    assert not any("test-fixtures" in name for name in names)

    assert read_manifest(target / "download-1.0.0.jar")["Automatic-Module-Name"] == "org.example.rdk.download"
    with zipfile.ZipFile(target / "download-1.0.0.jar") as jar:
        assert "org/example/rdk/download/Api.class" in jar.namelist()

    pom = (target / "download-1.0.0.pom").read_text(encoding="utf-8")
    assert "<artifactId>core</artifactId>" in pom
    assert "<scope>compile</scope>" in pom
    assert "<artifactId>guava</artifactId>" in pom
    assert "<artifactId>assertj-core</artifactId>" not in pom


def test_publish_is_skipped_when_verification_fails_and_repository_stays_empty(project, configure, toolchain):
    _library(project, "core")
    toolchain.failing_suites.add(("core", "integrationTest"))
    project.source("core", "integrationTest", "ApiIT")
    build = configure()

    report = _run(build, "publish")

    assert report.outcome_of(":core:publish") is TaskOutcome.SKIPPED
    assert not (project.root / "build" / "repo").exists()


def test_publish_refuses_unverified_modules_before_touching_the_repository(project, configure, tmp_path):
    _library(project, "core")
    build = configure()
    ctx = build.contexts["core"]
    repository = tmp_path / "out"

    with pytest.raises(ConfigurationError, match=r"Refusing to publish core: :core:check has not succeeded"):
        publish(ctx, PublicationArtifacts.for_module(ctx), verified=(), repository=repository)
    assert not repository.exists()

    with pytest.raises(ConfigurationError, match=r"missing archive"):
        publish(ctx, PublicationArtifacts.for_module(ctx), verified=("core",), repository=repository)
    assert not repository.exists()
