import re
import threading
from pathlib import Path
from typing import Any

import pytest
import yaml

from rdkbuild.app.build import BuildContext, load_settings
from rdkbuild.framework.coverage import ClassExecution, ExecutionData
from rdkbuild.framework.toolchain import CompileRequest, TestCaseFailure, TestLaunch, TestRunResult

GROUP = "org.example.rdk"
VERSION = "1.0.0"

CATALOG: dict[str, Any] = {
    "versions": {"junit": "5.10.2", "mockito": "5.12.0"},
    "libraries": {
        "slf4j": {"module": "org.slf4j:slf4j-api", "version": "2.0.13"},
        "assertj-core": {"module": "org.assertj:assertj-core", "version": "3.26.0"},
        "mockito-junit-jupiter": {"module": "org.mockito:mockito-junit-jupiter", "version_ref": "mockito"},
        "logback-classic": {"module": "ch.qos.logback:logback-classic", "version": "1.5.6"},
        "guava": "com.google.guava:guava:33.2.1-jre",
        "lombok": "org.projectlombok:lombok:1.18.32",
    },
}

REPOSITORY_JARS = (
    "org/slf4j/slf4j-api/2.0.13/slf4j-api-2.0.13.jar",
    "org/assertj/assertj-core/3.26.0/assertj-core-3.26.0.jar",
    "org/mockito/mockito-junit-jupiter/5.12.0/mockito-junit-jupiter-5.12.0.jar",
    "org/mockito/mockito-core/5.12.0/mockito-core-5.12.0.jar",
    "ch/qos/logback/logback-classic/1.5.6/logback-classic-1.5.6.jar",
    "org/junit/jupiter/junit-jupiter/5.10.2/junit-jupiter-5.10.2.jar",
    "com/google/guava/guava/33.2.1-jre/guava-33.2.1-jre.jar",
    "org/projectlombok/lombok/1.18.32/lombok-1.18.32.jar",
)

_PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)


def write_yaml(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


def java_class(package: str, name: str, body: str = "") -> str:
    return f"package {package};\n\npublic class {name} {{\n{body}}}\n"


class FakeToolchain:
    """Stands in for the JDK: compiles by writing marker class files, runs tests by recipe."""

    def __init__(self, failing_suites=()):
        self.failing_suites = set(failing_suites)
        self.compiled: list[CompileRequest] = []
        self.launches: list[TestLaunch] = []
        self._lock = threading.Lock()

    def compile(self, request: CompileRequest) -> None:
        with self._lock:
            self.compiled.append(request)
        request.output_dir.mkdir(parents=True, exist_ok=True)
        for source in request.sources:
            match = _PACKAGE_RE.search(source.read_text(encoding="utf-8"))
            package_dir = match.group(1).replace(".", "/") if match else ""
            target = request.output_dir / package_dir / f"{source.stem}.class"
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"\xca\xfe\xba\xbe")

    def javadoc(self, request: CompileRequest) -> None:
        request.output_dir.mkdir(parents=True, exist_ok=True)
        (request.output_dir / "index.html").write_text("<html></html>\n", encoding="utf-8")

    def run_tests(self, launch: TestLaunch) -> TestRunResult:
        with self._lock:
            self.launches.append(launch)
        ExecutionData(
            classes=(ClassExecution(name=f"{GROUP}.{launch.module}.Api", source=f"org/example/rdk/{launch.module}/Api.java", lines={4: 1, 5: 0}),)
        ).write(launch.execution_data)
        if (launch.module, launch.suite) in self.failing_suites:
            return TestRunResult(
                tests=2,
                failed=1,
                failures=(TestCaseFailure(name="ApiTest.breaks()", message="expected: <1> but was: <2>"),),
            )
        return TestRunResult(tests=2)


class BuildProject:
    """A multi-module build laid out under one temporary directory."""

    def __init__(self, root: Path):
        self.root = root
        self.settings: dict[str, Any] = {
            "root_project": "rdk",
            "group": GROUP,
            "version": VERSION,
            "include": [],
            "dependency_resolution": {
                "repositories_mode": "fail_on_project_repos",
                "repositories": [{"name": "local", "path": "repo"}],
            },
            "build": {"max_workers": 4},
        }
        self.catalog: dict[str, Any] = yaml.safe_load(yaml.safe_dump(CATALOG))
        self.modules: dict[str, dict[str, Any]] = {}
        for relative in REPOSITORY_JARS:
            jar = root / "repo" / relative
            jar.parent.mkdir(parents=True, exist_ok=True)
            jar.write_bytes(b"PK\x05\x06" + b"\x00" * 18)

    @property
    def repository(self) -> Path:
        return self.root / "repo"

    def module(self, name: str, *, conventions=None, dependencies=None, testing=None, **extra) -> Path:
        definition: dict[str, Any] = {}
        if conventions is not None:
            definition["conventions"] = list(conventions)
        definition["automatic_module_name"] = f"{GROUP}.{name}"
        if dependencies:
            definition["dependencies"] = dependencies
        if testing:
            definition["testing"] = testing
        definition.update(extra)
        self.modules[name] = definition
        if name not in self.settings["include"]:
            self.settings["include"].append(name)
        directory = self.root / name
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def source(self, module: str, source_set: str, name: str, body: str = "") -> Path:
        package = f"{GROUP}.{module}"
        path = self.root / module / "src" / source_set / "java" / package.replace(".", "/") / f"{name}.java"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(java_class(package, name, body), encoding="utf-8")
        return path

    def write(self) -> Path:
        write_yaml(self.root / "settings.yaml", self.settings)
        write_yaml(self.root / "libs.versions.yaml", self.catalog)
        for name, definition in self.modules.items():
            write_yaml(self.root / name / "build.yaml", definition)
        return self.root


@pytest.fixture(autouse=True)
def _no_settings_override(monkeypatch):
    monkeypatch.delenv("RDKBUILD_SETTINGS", raising=False)


@pytest.fixture
def project(tmp_path: Path) -> BuildProject:
    return BuildProject(tmp_path)


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def configure(project: BuildProject, toolchain: FakeToolchain):
    """Write the project and configure a build session over it."""

    def _configure(**kwargs):
        kwargs.setdefault("toolchain", toolchain)
        return BuildContext.configure(load_settings(project.write()), **kwargs)

    return _configure
