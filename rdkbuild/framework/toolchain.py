"""The JDK seam: compiling, documenting and launching tests.

Every task that needs a JVM goes through a `Toolchain`. `JdkToolchain` shells out
to the JDK binaries; tests substitute a fake.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Sequence

from rdkbuild.errors import TaskFailedError
from rdkbuild.framework.coverage import ExecutionData

logger = logging.getLogger(__name__)

COVERAGE_DESTFILE_PROPERTY = "rdkbuild.coverage.destfile"

_SUMMARY_RE = re.compile(r"\[\s*(\d+)\s+tests\s+(successful|failed|skipped|aborted|found)\s*\]")


@dataclass(frozen=True)
class CompileRequest:
    sources: tuple[Path, ...]
    classpath: tuple[Path, ...]
    output_dir: Path
    release: int
    encoding: str
    processor_path: tuple[Path, ...] = ()


@dataclass(frozen=True)
class TestLaunch:
    __test__ = False

    module: str
    suite: str
    test_classes_dir: Path
    classpath: tuple[Path, ...]
    jvm_args: tuple[str, ...]
    execution_data: Path
    reports_dir: Path
    working_dir: Path
    framework_version: str
    launcher: Path | None = None
    show_output: bool = False


@dataclass(frozen=True)
class TestCaseFailure:
    __test__ = False

    name: str
    message: str
    detail: str = ""


@dataclass(frozen=True)
class TestRunResult:
    __test__ = False

    tests: int
    failed: int = 0
    skipped: int = 0
    failures: tuple[TestCaseFailure, ...] = ()
    skipped_names: tuple[str, ...] = ()
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.failed == 0


class Toolchain(Protocol):
    def compile(self, request: CompileRequest) -> None:
        ...

    def javadoc(self, request: CompileRequest) -> None:
        ...

    def run_tests(self, launch: TestLaunch) -> TestRunResult:
        ...


@dataclass
class JdkToolchain:
    """Toolchain backed by `javac`, `javadoc` and the JUnit Platform console launcher."""

    java_home: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    def _tool(self, name: str) -> str:
        if self.java_home:
            return str(Path(self.java_home) / "bin" / name)
        return name

    def _run(self, command: Sequence[str], *, cwd: Path | None = None, label: str) -> subprocess.CompletedProcess[str]:
        logger.debug("Running %s: %s", label, " ".join(command))
        try:
            return subprocess.run(
                list(command),
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                env={**os.environ, **self.env} if self.env else None,
                check=False,
            )
        except FileNotFoundError as exc:
            raise TaskFailedError(f"{label} failed: {command[0]} not found (configure toolchain.java_home)") from exc

    @staticmethod
    def _classpath(paths: Sequence[Path]) -> str:
        return os.pathsep.join(str(p) for p in paths)

    def compile(self, request: CompileRequest) -> None:
        if not request.sources:
            return
        request.output_dir.mkdir(parents=True, exist_ok=True)
        command = [
            self._tool("javac"),
            "--release",
            str(request.release),
            "-encoding",
            request.encoding,
            "-d",
            str(request.output_dir),
        ]
        if request.classpath:
            command += ["-classpath", self._classpath(request.classpath)]
        if request.processor_path:
            command += ["-processorpath", self._classpath(request.processor_path)]
        command += [str(source) for source in request.sources]
        proc = self._run(command, label="javac")
        if proc.returncode != 0:
            raise TaskFailedError(f"Compilation failed:\n{proc.stderr.strip()}")

    def javadoc(self, request: CompileRequest) -> None:
        if not request.sources:
            return
        request.output_dir.mkdir(parents=True, exist_ok=True)
        command = [
            self._tool("javadoc"),
            "--release",
            str(request.release),
            "-encoding",
            request.encoding,
            "-quiet",
            "-d",
            str(request.output_dir),
        ]
        if request.classpath:
            command += ["-classpath", self._classpath(request.classpath)]
        command += [str(source) for source in request.sources]
        proc = self._run(command, label="javadoc")
        if proc.returncode != 0:
            raise TaskFailedError(f"Javadoc generation failed:\n{proc.stderr.strip()}")

    def run_tests(self, launch: TestLaunch) -> TestRunResult:
        if launch.launcher is None:
            raise TaskFailedError(
                f"No JUnit Platform console launcher resolved for {launch.module} {launch.suite}"
            )
        launch.reports_dir.mkdir(parents=True, exist_ok=True)
        command = [
            self._tool("java"),
            *launch.jvm_args,
            f"-D{COVERAGE_DESTFILE_PROPERTY}={launch.execution_data}",
            "-jar",
            str(launch.launcher),
            "execute",
            "--disable-banner",
            "--details=tree",
            "--class-path",
            self._classpath((launch.test_classes_dir, *launch.classpath)),
            "--scan-class-path",
            str(launch.test_classes_dir),
            "--reports-dir",
            str(launch.reports_dir),
        ]
        proc = self._run(command, cwd=launch.working_dir, label=f"{launch.module} {launch.suite}")
        if not launch.execution_data.exists():
            logger.debug("No probes recorded for %s %s; writing empty execution data", launch.module, launch.suite)
            ExecutionData().write(launch.execution_data)
        return parse_console_launcher_output(proc.stdout, returncode=proc.returncode, stderr=proc.stderr)


def parse_console_launcher_output(stdout: str, *, returncode: int, stderr: str = "") -> TestRunResult:
    counts: dict[str, int] = {}
    for match in _SUMMARY_RE.finditer(stdout):
        counts[match.group(2)] = int(match.group(1))

    if not counts and returncode != 0:
        raise TaskFailedError(f"Test launcher exited with code {returncode}:\n{(stderr or stdout).strip()}")

    failures: list[TestCaseFailure] = []
    lines = stdout.splitlines()
    for idx, line in enumerate(lines):
        if "✘" not in line:
            continue
        before, after = line.split("✘", 1)
        message = after.strip()
        detail = lines[idx + 1].strip() if idx + 1 < len(lines) else ""
        failures.append(TestCaseFailure(name=before.strip(" |'+-") or message, message=message, detail=detail))

    failed = counts.get("failed", 0) + counts.get("aborted", 0)
    if returncode != 0 and failed == 0:
        failed = 1
    return TestRunResult(
        tests=counts.get("found", counts.get("successful", 0) + failed + counts.get("skipped", 0)),
        failed=failed,
        skipped=counts.get("skipped", 0),
        failures=tuple(failures),
        output=stdout,
    )
