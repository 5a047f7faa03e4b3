"""Publication of a module's archives into a Maven-layout output repository.

Only the primary jar, its sources and javadoc companions and a POM are
published; test-fixture archives never are. Nothing is written unless the
module's verification succeeded in the current build.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Collection
from xml.sax.saxutils import escape

from rdkbuild.errors import ConfigurationError
from rdkbuild.framework.dependencies import Coordinates, ExternalDependency, ProjectDependency
from rdkbuild.framework.model import ModuleContext

logger = logging.getLogger(__name__)

POM_SCOPES: dict[str, str] = {"api": "compile", "implementation": "runtime", "runtimeOnly": "runtime"}
CHECKSUMS: tuple[str, ...] = ("sha1", "md5")


@dataclass(frozen=True)
class Publication:
    name: str
    group: str
    artifact: str
    version: str
    automatic_module_name: str | None = None
    description: str | None = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(group=self.group, artifact=self.artifact, version=self.version)


@dataclass(frozen=True)
class PublicationArtifacts:
    jar: Path
    sources_jar: Path
    javadoc_jar: Path

    @classmethod
    def for_module(cls, ctx: ModuleContext) -> "PublicationArtifacts":
        layout = ctx.layout
        version = ctx.settings.version
        return cls(
            jar=layout.archive(ctx.name, version),
            sources_jar=layout.archive(ctx.name, version, "sources"),
            javadoc_jar=layout.archive(ctx.name, version, "javadoc"),
        )

    def labelled(self) -> tuple[tuple[str | None, Path], ...]:
        return ((None, self.jar), ("sources", self.sources_jar), ("javadoc", self.javadoc_jar))


@dataclass(frozen=True)
class PublishResult:
    publication: Publication
    directory: Path
    files: tuple[Path, ...]


def _pom_dependencies(ctx: ModuleContext) -> list[tuple[Coordinates, str]]:
    entries: list[tuple[Coordinates, str]] = []
    for configuration, scope in POM_SCOPES.items():
        config = ctx.configurations.get(configuration)
        if config is None:
            continue
        for decl in config.dependencies:
            dependency = decl.dependency
            if isinstance(dependency, ExternalDependency):
                coordinates = dependency.coordinates
            elif isinstance(dependency, ProjectDependency) and not dependency.fixtures:
                coordinates = Coordinates(ctx.settings.group, dependency.module, ctx.settings.version)
            else:
                continue
            if all(existing != coordinates for existing, _ in entries):
                entries.append((coordinates, scope))
    return entries


def pom_xml(publication: Publication, dependencies: list[tuple[Coordinates, str]]) -> str:
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<project xmlns="http://maven.apache.org/POM/4.0.0"',
        '         xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"',
        '         xsi:schemaLocation="http://maven.apache.org/POM/4.0.0 https://maven.apache.org/xsd/maven-4.0.0.xsd">',
        "  <modelVersion>4.0.0</modelVersion>",
        f"  <groupId>{escape(publication.group)}</groupId>",
        f"  <artifactId>{escape(publication.artifact)}</artifactId>",
        f"  <version>{escape(publication.version)}</version>",
    ]
    if publication.description:
        lines.append(f"  <description>{escape(publication.description)}</description>")
    if publication.automatic_module_name:
        lines += [
            "  <properties>",
            f"    <automatic.module.name>{escape(publication.automatic_module_name)}</automatic.module.name>",
            "  </properties>",
        ]
    if dependencies:
        lines.append("  <dependencies>")
        for coordinates, scope in dependencies:
            lines += [
                "    <dependency>",
                f"      <groupId>{escape(coordinates.group)}</groupId>",
                f"      <artifactId>{escape(coordinates.artifact)}</artifactId>",
                f"      <version>{escape(coordinates.version)}</version>",
                f"      <scope>{scope}</scope>",
                "    </dependency>",
            ]
        lines.append("  </dependencies>")
    lines.append("</project>")
    return "\n".join(lines) + "\n"


def _write_checksums(path: Path) -> list[Path]:
    payload = path.read_bytes()
    written: list[Path] = []
    for algorithm in CHECKSUMS:
        target = path.with_name(f"{path.name}.{algorithm}")
        target.write_text(hashlib.new(algorithm, payload).hexdigest(), encoding="ascii")
        written.append(target)
    return written


def publish(
    ctx: ModuleContext,
    artifacts: PublicationArtifacts,
    *,
    verified: Collection[str],
    repository: Path,
) -> PublishResult:
    """Copy the module's archives and POM into `repository`.

    `verified` names the modules whose `check` succeeded in this build. Every
    precondition is checked before the repository is touched; the version
    directory is staged next to its final location and swapped in whole.
    """

    publication = ctx.publication
    if publication is None:
        raise ConfigurationError(f"Module {ctx.name} declares no publication", module=ctx.name)
    if ctx.name not in verified:
        raise ConfigurationError(
            f"Refusing to publish {ctx.name}: {ctx.module.task_path('check')} has not succeeded in this build",
            module=ctx.name,
        )
    missing = [str(path) for _, path in artifacts.labelled() if not path.is_file()]
    if missing:
        raise ConfigurationError(
            f"Refusing to publish {ctx.name}: missing archive(s): {', '.join(missing)}", module=ctx.name
        )

    coordinates = publication.coordinates
    target = repository / coordinates.group.replace(".", "/") / coordinates.artifact / coordinates.version
    target.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(dir=str(target.parent), prefix=f".{coordinates.version}."))
    try:
        files: list[Path] = []
        for classifier, source in artifacts.labelled():
            name = Path(coordinates.repository_path(classifier=classifier)).name
            shutil.copyfile(source, staging / name)
            files.append(target / name)
        pom_name = Path(coordinates.repository_path(extension="pom")).name
        (staging / pom_name).write_text(pom_xml(publication, _pom_dependencies(ctx)), encoding="utf-8")
        files.append(target / pom_name)
        for staged in sorted(staging.iterdir()):
            files.extend(target / checksum.name for checksum in _write_checksums(staged))

        if target.exists():
            shutil.rmtree(target)
        os.replace(staging, target)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    logger.info("Published %s to %s", coordinates.notation, target)
    return PublishResult(publication=publication, directory=target, files=tuple(files))
