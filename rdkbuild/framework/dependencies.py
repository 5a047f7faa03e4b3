from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

from rdkbuild.errors import ConfigurationError

if TYPE_CHECKING:
    from rdkbuild.framework.settings import VersionCatalog

_PROJECT_RE = re.compile(r"^project\(\s*:([A-Za-z0-9_.-]+)\s*\)$")
_FIXTURES_RE = re.compile(r"^test_fixtures\(\s*:([A-Za-z0-9_.-]+)\s*\)$")
_CATALOG_RE = re.compile(r"^libs\.([A-Za-z0-9_.-]+)$")
_COORDINATES_RE = re.compile(r"^([A-Za-z0-9_.-]+):([A-Za-z0-9_.-]+):([A-Za-z0-9_.+-]+)$")


@dataclass(frozen=True)
class Coordinates:
    group: str
    artifact: str
    version: str

    @property
    def notation(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}"

    def repository_path(self, *, classifier: str | None = None, extension: str = "jar") -> str:
        suffix = f"-{classifier}" if classifier else ""
        return (
            f"{self.group.replace('.', '/')}/{self.artifact}/{self.version}/"
            f"{self.artifact}-{self.version}{suffix}.{extension}"
        )


@dataclass(frozen=True)
class ExternalDependency:
    coordinates: Coordinates


@dataclass(frozen=True)
class ProjectDependency:
    module: str
    fixtures: bool = False

    @property
    def notation(self) -> str:
        if self.fixtures:
            return f"test_fixtures(:{self.module})"
        return f"project(:{self.module})"


Dependency: TypeAlias = ExternalDependency | ProjectDependency


@dataclass(frozen=True)
class DependencyDecl:
    """A dependency as declared on one configuration of one module."""

    configuration: str
    dependency: Dependency

    @property
    def notation(self) -> str:
        if isinstance(self.dependency, ProjectDependency):
            return self.dependency.notation
        return self.dependency.coordinates.notation


def parse_coordinates(notation: str) -> Coordinates:
    match = _COORDINATES_RE.match((notation or "").strip())
    if match is None:
        raise ConfigurationError(f"Invalid dependency coordinates: {notation!r} (expected group:artifact:version)")
    return Coordinates(*match.groups())


def parse_notation(notation: str, *, catalog: "VersionCatalog", where: str) -> Dependency:
    raw = (notation or "").strip()
    if not raw:
        raise ConfigurationError(f"{where}: empty dependency notation")

    match = _PROJECT_RE.match(raw)
    if match:
        return ProjectDependency(module=match.group(1))
    match = _FIXTURES_RE.match(raw)
    if match:
        return ProjectDependency(module=match.group(1), fixtures=True)
    match = _CATALOG_RE.match(raw)
    if match:
        return ExternalDependency(catalog.find_library(match.group(1), where=where))
    if _COORDINATES_RE.match(raw):
        return ExternalDependency(parse_coordinates(raw))

    raise ConfigurationError(
        f"{where}: unsupported dependency notation {raw!r} "
        "(expected project(:name), test_fixtures(:name), libs.<alias> or group:artifact:version)"
    )
