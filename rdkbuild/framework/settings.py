from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

from rdkbuild.errors import ConfigurationError
from rdkbuild.foundation.config_io import load_yaml_mapping
from rdkbuild.framework.dependencies import Coordinates, parse_coordinates
from taskwire import ConfigNamespace

RepositoriesMode = Literal["fail_on_project_repos", "prefer_settings"]
REPOSITORIES_MODES: tuple[str, ...] = ("fail_on_project_repos", "prefer_settings")

DEFAULT_LANGUAGE_VERSION = 21


@dataclass(frozen=True)
class ToolchainSettings:
    language_version: int = DEFAULT_LANGUAGE_VERSION
    encoding: str = "UTF-8"
    java_home: str | None = None


@dataclass(frozen=True)
class RepositorySpec:
    name: str
    path: Path


@dataclass(frozen=True)
class ResolutionSettings:
    repositories_mode: RepositoriesMode
    repository: RepositorySpec


@dataclass(frozen=True)
class BuildSettings:
    root_dir: Path
    root_project: str
    group: str
    version: str
    include: tuple[str, ...]
    toolchain: ToolchainSettings
    resolution: ResolutionSettings
    catalog_path: Path
    max_workers: int = 4
    build_dir: str = "build"
    fail_on_violation: bool = False
    publish_repository: Path = field(default_factory=lambda: Path("build/repo"))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, root_dir: str | Path) -> "BuildSettings":
        root = Path(root_dir).resolve()
        try:
            return cls._parse(ConfigNamespace(dict(data), path=""), root)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid settings: {exc}") from exc

    @classmethod
    def _parse(cls, ns: ConfigNamespace, root: Path) -> "BuildSettings":
        root_project = ns.get_str("root_project")
        group = ns.get_str("group")
        version = ns.get_str("version")
        include = ns.get_list_str("include")
        duplicates = sorted({name for name in include if include.count(name) > 1})
        if duplicates:
            raise ValueError(f"include lists module(s) more than once: {', '.join(duplicates)}")

        toolchain_ns = ns.namespace("toolchain", default=None)
        toolchain = ToolchainSettings(
            language_version=toolchain_ns.get_int(
                "language_version", default=DEFAULT_LANGUAGE_VERSION, min_value=8
            ),
            encoding=toolchain_ns.get_str("encoding", default="UTF-8") or "UTF-8",
            java_home=toolchain_ns.get_str("java_home", default=None),
        )

        resolution_ns = ns.namespace("dependency_resolution")
        mode = resolution_ns.get_str(
            "repositories_mode", default="fail_on_project_repos", choices=REPOSITORIES_MODES
        )
        repos = resolution_ns.get_list_mapping("repositories")
        if len(repos) != 1:
            raise ValueError(
                f"dependency_resolution.repositories must list exactly one repository (got {len(repos)})"
            )
        repo_ns = ConfigNamespace(repos[0], path="dependency_resolution.repositories[0]")
        repository = RepositorySpec(
            name=repo_ns.get_str("name") or "",
            path=_resolve_path(root, repo_ns.get_str("path") or ""),
        )
        repo_ns.assert_consumed()

        build_ns = ns.namespace("build", default=None)
        max_workers = build_ns.get_int("max_workers", default=4, min_value=1)
        build_dir = build_ns.get_str("build_dir", default="build") or "build"

        formatting_ns = ns.namespace("formatting", default=None)
        fail_on_violation = formatting_ns.get_bool("fail_on_violation", default=False)

        publishing_ns = ns.namespace("publishing", default=None)
        publish_repository = _resolve_path(
            root, publishing_ns.get_str("repository", default=f"{build_dir}/repo") or f"{build_dir}/repo"
        )

        catalog_path = _resolve_path(root, ns.get_str("catalog", default="libs.versions.yaml") or "")

        ns.assert_consumed()

        return cls(
            root_dir=root,
            root_project=root_project or "",
            group=group or "",
            version=version or "",
            include=tuple(include),
            toolchain=toolchain,
            resolution=ResolutionSettings(repositories_mode=mode, repository=repository),  # type: ignore[arg-type]
            catalog_path=catalog_path,
            max_workers=max_workers,
            build_dir=build_dir,
            fail_on_violation=fail_on_violation,
            publish_repository=publish_repository,
        )


def _resolve_path(root: Path, raw: str) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate
    return candidate


@dataclass(frozen=True)
class VersionCatalog:
    """Symbolic names for library coordinates and versions."""

    versions: Mapping[str, str]
    libraries: Mapping[str, Coordinates]

    @classmethod
    def load(cls, path: str | Path) -> "VersionCatalog":
        try:
            data = load_yaml_mapping(path)
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Version catalog not found: {path}") from exc
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VersionCatalog":
        try:
            ns = ConfigNamespace(dict(data), path="catalog")
            versions = {str(k): str(v) for k, v in ns.get_mapping("versions", default={}).items()}
            libraries: dict[str, Coordinates] = {}
            for alias, raw in ns.get_mapping("libraries", default={}).items():
                if isinstance(raw, str):
                    libraries[alias] = parse_coordinates(raw)
                    continue
                if not isinstance(raw, Mapping):
                    raise TypeError(f"catalog.libraries.{alias} must be a mapping or a coordinate string")
                lib_ns = ConfigNamespace(dict(raw), path=f"catalog.libraries.{alias}")
                module = lib_ns.get_str("module") or ""
                if module.count(":") != 1:
                    raise ValueError(f"catalog.libraries.{alias}.module must be group:artifact (got {module!r})")
                if lib_ns.has("version_ref"):
                    ref = lib_ns.get_str("version_ref") or ""
                    if ref not in versions:
                        raise ValueError(f"catalog.libraries.{alias}.version_ref names unknown version {ref!r}")
                    version = versions[ref]
                else:
                    version = lib_ns.get_str("version") or ""
                lib_ns.assert_consumed()
                group, artifact = module.split(":")
                libraries[alias] = Coordinates(group=group, artifact=artifact, version=version)
            ns.assert_consumed()
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid version catalog: {exc}") from exc
        return cls(versions=versions, libraries=libraries)

    def find_library(self, alias: str, *, where: str = "catalog") -> Coordinates:
        coordinates = self.libraries.get(alias)
        if coordinates is None:
            available = ", ".join(sorted(self.libraries)) or "<none>"
            raise ConfigurationError(f"{where}: unknown catalog library libs.{alias} (available: {available})")
        return coordinates

    def find_version(self, name: str, *, where: str = "catalog") -> str:
        version = self.versions.get(name)
        if version is None:
            available = ", ".join(sorted(self.versions)) or "<none>"
            raise ConfigurationError(f"{where}: unknown catalog version {name!r} (available: {available})")
        return version
