"""Dependency resolution against the single centrally permitted repository.

External coordinates resolve to files in a local directory laid out like a
Maven repository. Project dependencies resolve to the sibling module's archive
(plus whatever that module exports through `api`). Resolution is direct: POM
files are not walked.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Mapping

from rdkbuild.errors import BuildError
from rdkbuild.framework.dependencies import Coordinates, DependencyDecl, ExternalDependency, ProjectDependency
from rdkbuild.framework.model import MAIN, TEST_FIXTURES, ModuleContext
from rdkbuild.framework.settings import RepositorySpec

logger = logging.getLogger(__name__)

EXPORTED_CONFIGURATIONS: tuple[str, ...] = ("api",)
FIXTURE_EXPORTED_CONFIGURATIONS: tuple[str, ...] = ("testFixturesApi",)


class DependencyResolutionError(BuildError):
    pass


def walk_declarations(module: ModuleContext, configuration: str) -> Iterator[DependencyDecl]:
    """Declarations on `configuration`, then breadth-first on the configurations it extends."""

    seen: set[str] = set()
    queue = [configuration]
    while queue:
        name = queue.pop(0)
        if name in seen:
            continue
        seen.add(name)
        current = module.configurations.get(name)
        if current is None:
            raise DependencyResolutionError(f"Unknown configuration {name} in {module.name}")
        yield from current.dependencies
        queue.extend(current.extends_from)


def main_archive(module: ModuleContext) -> Path:
    return module.layout.archive(module.name, module.settings.version)


def fixtures_archive(module: ModuleContext) -> Path:
    return module.layout.archive(module.name, module.settings.version, "test-fixtures")


class RepositoryResolver:
    def __init__(self, repository: RepositorySpec) -> None:
        self._repository = repository

    @property
    def repository(self) -> RepositorySpec:
        return self._repository

    def resolve_external(self, coordinates: Coordinates) -> Path:
        candidate = self._repository.path / coordinates.repository_path()
        if not candidate.is_file():
            raise DependencyResolutionError(
                f"Could not resolve {coordinates.notation}: not found in repository "
                f"{self._repository.name} ({candidate})"
            )
        return candidate.resolve()

    def resolve_configuration(
        self,
        module: ModuleContext,
        configuration: str,
        *,
        modules: Mapping[str, ModuleContext],
    ) -> tuple[Path, ...]:
        """Files for one resolvable configuration, in declaration order, without duplicates."""

        root = module.configurations.get(configuration)
        if root is None:
            raise DependencyResolutionError(f"Unknown configuration {configuration} in {module.name}")
        if not root.can_be_resolved:
            raise DependencyResolutionError(
                f"Configuration {configuration} in {module.name} cannot be resolved directly"
            )

        files: list[Path] = []
        for decl in walk_declarations(module, configuration):
            dependency = decl.dependency
            if isinstance(dependency, ExternalDependency):
                self._append(files, self.resolve_external(dependency.coordinates))
                continue
            for path in self._project_files(dependency, modules=modules, transitive=root.transitive):
                self._append(files, path)

        logger.debug("Resolved %s:%s to %d file(s)", module.name, configuration, len(files))
        return tuple(files)

    def _project_files(
        self,
        dependency: ProjectDependency,
        *,
        modules: Mapping[str, ModuleContext],
        transitive: bool,
    ) -> list[Path]:
        target = modules.get(dependency.module)
        if target is None:
            raise DependencyResolutionError(f"Unknown project dependency :{dependency.module}")

        files: list[Path] = []
        if dependency.fixtures:
            if TEST_FIXTURES not in target.source_sets:
                raise DependencyResolutionError(f"Module {target.name} does not publish test fixtures")
            files.append(fixtures_archive(target))
        if MAIN in target.source_sets:
            files.append(main_archive(target))
        if not transitive:
            return files

        exported_configurations = EXPORTED_CONFIGURATIONS
        if dependency.fixtures:
            exported_configurations += FIXTURE_EXPORTED_CONFIGURATIONS
        for exported in exported_configurations:
            config = target.configurations.get(exported)
            if config is None:
                continue
            for decl in config.dependencies:
                nested = decl.dependency
                if isinstance(nested, ExternalDependency):
                    files.append(self.resolve_external(nested.coordinates))
                else:
                    files.extend(self._project_files(nested, modules=modules, transitive=True))
        return files

    @staticmethod
    def _append(files: list[Path], path: Path) -> None:
        if path not in files:
            files.append(path)
