"""The module graph: which modules exist, their bundles and their dependency edges.

Built from `settings.yaml` plus one `build.yaml` per included module. Every
contract violation is a `ConfigurationError` raised here, before any module is
configured or any task runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from rdkbuild.errors import ConfigurationError
from rdkbuild.foundation.config_io import SETTINGS_FILE, load_yaml_mapping
from rdkbuild.framework.dependencies import DependencyDecl, ProjectDependency, parse_notation
from rdkbuild.framework.model import INTEGRATION_TEST, TEST, Module, ModuleLayout, configuration_name
from rdkbuild.framework.settings import BuildSettings, VersionCatalog
from taskwire import ConfigNamespace

logger = logging.getLogger(__name__)

BUILD_FILE = "build.yaml"
ROOT_CONVENTIONS: tuple[str, ...] = ("root",)
DEFAULT_MODULE_CONVENTIONS: tuple[str, ...] = ("root", "common")
FIXTURES_CONVENTION = "test-fixtures"

# build.yaml key -> configuration name
DEPENDENCY_KEYS: dict[str, str] = {
    "api": "api",
    "implementation": "implementation",
    "compile_only": "compileOnly",
    "runtime_only": "runtimeOnly",
    "test_fixtures_api": "testFixturesApi",
    "test_fixtures_implementation": "testFixturesImplementation",
}
SUITE_KEYS: dict[str, str] = {"test": TEST, "integration_test": INTEGRATION_TEST}
SUITE_DEPENDENCY_KEYS: dict[str, str] = {
    "implementation": "implementation",
    "compile_only": "compileOnly",
    "runtime_only": "runtimeOnly",
}
PRODUCTION_CONFIGURATIONS: tuple[str, ...] = ("api", "implementation", "compileOnly", "runtimeOnly")


class BundleLookup(Protocol):
    def get(self, name: str) -> Any:
        ...


def parse_module_definition(
    name: str,
    data: Mapping[str, Any],
    *,
    settings: BuildSettings,
    catalog: VersionCatalog,
) -> Module:
    where = f"{name}/{BUILD_FILE}"
    ns = ConfigNamespace(dict(data), path=where)
    try:
        conventions = tuple(ns.get_list_str("conventions", default=list(DEFAULT_MODULE_CONVENTIONS)))
        repeated = sorted({item for item in conventions if conventions.count(item) > 1})
        if repeated:
            raise ValueError(f"{where}.conventions lists bundle(s) more than once: {', '.join(repeated)}")
        automatic_module_name = ns.get_str("automatic_module_name", default=None)
        description = ns.get_str("description", default=None)

        decls: list[DependencyDecl] = []
        deps_ns = ns.namespace("dependencies", default=None)
        for key, configuration in DEPENDENCY_KEYS.items():
            for notation in deps_ns.get_list_str(key, default=[], allow_empty=True):
                dependency = parse_notation(notation, catalog=catalog, where=f"{where} dependencies.{key}")
                decls.append(DependencyDecl(configuration, dependency))

        testing_ns = ns.namespace("testing", default=None)
        for suite_key, source_set in SUITE_KEYS.items():
            suite_ns = testing_ns.namespace(suite_key, default=None)
            for key, role in SUITE_DEPENDENCY_KEYS.items():
                for notation in suite_ns.get_list_str(key, default=[], allow_empty=True):
                    dependency = parse_notation(
                        notation, catalog=catalog, where=f"{where} testing.{suite_key}.{key}"
                    )
                    decls.append(DependencyDecl(configuration_name(source_set, role), dependency))

        if ns.has("repositories"):
            if settings.resolution.repositories_mode == "fail_on_project_repos":
                raise ConfigurationError(
                    f"Module {name} declares repositories in {where}, but dependency resolution is "
                    f"centrally managed (repositories_mode: fail_on_project_repos); declare the single "
                    f"permitted repository in {SETTINGS_FILE}",
                    module=name,
                )
            ns.get_list_mapping("repositories", default=[], allow_empty=True)
            logger.warning("Ignoring repositories declared by module %s (repositories_mode: prefer_settings)", name)

        ns.assert_consumed()
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {where}: {exc}", module=name) from exc

    return Module(
        name=name,
        layout=ModuleLayout.for_directory(settings.root_dir / name, settings.build_dir),
        conventions=conventions,
        dependencies=tuple(decls),
        automatic_module_name=automatic_module_name,
        description=description,
    )


def _find_module_cycle(modules: Mapping[str, Module]) -> list[str] | None:
    edges = {
        name: sorted(module.project_dependencies(configurations=PRODUCTION_CONFIGURATIONS))
        for name, module in modules.items()
    }
    state: dict[str, int] = {}
    stack: list[str] = []

    def visit(node: str) -> list[str] | None:
        state[node] = 1
        stack.append(node)
        for child in edges.get(node, ()):
            if state.get(child) == 1:
                return [*stack[stack.index(child) :], child]
            if child not in state:
                found = visit(child)
                if found:
                    return found
        stack.pop()
        state[node] = 2
        return None

    for name in sorted(modules):
        if name not in state:
            found = visit(name)
            if found:
                return found
    return None


@dataclass(frozen=True)
class ModuleGraph:
    settings: BuildSettings
    catalog: VersionCatalog
    root: Module
    modules: Mapping[str, Module]

    @classmethod
    def load(cls, settings: BuildSettings, catalog: VersionCatalog, *, bundles: BundleLookup) -> "ModuleGraph":
        definitions: dict[str, Mapping[str, Any]] = {}
        for name in settings.include:
            directory = settings.root_dir / name
            if not directory.is_dir():
                raise ConfigurationError(f"Included module {name} has no directory at {directory}", module=name)
            path = directory / BUILD_FILE
            if not path.is_file():
                raise ConfigurationError(f"Included module {name} has no {BUILD_FILE} at {path}", module=name)
            try:
                definitions[name] = load_yaml_mapping(path)
            except ValueError as exc:
                raise ConfigurationError(str(exc), module=name) from exc
        return cls.from_definitions(settings, catalog, definitions, bundles=bundles)

    @classmethod
    def from_definitions(
        cls,
        settings: BuildSettings,
        catalog: VersionCatalog,
        definitions: Mapping[str, Mapping[str, Any]],
        *,
        bundles: BundleLookup,
    ) -> "ModuleGraph":
        if settings.root_project in settings.include:
            raise ConfigurationError(
                f"Module name {settings.root_project} is used by both the root project and an included module"
            )
        extra = sorted(set(definitions) - set(settings.include))
        if extra:
            raise ConfigurationError(f"Module definition(s) not listed in include: {', '.join(extra)}")

        modules: dict[str, Module] = {}
        for name in settings.include:
            if name not in definitions:
                raise ConfigurationError(f"Included module {name} has no {BUILD_FILE}", module=name)
            module = parse_module_definition(name, definitions[name], settings=settings, catalog=catalog)
            for convention in module.conventions:
                try:
                    bundles.get(convention)
                except ConfigurationError as exc:
                    raise ConfigurationError(f"{name}/{BUILD_FILE}: {exc}", module=name) from exc
            modules[name] = module

        cls._validate_edges(modules)

        cycle = _find_module_cycle(modules)
        if cycle:
            raise ConfigurationError(f"Module dependency cycle: {' -> '.join(cycle)}")

        root = Module(
            name=settings.root_project,
            layout=ModuleLayout.for_directory(settings.root_dir, settings.build_dir),
            conventions=ROOT_CONVENTIONS,
            is_root=True,
        )
        logger.debug("Module graph: root %s, modules %s", root.name, ", ".join(modules) or "<none>")
        return cls(settings=settings, catalog=catalog, root=root, modules=modules)

    @staticmethod
    def _validate_edges(modules: Mapping[str, Module]) -> None:
        known = ", ".join(modules) or "<none>"
        for name, module in modules.items():
            for decl in module.dependencies:
                dependency = decl.dependency
                if not isinstance(dependency, ProjectDependency):
                    continue
                target = modules.get(dependency.module)
                if target is None:
                    raise ConfigurationError(
                        f"Module {name} declares {decl.notation} on {decl.configuration}, "
                        f"but no module {dependency.module} exists (known: {known})",
                        module=name,
                    )
                if dependency.module == name:
                    raise ConfigurationError(
                        f"Module {name} declares a dependency on itself ({decl.notation})", module=name
                    )
                if dependency.fixtures and FIXTURES_CONVENTION not in target.conventions:
                    raise ConfigurationError(
                        f"Module {name} declares {decl.notation}, but {target.name} does not apply "
                        f"the {FIXTURES_CONVENTION} convention",
                        module=name,
                    )

    def all_modules(self) -> tuple[Module, ...]:
        return (self.root, *self.modules.values())

    def module(self, name: str) -> Module:
        if name == self.root.name:
            return self.root
        found = self.modules.get(name)
        if found is None:
            raise ConfigurationError(f"Unknown module: {name} (known: {', '.join(self.modules) or '<none>'})")
        return found

    def edges(self) -> tuple[tuple[str, str, str], ...]:
        """(dependent, dependency, configuration) for every project dependency, sorted."""

        rows = {
            (name, decl.dependency.module, decl.configuration)
            for name, module in self.modules.items()
            for decl in module.dependencies
            if isinstance(decl.dependency, ProjectDependency)
        }
        return tuple(sorted(rows))
