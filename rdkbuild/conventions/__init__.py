"""Built-in convention bundles and the registry that applies them."""

from __future__ import annotations

from functools import lru_cache

from rdkbuild.conventions import common, root, test_fixtures
from rdkbuild.conventions.registry import BundleFunction, ConventionBundle, ConventionRegistry


def builtin_bundles() -> tuple[ConventionBundle, ...]:
    return (
        ConventionBundle(
            name=root.NAME,
            apply=root.apply_root,
            doc="Formatting of build-definition and misc files; formatCheck and formatApply tasks.",
        ),
        ConventionBundle(
            name=common.NAME,
            apply=common.apply_common,
            requires=common.REQUIRES,
            doc="Java library: toolchain, archives, unit and integration suites, coverage, Mockito agent, Lombok, "
            "Java formatting and the mavenJava publication.",
        ),
        ConventionBundle(
            name=test_fixtures.NAME,
            apply=test_fixtures.apply_test_fixtures,
            requires=test_fixtures.REQUIRES,
            doc="src/testFixtures/java compiled into an unpublished fixtures jar for sibling test suites.",
        ),
    )


@lru_cache(maxsize=1)
def get_convention_registry() -> ConventionRegistry:
    return ConventionRegistry(builtin_bundles())


__all__ = [
    "BundleFunction",
    "ConventionBundle",
    "ConventionRegistry",
    "builtin_bundles",
    "get_convention_registry",
]
