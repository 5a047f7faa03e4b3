from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from rdkbuild.errors import ConfigurationError
from rdkbuild.framework.model import ModuleContext
from taskwire import NamedRegistry

logger = logging.getLogger(__name__)

BundleFunction = Callable[[ModuleContext], ModuleContext]


@dataclass(frozen=True)
class ConventionBundle:
    """A named, pure configuration function applied to a module context."""

    name: str
    apply: BundleFunction
    requires: tuple[str, ...] = ()
    doc: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("Convention bundle name must be a non-empty string")
        if not callable(self.apply):
            raise TypeError(f"Convention bundle {self.name} apply must be callable")
        object.__setattr__(self, "requires", tuple(self.requires))


class ConventionRegistry:
    def __init__(self, bundles: Iterable[ConventionBundle] = ()) -> None:
        self._bundles: NamedRegistry[ConventionBundle] = NamedRegistry(kind="convention bundle")
        for bundle in bundles:
            self.register(bundle.name, bundle)

    def register(self, name: str, bundle: ConventionBundle) -> None:
        if name != bundle.name:
            raise ConfigurationError(f"Convention bundle {bundle.name} registered under a different name: {name}")
        try:
            self._bundles.register(name, bundle)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    def __contains__(self, name: object) -> bool:
        return name in self._bundles

    def names(self) -> tuple[str, ...]:
        return self._bundles.available()

    def get(self, name: str) -> ConventionBundle:
        try:
            return self._bundles.get(name)
        except KeyError as exc:
            raise ConfigurationError(exc.args[0]) from exc

    def apply(self, ctx: ModuleContext, name: str) -> ModuleContext:
        """Apply bundle `name` to `ctx`; re-applying an applied bundle returns `ctx` unchanged."""

        bundle = self.get(name)
        if ctx.is_applied(bundle.name):
            logger.debug("Convention %s already applied to %s", bundle.name, ctx.name)
            return ctx

        missing = [required for required in bundle.requires if not ctx.is_applied(required)]
        if missing:
            raise ConfigurationError(
                f"Convention {bundle.name} requires {', '.join(missing)} to be applied first "
                f"(module {ctx.name} has: {', '.join(ctx.applied) or '<none>'})",
                module=ctx.name,
            )

        try:
            updated = bundle.apply(ctx)
        except ValueError as exc:
            raise ConfigurationError(f"Convention {bundle.name} failed for {ctx.name}: {exc}", module=ctx.name) from exc
        if not isinstance(updated, ModuleContext):
            raise TypeError(f"Convention {bundle.name} must return a ModuleContext (got {type(updated).__name__})")
        logger.debug("Applied convention %s to %s", bundle.name, ctx.name)
        return updated.mark_applied(bundle.name)

    def apply_all(self, ctx: ModuleContext, names: Iterable[str]) -> ModuleContext:
        for name in names:
            ctx = self.apply(ctx, name)
        return ctx

    def describe(self) -> tuple[dict, ...]:
        return self._bundles.describe(
            lambda bundle: {"requires": list(bundle.requires), "doc": bundle.doc}
        )
