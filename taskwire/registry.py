from __future__ import annotations

import difflib
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")


class NamedRegistry(Generic[T]):
    """Name -> entry mapping with strict registration and close-match suggestions."""

    def __init__(self, *, kind: str = "entry") -> None:
        self._kind = kind
        self._by_name: dict[str, T] = {}

    @classmethod
    def from_items(
        cls, items: Iterable[tuple[str, T]], *, kind: str = "entry"
    ) -> "NamedRegistry[T]":
        registry: NamedRegistry[T] = cls(kind=kind)
        for name, item in items:
            registry.register(name, item)
        return registry

    @property
    def kind(self) -> str:
        return self._kind

    def register(self, name: str, item: T) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"{self._kind} name must be a non-empty string")
        key = name.strip()
        if key in self._by_name:
            raise ValueError(f"Duplicate {self._kind} name: {key}")
        self._by_name[key] = item

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip() in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_name.keys()))

    def get(self, name: str) -> T:
        item = self._by_name.get((name or "").strip())
        if item is None:
            available = ", ".join(self.available()) or "<none>"
            hint = ""
            suggestions = self.suggest(name)
            if suggestions:
                hint = f"; did you mean: {', '.join(suggestions)}"
            raise KeyError(f"Unknown {self._kind}: {name} (available: {available}{hint})")
        return item

    def items(self) -> tuple[tuple[str, T], ...]:
        return tuple((name, self._by_name[name]) for name in self.available())

    def describe(self, summarize: Callable[[T], dict]) -> tuple[dict, ...]:
        return tuple({"name": name, **summarize(item)} for name, item in self.items())

    def suggest(self, name: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (name or "").strip()
        if not key or not self._by_name:
            return ()
        return tuple(difflib.get_close_matches(key, list(self.available()), n=limit))
