"""Strict, owner-scoped configuration namespace for build definition files."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable

_MISSING = object()


def _join_path(parent: str, key: str) -> str:
    if not parent:
        return key
    return f"{parent}.{key}"


@dataclass
class ConfigNamespace:
    """Typed accessors over a mapping that remember which keys were read.

    Every accessor marks its key as consumed; `assert_consumed()` then fails on
    anything a build file declared but nobody read (typos, stale keys).
    """

    data: Mapping[str, Any]
    path: str
    _consumed: set[str] = field(default_factory=set, init=False, repr=False)
    _children: dict[str, "ConfigNamespace"] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def empty(cls, *, path: str) -> "ConfigNamespace":
        return cls({}, path=path)

    def has(self, key: str) -> bool:
        return (key or "").strip() in self.data

    def consumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._consumed))

    def unconsumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(str(k) for k in self.data.keys() if k not in self._consumed))

    def assert_consumed(self) -> None:
        unknown = list(self.unconsumed_keys())
        if unknown:
            where = self.path or "<root>"
            consumed = ", ".join(self.consumed_keys()) or "<none>"
            raise ValueError(
                f"Unknown config keys under {where}: {', '.join(unknown)} (known: {consumed})"
            )
        for child in self._children.values():
            child.assert_consumed()

    def _key(self, key: str) -> str:
        if not isinstance(key, str) or not key.strip():
            raise TypeError("ConfigNamespace key must be a non-empty string")
        return key.strip()

    def _get_raw(self, key: str, *, default: Any) -> Any:
        normalized = self._key(key)
        if normalized in self._children:
            raise ValueError(
                f"{_join_path(self.path, normalized)} already accessed as a nested namespace"
            )
        self._consumed.add(normalized)
        if normalized not in self.data:
            if default is _MISSING:
                raise ValueError(f"Missing required config key: {_join_path(self.path, normalized)}")
            return default
        return self.data.get(normalized)

    def namespace(self, key: str, *, default: Mapping[str, Any] | None | object = _MISSING) -> "ConfigNamespace":
        normalized = self._key(key)
        if normalized in self._children:
            return self._children[normalized]

        child_path = _join_path(self.path, normalized)
        raw = self.data.get(normalized)
        self._consumed.add(normalized)

        if raw is None:
            if default is _MISSING:
                raise ValueError(f"Missing required config namespace: {child_path}")
            if default is not None and not isinstance(default, Mapping):
                raise TypeError(f"default for {child_path} must be a mapping or None")
            raw = dict(default or {})

        if not isinstance(raw, Mapping):
            raise TypeError(f"{child_path} must be a mapping (type={type(raw).__name__})")

        child = ConfigNamespace(dict(raw), path=child_path)
        self._children[normalized] = child
        return child

    def get_bool(self, key: str, *, default: bool | object = _MISSING) -> bool:
        value = self._get_raw(key, default=default)
        if not isinstance(value, bool):
            raise TypeError(
                f"{_join_path(self.path, self._key(key))} must be a boolean (type={type(value).__name__})"
            )
        return value

    def get_int(
        self,
        key: str,
        *,
        default: int | object = _MISSING,
        min_value: int | None = None,
        max_value: int | None = None,
    ) -> int:
        value = self._get_raw(key, default=default)
        where = _join_path(self.path, self._key(key))
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{where} must be an int (type={type(value).__name__})")
        if min_value is not None and value < min_value:
            raise ValueError(f"{where} must be >= {min_value} (got {value})")
        if max_value is not None and value > max_value:
            raise ValueError(f"{where} must be <= {max_value} (got {value})")
        return value

    def get_str(
        self,
        key: str,
        *,
        default: str | None | object = _MISSING,
        allow_empty: bool = False,
        choices: Iterable[str] | None = None,
    ) -> str | None:
        raw = self._get_raw(key, default=default)
        where = _join_path(self.path, self._key(key))
        if raw is None:
            return None
        # YAML reads bare versions such as 21 or 1.0 as numbers.
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            raw = str(raw)
        if not isinstance(raw, str):
            raise TypeError(f"{where} must be a string (type={type(raw).__name__})")
        value = raw.strip()
        if not value and not allow_empty:
            raise ValueError(f"{where} cannot be empty")
        if choices is not None:
            allowed = sorted({str(item).strip() for item in choices})
            if value not in allowed:
                raise ValueError(
                    f"{where} must be one of: {', '.join(allowed) or '<none>'} (got {value!r})"
                )
        return value

    def get_list_str(
        self,
        key: str,
        *,
        default: list[str] | tuple[str, ...] | object = _MISSING,
        allow_empty: bool = False,
    ) -> list[str]:
        raw = self._get_raw(key, default=default)
        where = _join_path(self.path, self._key(key))
        if raw is None:
            raw = []
        if not isinstance(raw, (list, tuple)):
            raise TypeError(f"{where} must be a list[str] (type={type(raw).__name__})")

        items: list[str] = []
        for idx, item in enumerate(raw):
            if not isinstance(item, str):
                raise TypeError(f"{where}[{idx}] must be a string (type={type(item).__name__})")
            trimmed = item.strip()
            if not trimmed:
                raise ValueError(f"{where}[{idx}] cannot be empty")
            items.append(trimmed)

        if not items and not allow_empty:
            raise ValueError(f"{where} cannot be empty")
        return items

    def get_mapping(self, key: str, *, default: Mapping[str, Any] | object = _MISSING) -> dict[str, Any]:
        """Read a free-form mapping (keys are not consumption-checked)."""

        raw = self._get_raw(key, default=default)
        where = _join_path(self.path, self._key(key))
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise TypeError(f"{where} must be a mapping (type={type(raw).__name__})")
        return {str(k): v for k, v in raw.items()}

    def get_list_mapping(
        self,
        key: str,
        *,
        default: list[Mapping[str, Any]] | tuple[Mapping[str, Any], ...] | object = _MISSING,
        allow_empty: bool = False,
    ) -> list[dict[str, Any]]:
        raw = self._get_raw(key, default=default)
        where = _join_path(self.path, self._key(key))
        if raw is None:
            raw = []
        if not isinstance(raw, (list, tuple)):
            raise TypeError(f"{where} must be a list[dict] (type={type(raw).__name__})")

        items: list[dict[str, Any]] = []
        for idx, item in enumerate(raw):
            if not isinstance(item, Mapping):
                raise TypeError(f"{where}[{idx}] must be a mapping (type={type(item).__name__})")
            items.append(dict(item))

        if not items and not allow_empty:
            raise ValueError(f"{where} cannot be empty")
        return items
