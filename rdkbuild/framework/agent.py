"""Runtime agent injection for test processes.

Configuration time only records *which* configuration pins the agent (an
`AgentDescriptor`). The file is resolved the first time a test process is
launched and the absolute path is cached for the rest of the build invocation,
shared by every launch in every module.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from rdkbuild.errors import AmbiguousArtifactError

logger = logging.getLogger(__name__)

AGENT_ARGUMENT_PREFIX = "-javaagent:"


@dataclass(frozen=True)
class AgentDescriptor:
    configuration: str
    artifacts: tuple[str, ...]

    @property
    def key(self) -> tuple[str, tuple[str, ...]]:
        return (self.configuration, self.artifacts)


class AgentArgumentProvider:
    """Produces `-javaagent:<path>` lazily, resolving its file set at most once."""

    def __init__(self, descriptor: AgentDescriptor, resolve_files: Callable[[], tuple[Path, ...]]) -> None:
        self._descriptor = descriptor
        self._resolve_files = resolve_files
        self._lock = threading.Lock()
        self._path: Path | None = None
        self._resolutions = 0

    @property
    def descriptor(self) -> AgentDescriptor:
        return self._descriptor

    @property
    def resolutions(self) -> int:
        return self._resolutions

    def agent_path(self) -> Path:
        with self._lock:
            if self._path is None:
                self._resolutions += 1
                files = tuple(self._resolve_files())
                if len(files) != 1:
                    raise AmbiguousArtifactError(
                        self._descriptor.configuration, tuple(str(f) for f in files)
                    )
                self._path = Path(files[0]).resolve()
                logger.debug(
                    "Resolved agent %s to %s", self._descriptor.configuration, self._path
                )
            return self._path

    def as_arguments(self) -> list[str]:
        return [f"{AGENT_ARGUMENT_PREFIX}{self.agent_path()}"]


class AgentInjector:
    """Per-invocation cache of argument providers, keyed by what the descriptor pins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._providers: dict[tuple[str, tuple[str, ...]], AgentArgumentProvider] = {}

    def provider(
        self, descriptor: AgentDescriptor, resolve_files: Callable[[], tuple[Path, ...]]
    ) -> AgentArgumentProvider:
        with self._lock:
            existing = self._providers.get(descriptor.key)
            if existing is None:
                existing = AgentArgumentProvider(descriptor, resolve_files)
                self._providers[descriptor.key] = existing
            return existing

    def providers(self) -> tuple[AgentArgumentProvider, ...]:
        with self._lock:
            return tuple(self._providers.values())
