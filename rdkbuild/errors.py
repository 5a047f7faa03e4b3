from __future__ import annotations


class BuildError(Exception):
    """Base class for every error raised by the build layer."""


class ConfigurationError(BuildError):
    """A build-definition contract was violated; raised before any task runs.

    Also raised when publishing is attempted for a module whose verification
    has not succeeded in the current build.
    """

    def __init__(self, message: str, *, module: str | None = None) -> None:
        super().__init__(message)
        self.module = module


class AmbiguousArtifactError(BuildError):
    """A single-artifact resolution produced zero or several files."""

    def __init__(self, configuration: str, files: tuple[str, ...]) -> None:
        listing = ", ".join(files) or "<none>"
        super().__init__(
            f"Configuration {configuration} must resolve to exactly one file "
            f"(got {len(files)}: {listing})"
        )
        self.configuration = configuration
        self.files = files


class MissingExecutionDataError(BuildError):
    def __init__(self, path: str, *, suite: str, module: str) -> None:
        super().__init__(
            f"No execution data for {module} {suite} suite at {path} (did the suite run?)"
        )
        self.path = path
        self.suite = suite
        self.module = module


class TaskFailedError(BuildError):
    """A task's work failed: failing tests, or a toolchain process exiting non-zero."""
