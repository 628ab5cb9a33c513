"""Exceptions raised by neotop."""


class NeotopError(Exception):
    """Base class for all neotop errors."""


class BackendError(NeotopError):
    """The process backend could not be reached or refused the request."""


class FetchError(NeotopError):
    """Reading the process list failed."""


class KillError(NeotopError):
    """Terminating a process failed or was refused."""

    def __init__(self, pid: int, message: str | None = None) -> None:
        self.pid = pid
        super().__init__(message or f"Failed to kill process {pid}")


class ConfigError(NeotopError, ValueError):
    """A configuration value is outside its allowed set."""
