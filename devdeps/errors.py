from __future__ import annotations

from typing import Any


class DevDepsError(Exception):
    """Base class for fatal provisioning/teardown errors.

    ``diagnostics`` holds the text printed verbatim to the operator before exiting.
    """

    def __init__(self, message: str, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class DockerUnavailable(DevDepsError):
    pass


class ResolutionError(DevDepsError):
    """No usable platform profile / build definition could be chosen."""


class BuildError(DevDepsError):
    def __init__(self, message: str, diagnostics: str = "", attempts: list[Any] | None = None) -> None:
        super().__init__(message, diagnostics)
        self.attempts = list(attempts or [])


class LaunchError(DevDepsError):
    """Container did not stay running, even with the alternate entrypoint."""


class ReadinessTimeout(DevDepsError):
    def __init__(self, message: str, status: Any = None) -> None:
        super().__init__(message, getattr(status, "message", "") or "")
        self.status = status


class InitializationError(DevDepsError):
    pass


class ConfigurationError(DevDepsError):
    """A configured value (resource name, purge pattern) cannot be used."""
