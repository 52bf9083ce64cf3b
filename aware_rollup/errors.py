"""Error types raised by the rollup build orchestration."""

from __future__ import annotations


class AwareRollupError(RuntimeError):
    """Base class for build orchestration failures."""


class ConfigurationError(AwareRollupError):
    """Raised when build options or required paths cannot be resolved."""


class ValidationError(AwareRollupError):
    """Raised when type validation fails before bundling starts."""


class BundleError(AwareRollupError):
    """Raised when the bundler engine fails to produce one format."""

    def __init__(self, message: str, *, format: str | None = None, details: str | None = None) -> None:
        super().__init__(message)
        self.format = format
        self.details = details
