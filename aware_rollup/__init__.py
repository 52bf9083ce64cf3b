"""Rollup build orchestration for workspace library units."""

from .errors import AwareRollupError, BundleError, ConfigurationError, ValidationError
from .executor import run_executor
from .workspace import ExecutorContext, WorkspaceGraph

__all__ = [
    "AwareRollupError",
    "BundleError",
    "ConfigurationError",
    "ExecutorContext",
    "ValidationError",
    "WorkspaceGraph",
    "run_executor",
]

__version__ = "0.1.0"
