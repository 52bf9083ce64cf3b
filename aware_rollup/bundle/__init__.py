"""Pipeline composition, bundling and manifest synthesis for library units."""

from .config import BuildConfiguration, Format
from .externals import ExternalPredicate, resolve_externals
from .manifest import update_package_json
from .pipeline import ComposedPipeline, RollupOptions, compose_pipeline
from .runner import BuildResult, WatchSession, run_batch

__all__ = [
    "BuildConfiguration",
    "BuildResult",
    "ComposedPipeline",
    "ExternalPredicate",
    "Format",
    "RollupOptions",
    "WatchSession",
    "compose_pipeline",
    "resolve_externals",
    "run_batch",
    "update_package_json",
]
