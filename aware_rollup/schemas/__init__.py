"""Schema definitions for executor options."""

from .options import AssetGlobPattern, RollupExecutorOptions

__all__ = [
    "AssetGlobPattern",
    "RollupExecutorOptions",
]
