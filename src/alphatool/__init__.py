"""AlphaTool package
Exporting main classes for external use.

Example:
    from alphatool import AlphaTool, AlphaToolConfig, RunPaths
"""
from .core import (
    AlphaTool,
    AlphaToolConfig,
    BoundingBox,
    MixMode,
    RunPaths,
    compare,
    maybe_crop,
    mix,
    scan_frames,
    VERSION,
)

__all__ = [
    'AlphaTool',
    'AlphaToolConfig',
    'BoundingBox',
    'MixMode',
    'RunPaths',
    'compare',
    'maybe_crop',
    'mix',
    'scan_frames',
    'VERSION'
]
