"""
VRM Atlas - Texture atlas optimizer for VRM avatars

Merges the per-material textures of a VRM (GLB) avatar into shared atlas
images, remaps mesh UVs to match and drops textures nothing uses any more,
while keeping the VRM extension data intact.
"""

__version__ = "0.1.0"

from vrm_atlas.optimizer import OptimizationResult, optimize_file, optimize_scenegraph, optimize_vrm
from vrm_atlas.options import OptimizationOptions
from vrm_atlas.scenegraph import Scenegraph, SchemaVersion
from vrm_atlas.statistics import calculate_statistics

__all__ = [
    "OptimizationOptions",
    "OptimizationResult",
    "Scenegraph",
    "SchemaVersion",
    "calculate_statistics",
    "optimize_file",
    "optimize_scenegraph",
    "optimize_vrm",
]
