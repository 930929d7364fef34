"""
Texture packing and atlas assembly.

Includes the NFDH packer, the RGBA compositor and Pillow-backed image I/O.
"""
from .atlas_builder import AtlasBuildResult, SlotAtlas, build_atlases
from .compositor import RawImage, composite
from .image_io import ImageCapabilities, default_capabilities
from .packer import PackedPlacement, PackingResult, pack, pack_textures_nfdh

__all__ = [
    'AtlasBuildResult',
    'SlotAtlas',
    'build_atlases',
    'RawImage',
    'composite',
    'ImageCapabilities',
    'default_capabilities',
    'PackedPlacement',
    'PackingResult',
    'pack',
    'pack_textures_nfdh',
]
