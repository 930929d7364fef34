"""Material slot resolution for VRM 0.x and VRM 1.0 materials"""

from .resolver import MaterialDescriptor, TextureRef, build_descriptors
from .slots import (
    BASE_COLOR,
    EMISSIVE,
    NORMAL,
    custom_slot,
    read_texture_ref,
    validate_slot,
    write_texture_ref,
)

__all__ = [
    'MaterialDescriptor',
    'TextureRef',
    'build_descriptors',
    'BASE_COLOR',
    'NORMAL',
    'EMISSIVE',
    'custom_slot',
    'validate_slot',
    'read_texture_ref',
    'write_texture_ref',
]
