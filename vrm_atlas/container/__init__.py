"""Binary glTF (GLB) container codec"""

from .glb import GlbChunk, GlbContainer, decode_glb, encode_glb, read_glb, write_glb

__all__ = [
    'GlbChunk',
    'GlbContainer',
    'decode_glb',
    'encode_glb',
    'read_glb',
    'write_glb',
]
