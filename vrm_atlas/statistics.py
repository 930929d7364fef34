"""
Model statistics

Quick numbers for a GLB/VRM file: geometry size, material/texture counts and
a rough GPU memory estimate for its images. Works on any GLB, VRM or not.
"""

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from vrm_atlas.container.glb import GlbContainer, decode_glb
from vrm_atlas.scenegraph.format_utils import get_field, get_index, get_list_field, safe_iterate
from vrm_atlas.scenegraph.model import detect_schema_version

logger = logging.getLogger(__name__)

MODE_TRIANGLES = 4
MODE_TRIANGLE_STRIP = 5
MODE_TRIANGLE_FAN = 6

# full mip chain adds a third on top of the base level
MIPMAP_FACTOR = 4 / 3


@dataclass
class ModelStatistics:
    file_size_mb: float
    polygon_count: int
    material_count: int
    texture_count: int
    image_count: int
    mesh_count: int
    bone_count: int
    vram_estimate_mb: float
    schema_version: Optional[str] = None


def _triangle_count(document: dict, primitive: dict) -> int:
    accessors = get_list_field(document, 'accessors')
    index = get_index(primitive, 'indices')
    if index is None:
        index = get_index(get_field(primitive, 'attributes'), 'POSITION')
    if index is None or index >= len(accessors):
        return 0
    count = get_field(accessors[index], 'count', 0)

    mode = get_field(primitive, 'mode', MODE_TRIANGLES)
    if mode == MODE_TRIANGLES:
        return count // 3
    if mode in (MODE_TRIANGLE_STRIP, MODE_TRIANGLE_FAN):
        return max(0, count - 2)
    return 0


def _image_dimensions(container: GlbContainer, image: dict) -> Optional[tuple]:
    view_index = get_index(image, 'bufferView')
    views = get_list_field(container.document, 'bufferViews')
    if view_index is None or view_index >= len(views):
        return None
    view = views[view_index]
    if get_field(view, 'buffer', 0) != 0:
        return None
    start = get_field(view, 'byteOffset', 0)
    data = container.binary[start:start + get_field(view, 'byteLength', 0)]
    try:
        # header read only, pixels stay compressed
        with Image.open(BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Cannot read image header: {e}")
        return None


def calculate_statistics(data: bytes) -> ModelStatistics:
    """
    Compute statistics for GLB bytes.

    Raises:
        InvalidContainerError: Data is not a GLB file
    """
    container = decode_glb(data)
    document = container.document

    polygon_count = 0
    for _, mesh in safe_iterate(document, 'meshes'):
        for _, primitive in safe_iterate(mesh, 'primitives'):
            polygon_count += _triangle_count(document, primitive)

    joints = set()
    for _, skin in safe_iterate(document, 'skins'):
        joints.update(get_list_field(skin, 'joints'))

    vram_bytes = 0.0
    for _, image in safe_iterate(document, 'images'):
        size = _image_dimensions(container, image)
        if size is not None:
            vram_bytes += size[0] * size[1] * 4 * MIPMAP_FACTOR

    schema = detect_schema_version(document, container.vendor_extensions)
    return ModelStatistics(
        file_size_mb=len(data) / (1024 * 1024),
        polygon_count=polygon_count,
        material_count=len(get_list_field(document, 'materials')),
        texture_count=len(get_list_field(document, 'textures')),
        image_count=len(get_list_field(document, 'images')),
        mesh_count=len(get_list_field(document, 'meshes')),
        bone_count=len(joints),
        vram_estimate_mb=vram_bytes / (1024 * 1024),
        schema_version=schema.value if schema is not None else None,
    )
