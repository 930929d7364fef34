"""
UV remapping

Moves texture coordinates of atlased materials into their atlas rectangle.
Each accessor is rewritten at most once, even when several primitives share
it. Only VEC2 float accessors are touched.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Set, Tuple

import numpy as np

from vrm_atlas.scenegraph.format_utils import get_field, get_index, get_list_field
from vrm_atlas.scenegraph.model import Scenegraph

if TYPE_CHECKING:
    from vrm_atlas.texturing.packer import PackedPlacement

logger = logging.getLogger(__name__)

COMPONENT_FLOAT = 5126
VEC2_SIZE = 8


@dataclass(frozen=True)
class UvTransform:
    """
    Affine UV transform:

        u' = a*u + b*v + tx
        v' = c*u + d*v + ty
    """
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    @classmethod
    def from_placement(cls, placement: "PackedPlacement", atlas_width: int, atlas_height: int) -> "UvTransform":
        sx = placement.width / atlas_width
        sy = placement.height / atlas_height
        ox = placement.x / atlas_width
        oy = placement.y / atlas_height
        if placement.rotated:
            # source turned clockwise: u runs down the footprint, v runs right to left
            return cls(a=0.0, b=-sx, c=sy, d=0.0, tx=ox + sx, ty=oy)
        return cls(a=sx, d=sy, tx=ox, ty=oy)

    def apply(self, u: float, v: float) -> Tuple[float, float]:
        return self.a * u + self.b * v + self.tx, self.c * u + self.d * v + self.ty


@dataclass
class MaterialPlacement:
    """UV transform to apply to every primitive drawn with a material."""
    material_index: int
    uv_transform: UvTransform
    tex_coord: int = 0


def remap_uvs(scenegraph: Scenegraph, placements: Iterable[MaterialPlacement]) -> int:
    """
    Apply placement transforms to mesh texture coordinates in place.

    Returns:
        Number of accessors rewritten
    """
    by_material = {p.material_index: p for p in placements}
    if not by_material:
        return 0

    processed: Set[int] = set()
    transformed = 0

    for mesh_index, mesh in enumerate(scenegraph.meshes):
        for prim_index, primitive in enumerate(get_list_field(mesh, 'primitives')):
            placement = by_material.get(get_index(primitive, 'material'))
            if placement is None:
                continue

            attribute = f"TEXCOORD_{placement.tex_coord}"
            accessor_index = get_index(get_field(primitive, 'attributes'), attribute)
            if accessor_index is None:
                logger.debug(f"Mesh {mesh_index} primitive {prim_index} has no {attribute}")
                continue
            if accessor_index in processed:
                continue
            processed.add(accessor_index)

            if _transform_accessor(scenegraph, accessor_index, placement.uv_transform):
                transformed += 1

    logger.info(f"Remapped {transformed} UV accessor(s)")
    return transformed


def _transform_accessor(scenegraph: Scenegraph, accessor_index: int, transform: UvTransform) -> bool:
    accessors = scenegraph.accessors
    if accessor_index >= len(accessors):
        logger.warning(f"Accessor {accessor_index} does not exist")
        return False
    accessor = accessors[accessor_index]

    if get_field(accessor, 'type') != 'VEC2' or get_field(accessor, 'componentType') != COMPONENT_FLOAT:
        logger.debug(f"Accessor {accessor_index} is not VEC2/FLOAT, skipping")
        return False
    if 'sparse' in accessor:
        logger.warning(f"Accessor {accessor_index} uses sparse storage, skipping")
        return False

    view_index = get_index(accessor, 'bufferView')
    if view_index is None:
        return False
    data = scenegraph.buffer_view_data(view_index)
    if data is None:
        logger.warning(f"Accessor {accessor_index} data is not in the GLB binary, skipping")
        return False

    count = get_field(accessor, 'count', 0)
    if count <= 0:
        return False
    offset = get_field(accessor, 'byteOffset', 0)
    stride = get_field(scenegraph.buffer_views[view_index], 'byteStride') or VEC2_SIZE
    if offset + stride * (count - 1) + VEC2_SIZE > len(data):
        logger.warning(f"Accessor {accessor_index} overruns its bufferView, skipping")
        return False

    uv = np.ndarray(shape=(count, 2), dtype='<f4', buffer=data, offset=offset, strides=(stride, 4))
    u = uv[:, 0].astype(np.float64)
    v = uv[:, 1].astype(np.float64)
    uv[:, 0] = transform.a * u + transform.b * v + transform.tx
    uv[:, 1] = transform.c * u + transform.d * v + transform.ty

    if 'min' in accessor or 'max' in accessor:
        accessor['min'] = uv.min(axis=0).tolist()
        accessor['max'] = uv.max(axis=0).tolist()
    return True
