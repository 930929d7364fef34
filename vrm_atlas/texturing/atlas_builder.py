"""
Atlas builder

Runs the texture half of the pipeline for a set of material descriptors:

    decode sources (thread pool) -> pack one rectangle per material
    -> composite one atlas per slot -> encode

All slots of a material share one placement, so a single UV transform per
material serves every slot atlas.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, Iterable, List, Tuple

from vrm_atlas.errors import InvalidTextureError, NoEligibleMaterialsError
from vrm_atlas.materials.resolver import MaterialDescriptor
from vrm_atlas.options import OptimizationOptions
from vrm_atlas.scenegraph.model import Scenegraph
from vrm_atlas.texturing.compositor import RawImage, composite
from vrm_atlas.texturing.image_io import ImageCapabilities
from vrm_atlas.texturing.packer import PackingResult, pack_textures_nfdh
from vrm_atlas.uv_remap import MaterialPlacement, UvTransform

logger = logging.getLogger(__name__)


@dataclass
class AtlasTextureDescriptor:
    """One (material, slot) source texture waiting to be packed."""
    id: str
    slot: str
    material_index: int
    texture_index: int
    width: int
    height: int
    read_pixels: Callable[[], RawImage]


@dataclass
class SlotAtlas:
    """Encoded atlas image for one canonical slot."""
    slot: str
    width: int
    height: int
    data: bytes
    mime_type: str
    material_indices: List[int] = field(default_factory=list)


@dataclass
class AtlasBuildResult:
    atlases: List[SlotAtlas]
    placements: List[MaterialPlacement]
    descriptors: List[MaterialDescriptor]
    packing: PackingResult


def decode_textures(
    scenegraph: Scenegraph,
    texture_indices: Iterable[int],
    capabilities: ImageCapabilities,
    max_workers: int = 4,
) -> Tuple[Dict[int, RawImage], Dict[int, InvalidTextureError]]:
    """
    Decode textures concurrently.

    Returns:
        (decoded images by texture index, errors by texture index)
    """
    indices = sorted(set(texture_indices))

    def _decode(index: int) -> RawImage:
        return capabilities.decode(scenegraph.texture_image_bytes(index))

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {index: pool.submit(_decode, index) for index in indices}

    decoded: Dict[int, RawImage] = {}
    failed: Dict[int, InvalidTextureError] = {}
    for index, future in futures.items():
        try:
            decoded[index] = future.result()
        except InvalidTextureError as e:
            logger.warning(f"Texture {index} cannot be decoded: {e}")
            failed[index] = e
    logger.info(f"Decoded {len(decoded)}/{len(indices)} texture(s)")
    return decoded, failed


def describe_textures(
    descriptors: Iterable[MaterialDescriptor],
    decoded: Dict[int, RawImage],
) -> List[AtlasTextureDescriptor]:
    """Flatten material descriptors into per-slot atlas descriptors with lazy pixel access."""
    result = []
    for descriptor in descriptors:
        for slot, ref in descriptor.slots.items():
            image = decoded[ref.texture_index]
            result.append(AtlasTextureDescriptor(
                id=f"material:{descriptor.material_index}:{slot}",
                slot=slot,
                material_index=descriptor.material_index,
                texture_index=ref.texture_index,
                width=image.width,
                height=image.height,
                read_pixels=partial(decoded.__getitem__, ref.texture_index),
            ))
    return result


def build_atlases(
    scenegraph: Scenegraph,
    descriptors: List[MaterialDescriptor],
    options: OptimizationOptions,
    capabilities: ImageCapabilities,
) -> AtlasBuildResult:
    """
    Build one atlas per slot for the given materials.

    Materials with an undecodable texture are left out.

    Raises:
        NoEligibleMaterialsError: No material survived decoding
        PackingFailedError: Textures do not fit even after downscaling
        CompositeFailedError: Resized sources do not match their placements
    """
    decoded, failed = decode_textures(
        scenegraph,
        (ref.texture_index for d in descriptors for ref in d.slots.values()),
        capabilities,
        options.max_workers,
    )

    usable = []
    for descriptor in descriptors:
        broken = [ref.texture_index for ref in descriptor.slots.values() if ref.texture_index in failed]
        if broken:
            logger.warning(
                f"Material {descriptor.material_index} uses undecodable texture(s) {broken}, leaving it out"
            )
            continue
        usable.append(descriptor)
    if not usable:
        raise NoEligibleMaterialsError(f"None of {len(descriptors)} material(s) could be atlased")

    textures = describe_textures(usable, decoded)
    primaries = [
        next(t for t in textures
             if t.material_index == d.material_index and t.slot == d.primary_slot)
        for d in usable
    ]

    largest = max(max(t.width, t.height) for t in primaries)
    scale = options.resolve_texture_scale(largest)
    sizes = [(max(1, round(t.width * scale)), max(1, round(t.height * scale))) for t in primaries]
    if scale < 1.0:
        logger.info(f"Scaling source textures by {scale:.3f} before packing")

    bound = options.max_texture_size
    packing = pack_textures_nfdh(sizes, bound, bound, options.padding)
    placements = sorted(packing.placements, key=lambda p: p.index)
    for placement, primary in zip(placements, primaries):
        placement.original_width = primary.width
        placement.original_height = primary.height

    slot_order = [s for s in options.slots if any(t.slot == s for t in textures)]
    atlases = []
    for slot in slot_order:
        sources: Dict[int, RawImage] = {}
        for index, descriptor in enumerate(usable):
            texture = next(
                (t for t in textures if t.material_index == descriptor.material_index and t.slot == slot),
                None,
            )
            if texture is None:
                continue
            placement = placements[index]
            image = texture.read_pixels()
            if capabilities.resize is not None:
                image = capabilities.resize(image, placement.source_width, placement.source_height)
            sources[index] = image

        atlas = composite(packing.atlas_width, packing.atlas_height,
                          [p for p in placements if p.index in sources], sources)
        atlases.append(SlotAtlas(
            slot=slot,
            width=atlas.width,
            height=atlas.height,
            data=capabilities.encode(atlas, options.compress_textures),
            mime_type=capabilities.mime_type,
            material_indices=[usable[i].material_index for i in sorted(sources)],
        ))
        logger.info(f"Built {slot} atlas ({atlas.width}x{atlas.height}, {len(sources)} texture(s))")

    material_placements = [
        MaterialPlacement(
            material_index=descriptor.material_index,
            uv_transform=UvTransform.from_placement(placement, packing.atlas_width, packing.atlas_height),
            tex_coord=descriptor.slots[descriptor.primary_slot].tex_coord,
        )
        for descriptor, placement in zip(usable, placements)
    ]

    return AtlasBuildResult(atlases, material_placements, usable, packing)
