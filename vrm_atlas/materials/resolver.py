"""
Material slot resolver

Turns the materials of a Scenegraph into MaterialDescriptors: one per
eligible material, listing the texture behind each canonical slot.

Eligibility:
    VRM 1.0  material has a VRMC_materials_mtoon extension
    VRM 0.x  material has a materialProperties entry (matched by name,
             falling back to the same position in the list)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from vrm_atlas.materials.slots import TextureRef, read_texture_ref, slots_for_schema
from vrm_atlas.scenegraph.format_utils import get_dict_field, get_field
from vrm_atlas.scenegraph.model import MTOON_EXTENSION, Scenegraph, SchemaVersion

logger = logging.getLogger(__name__)


@dataclass
class MaterialDescriptor:
    """Canonical slot -> texture reference for one material."""
    material_index: int
    slots: Dict[str, TextureRef] = field(default_factory=dict)

    @property
    def primary_slot(self) -> str:
        """Slot whose texture size drives packing (baseColor when present)."""
        if "baseColor" in self.slots:
            return "baseColor"
        return next(iter(self.slots))


def find_material_properties(scenegraph: Scenegraph, material_index: int) -> Optional[Dict[str, Any]]:
    """
    VRM 0.x materialProperties entry for a material.

    Matches on name first; falls back to the entry at the same index.
    """
    properties = scenegraph.material_properties
    materials = scenegraph.materials
    name = get_field(materials[material_index], 'name') if material_index < len(materials) else None

    if name is not None:
        for entry in properties:
            if get_field(entry, 'name') == name:
                return entry
    if material_index < len(properties) and isinstance(properties[material_index], dict):
        return properties[material_index]
    return None


def build_descriptors(
    scenegraph: Scenegraph,
    slots: Optional[Iterable[str]] = None,
) -> List[MaterialDescriptor]:
    """
    Build one descriptor per eligible material.

    Args:
        scenegraph: Document to inspect
        slots: Optional subset of canonical slots to resolve (default: all the schema knows)

    Returns:
        Descriptors in material order. Materials with no resolvable slot are left out.
    """
    schema = scenegraph.schema_version
    candidate_slots = slots_for_schema(schema)
    if slots is not None:
        wanted = set(slots)
        candidate_slots = [s for s in candidate_slots if s in wanted]

    texture_count = len(scenegraph.textures)
    descriptors = []

    for material_index, material in enumerate(scenegraph.materials):
        if not isinstance(material, dict):
            continue

        properties = None
        if schema == SchemaVersion.VRM1:
            if MTOON_EXTENSION not in get_dict_field(material, 'extensions'):
                logger.debug(f"Material {material_index} has no MToon extension, skipping")
                continue
        else:
            properties = find_material_properties(scenegraph, material_index)
            if properties is None:
                logger.debug(f"Material {material_index} has no materialProperties entry, skipping")
                continue

        resolved = {}
        for slot in candidate_slots:
            ref = read_texture_ref(schema, material, properties, slot)
            if ref is None:
                continue
            if ref.texture_index >= texture_count:
                logger.warning(
                    f"Material {material_index} slot {slot} references missing texture "
                    f"{ref.texture_index}, ignoring"
                )
                continue
            resolved[slot] = ref

        if not resolved:
            continue
        descriptors.append(MaterialDescriptor(material_index, resolved))

    logger.info(f"Resolved {len(descriptors)} material descriptor(s) ({schema.value})")
    return descriptors
