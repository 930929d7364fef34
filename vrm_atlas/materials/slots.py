"""
Canonical material slots

Both VRM schemas describe the same handful of textures under different
field names. Packing and compositing only ever see canonical slot names:

    baseColor, normal, emissive     closed vocabulary
    custom:<name>                   shader-specific (MToon) textures

The lookup tables below translate between canonical slots and the
schema-specific fields, keyed by SchemaVersion.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from vrm_atlas.scenegraph.format_utils import ensure_path, get_field, get_index, get_path
from vrm_atlas.scenegraph.model import MTOON_EXTENSION, SchemaVersion

BASE_COLOR = "baseColor"
NORMAL = "normal"
EMISSIVE = "emissive"
CUSTOM_PREFIX = "custom:"

STANDARD_SLOTS = (BASE_COLOR, NORMAL, EMISSIVE)


def custom_slot(name: str) -> str:
    return f"{CUSTOM_PREFIX}{name}"


SHADE_MULTIPLY = custom_slot("shadeMultiply")
SHADING_SHIFT = custom_slot("shadingShift")
MATCAP = custom_slot("matcap")
RIM_MULTIPLY = custom_slot("rimMultiply")
OUTLINE_WIDTH = custom_slot("outlineWidth")
UV_ANIMATION_MASK = custom_slot("uvAnimationMask")
RECEIVE_SHADOW = custom_slot("receiveShadow")

# matcap is sampled by view normal, not by UV, so it cannot live in an atlas
DEFAULT_ATLAS_SLOTS = (
    BASE_COLOR,
    NORMAL,
    EMISSIVE,
    SHADE_MULTIPLY,
    SHADING_SHIFT,
    RIM_MULTIPLY,
    OUTLINE_WIDTH,
    UV_ANIMATION_MASK,
    RECEIVE_SHADOW,
)


def validate_slot(slot: str) -> str:
    """
    Check that a slot name belongs to the canonical vocabulary.

    Raises:
        ValueError: Unknown slot name
    """
    if slot in STANDARD_SLOTS:
        return slot
    if isinstance(slot, str) and slot.startswith(CUSTOM_PREFIX) and len(slot) > len(CUSTOM_PREFIX):
        return slot
    raise ValueError(
        f"Unknown material slot '{slot}'. Expected one of {', '.join(STANDARD_SLOTS)} or custom:<name>"
    )


@dataclass(frozen=True)
class TextureRef:
    """Texture index plus the TEXCOORD set used to sample it."""
    texture_index: int
    tex_coord: int = 0


@dataclass(frozen=True)
class FieldLocation:
    """Where a texture info lives inside a VRM 1.0 material."""
    path: tuple
    key: str


# VRM 1.0: texture infos ({"index", "texCoord"}) on the material itself
VRM1_SLOT_FIELDS: Dict[str, FieldLocation] = {
    BASE_COLOR: FieldLocation(('pbrMetallicRoughness',), 'baseColorTexture'),
    NORMAL: FieldLocation((), 'normalTexture'),
    EMISSIVE: FieldLocation((), 'emissiveTexture'),
    SHADE_MULTIPLY: FieldLocation(('extensions', MTOON_EXTENSION), 'shadeMultiplyTexture'),
    SHADING_SHIFT: FieldLocation(('extensions', MTOON_EXTENSION), 'shadingShiftTexture'),
    MATCAP: FieldLocation(('extensions', MTOON_EXTENSION), 'matcapTexture'),
    RIM_MULTIPLY: FieldLocation(('extensions', MTOON_EXTENSION), 'rimMultiplyTexture'),
    OUTLINE_WIDTH: FieldLocation(('extensions', MTOON_EXTENSION), 'outlineWidthMultiplyTexture'),
    UV_ANIMATION_MASK: FieldLocation(('extensions', MTOON_EXTENSION), 'uvAnimationMaskTexture'),
}

# VRM 0.x: flat materialProperties[].textureProperties map
VRM0_SLOT_KEYS: Dict[str, str] = {
    BASE_COLOR: '_MainTex',
    NORMAL: '_BumpMap',
    EMISSIVE: '_EmissionMap',
    SHADE_MULTIPLY: '_ShadeTexture',
    SHADING_SHIFT: '_ShadingGradeTexture',
    MATCAP: '_SphereAdd',
    RIM_MULTIPLY: '_RimTexture',
    OUTLINE_WIDTH: '_OutlineWidthTexture',
    UV_ANIMATION_MASK: '_UvAnimMaskTexture',
    RECEIVE_SHADOW: '_ReceiveShadowTexture',
}


def slots_for_schema(schema_version: SchemaVersion) -> List[str]:
    """Canonical slots a schema can express, in table order."""
    if schema_version == SchemaVersion.VRM1:
        return list(VRM1_SLOT_FIELDS)
    return list(VRM0_SLOT_KEYS)


def read_texture_ref(
    schema_version: SchemaVersion,
    material: Dict[str, Any],
    properties: Optional[Dict[str, Any]],
    slot: str,
) -> Optional[TextureRef]:
    """
    Read one canonical slot from a material.

    Args:
        schema_version: Schema of the document
        material: glTF material dict
        properties: Matching VRM 0.x materialProperties entry (ignored for VRM 1.0)
        slot: Canonical slot name

    Returns:
        TextureRef or None if the material does not use that slot
    """
    if schema_version == SchemaVersion.VRM1:
        location = VRM1_SLOT_FIELDS.get(slot)
        if location is None:
            return None
        info = get_path(material, location.path + (location.key,))
        index = get_index(info, 'index')
        if index is None:
            return None
        return TextureRef(index, get_field(info, 'texCoord', 0))

    key = VRM0_SLOT_KEYS.get(slot)
    if key is None:
        return None
    index = get_index(get_field(properties, 'textureProperties'), key)
    if index is None:
        return None
    return TextureRef(index, 0)


def write_texture_ref(
    schema_version: SchemaVersion,
    material: Dict[str, Any],
    properties: Optional[Dict[str, Any]],
    slot: str,
    ref: TextureRef,
) -> None:
    """
    Point a canonical slot of a material at a texture.

    For VRM 1.0 the texture info is replaced in place, keeping extra keys
    such as normal "scale". For VRM 0.x the textureProperties entry is
    written, and the glTF fallback field is kept in step when the material
    carries one for the same slot.
    """
    if schema_version == SchemaVersion.VRM1:
        _write_texture_info(material, VRM1_SLOT_FIELDS[slot], ref)
        return

    if properties is None:
        raise ValueError(f"VRM 0.x material has no materialProperties entry for slot {slot}")
    texture_properties = properties.get('textureProperties')
    if not isinstance(texture_properties, dict):
        texture_properties = {}
        properties['textureProperties'] = texture_properties
    texture_properties[VRM0_SLOT_KEYS[slot]] = ref.texture_index

    mirror = VRM1_SLOT_FIELDS.get(slot) if slot in STANDARD_SLOTS else None
    if mirror is not None and isinstance(get_path(material, mirror.path + (mirror.key,)), dict):
        _write_texture_info(material, mirror, ref)


def _write_texture_info(material: Dict[str, Any], location: FieldLocation, ref: TextureRef) -> None:
    parent = ensure_path(material, location.path)
    info = parent.get(location.key)
    info = dict(info) if isinstance(info, dict) else {}
    info['index'] = ref.texture_index
    if ref.tex_coord:
        info['texCoord'] = ref.tex_coord
    else:
        info.pop('texCoord', None)
    parent[location.key] = info
