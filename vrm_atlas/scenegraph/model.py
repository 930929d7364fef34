"""
Scenegraph model

Index-based view over a glTF document and its GLB binary payload. Every
stage of the optimizer mutates one Scenegraph in place.

All index bookkeeping lives here. Deleting a texture, image or bufferView
goes through delete_texture / delete_image / delete_buffer_view, which
renumber every reference class in one place:

    texture    -> material texture infos, material extension *Texture fields,
                  VRM0 textureProperties, VRM0 meta.texture
    image      -> textures[].source, texture extension sources,
                  VRM1 meta.thumbnailImage
    bufferView -> every "bufferView" key anywhere in the document
"""

import base64
import binascii
import logging
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from vrm_atlas.container.glb import GlbContainer, decode_glb, encode_glb
from vrm_atlas.errors import InvalidTextureError, UnsupportedSchemaError
from vrm_atlas.scenegraph.format_utils import (
    get_dict_field,
    get_field,
    get_index,
    get_list_field,
    get_path,
    safe_iterate,
)

logger = logging.getLogger(__name__)

VRM0_EXTENSION = "VRM"
VRM1_EXTENSION = "VRMC_vrm"
MTOON_EXTENSION = "VRMC_materials_mtoon"

# (parent path inside the material, field name)
CORE_TEXTURE_FIELDS = (
    (('pbrMetallicRoughness',), 'baseColorTexture'),
    (('pbrMetallicRoughness',), 'metallicRoughnessTexture'),
    ((), 'normalTexture'),
    ((), 'occlusionTexture'),
    ((), 'emissiveTexture'),
)


class SchemaVersion(str, Enum):
    """Material schema in use. Decided once per Scenegraph."""
    VRM0 = "vrm0"  # VRM extension, materialProperties list
    VRM1 = "vrm1"  # VRMC_vrm, VRMC_materials_mtoon per material


def detect_schema_version(
    document: Dict[str, Any],
    vendor_extensions: Optional[Dict[str, Any]] = None,
) -> Optional[SchemaVersion]:
    """
    Detect the VRM schema from top-level extensions and extensionsUsed.

    Returns:
        SchemaVersion, or None when neither VRM marker is present
    """
    markers = set(get_dict_field(document, 'extensions'))
    markers.update(vendor_extensions or {})
    markers.update(e for e in get_list_field(document, 'extensionsUsed') if isinstance(e, str))

    if VRM1_EXTENSION in markers or MTOON_EXTENSION in markers:
        return SchemaVersion.VRM1
    if VRM0_EXTENSION in markers:
        return SchemaVersion.VRM0
    return None


class Scenegraph:
    """
    Mutable glTF document + GLB binary with a fixed VRM schema version.

    Raises:
        UnsupportedSchemaError: Document carries neither VRM 0.x nor VRM 1.0 markers
    """

    def __init__(
        self,
        document: Dict[str, Any],
        binary: bytes = b"",
        vendor_extensions: Optional[Dict[str, Any]] = None,
        schema_version: Optional[SchemaVersion] = None,
    ):
        self.document = document
        self.binary = bytearray(binary)
        self.vendor_extensions = vendor_extensions if vendor_extensions is not None else {}

        detected = schema_version or detect_schema_version(document, self.vendor_extensions)
        if detected is None:
            raise UnsupportedSchemaError("No VRM 0.x or VRM 1.0 extension found in document")
        self._schema_version = detected

        self._chunks = []
        self._glb_version = 2
        self._layout_dirty = False

    @classmethod
    def from_container(cls, container: GlbContainer) -> "Scenegraph":
        graph = cls(container.document, container.binary, container.vendor_extensions)
        graph._chunks = list(container.chunks)
        graph._glb_version = container.version
        return graph

    @classmethod
    def from_glb(cls, data: bytes) -> "Scenegraph":
        return cls.from_container(decode_glb(data))

    def to_container(self) -> GlbContainer:
        """Hand the document back to the codec, repacking the binary if views were dropped."""
        if self._layout_dirty:
            self._repack_binary()
        return GlbContainer(
            document=self.document,
            binary=bytes(self.binary),
            chunks=list(self._chunks),
            vendor_extensions=self.vendor_extensions,
            version=self._glb_version,
        )

    def to_glb(self) -> bytes:
        return encode_glb(self.to_container())

    @property
    def schema_version(self) -> SchemaVersion:
        return self._schema_version

    # ------------------------------------------------------------------
    # Collections

    @property
    def materials(self) -> List[Dict[str, Any]]:
        return get_list_field(self.document, 'materials')

    @property
    def textures(self) -> List[Dict[str, Any]]:
        return get_list_field(self.document, 'textures')

    @property
    def images(self) -> List[Dict[str, Any]]:
        return get_list_field(self.document, 'images')

    @property
    def meshes(self) -> List[Dict[str, Any]]:
        return get_list_field(self.document, 'meshes')

    @property
    def accessors(self) -> List[Dict[str, Any]]:
        return get_list_field(self.document, 'accessors')

    @property
    def buffer_views(self) -> List[Dict[str, Any]]:
        return get_list_field(self.document, 'bufferViews')

    def vendor_extension(self, name: str) -> Optional[Dict[str, Any]]:
        """Vendor block by extension name, whether extracted by the codec or still inline."""
        value = self.vendor_extensions.get(name)
        if value is None:
            value = get_path(self.document, ('extensions', name))
        return value if isinstance(value, dict) else None

    @property
    def material_properties(self) -> List[Dict[str, Any]]:
        """VRM 0.x materialProperties (empty for VRM 1.0)"""
        return get_list_field(self.vendor_extension(VRM0_EXTENSION), 'materialProperties')

    def _list(self, name: str) -> list:
        items = self.document.get(name)
        if not isinstance(items, list):
            items = []
            self.document[name] = items
        return items

    # ------------------------------------------------------------------
    # Binary access

    def _glb_buffer_available(self) -> bool:
        buffers = get_list_field(self.document, 'buffers')
        return not buffers or 'uri' not in buffers[0]

    def _sync_buffer_length(self) -> None:
        buffers = self._list('buffers')
        if not buffers:
            buffers.append({})
        buffers[0]['byteLength'] = len(self.binary)

    def _buffer_bytes(self, buffer_index: int) -> Optional[bytes]:
        buffers = get_list_field(self.document, 'buffers')
        if buffer_index >= len(buffers):
            return None
        buffer = buffers[buffer_index]
        uri = get_field(buffer, 'uri')
        if uri is None:
            return self.binary if buffer_index == 0 else None
        return _decode_data_uri(uri)

    def buffer_view_data(self, index: int) -> Optional[memoryview]:
        """
        Writable view over a bufferView stored in the GLB binary.

        Returns:
            memoryview, or None if the view lives in an external buffer
        """
        views = self.buffer_views
        if index >= len(views):
            return None
        view = views[index]
        if get_field(view, 'buffer', 0) != 0 or not self._glb_buffer_available():
            return None
        start = get_field(view, 'byteOffset', 0)
        end = start + get_field(view, 'byteLength', 0)
        if end > len(self.binary):
            return None
        return memoryview(self.binary)[start:end]

    def image_bytes(self, image_index: int) -> bytes:
        """
        Encoded bytes of an image (bufferView or data URI).

        Raises:
            InvalidTextureError: The image has no readable pixel source
        """
        images = self.images
        if image_index < 0 or image_index >= len(images):
            raise InvalidTextureError(f"Image {image_index} does not exist")
        image = images[image_index]

        view_index = get_index(image, 'bufferView')
        if view_index is not None:
            views = self.buffer_views
            if view_index >= len(views):
                raise InvalidTextureError(f"Image {image_index} points at missing bufferView {view_index}")
            view = views[view_index]
            data = self._buffer_bytes(get_field(view, 'buffer', 0))
            if data is None:
                raise InvalidTextureError(f"Image {image_index} is stored in an unreadable buffer")
            start = get_field(view, 'byteOffset', 0)
            return bytes(data[start:start + get_field(view, 'byteLength', 0)])

        uri = get_field(image, 'uri')
        if uri is not None:
            data = _decode_data_uri(uri)
            if data is None:
                raise InvalidTextureError(f"Image {image_index} references external file '{uri}'")
            return data

        raise InvalidTextureError(f"Image {image_index} has neither bufferView nor uri")

    def texture_image_bytes(self, texture_index: int) -> bytes:
        """Encoded bytes of the image behind a texture."""
        textures = self.textures
        if texture_index < 0 or texture_index >= len(textures):
            raise InvalidTextureError(f"Texture {texture_index} does not exist")
        source = get_index(textures[texture_index], 'source')
        if source is None:
            raise InvalidTextureError(f"Texture {texture_index} has no image source")
        return self.image_bytes(source)

    # ------------------------------------------------------------------
    # Insertion

    def _append_buffer_view(self, data: bytes) -> int:
        self.binary.extend(b'\x00' * (-len(self.binary) % 4))
        offset = len(self.binary)
        self.binary.extend(data)
        views = self._list('bufferViews')
        views.append({'buffer': 0, 'byteOffset': offset, 'byteLength': len(data)})
        self._sync_buffer_length()
        return len(views) - 1

    def add_image(self, data: bytes, mime_type: str, name: Optional[str] = None) -> int:
        """Store encoded image bytes and return the new image index."""
        image: Dict[str, Any] = {}
        if name:
            image['name'] = name
        image['mimeType'] = mime_type
        if self._glb_buffer_available():
            image['bufferView'] = self._append_buffer_view(data)
        else:
            encoded = base64.b64encode(data).decode('ascii')
            image['uri'] = f"data:{mime_type};base64,{encoded}"
        images = self._list('images')
        images.append(image)
        return len(images) - 1

    def add_texture(self, source: int, sampler: Optional[int] = None, name: Optional[str] = None) -> int:
        texture: Dict[str, Any] = {'source': source}
        if sampler is not None:
            texture['sampler'] = sampler
        if name:
            texture['name'] = name
        textures = self._list('textures')
        textures.append(texture)
        return len(textures) - 1

    # ------------------------------------------------------------------
    # Reference scans

    def _texture_ref_sites(self) -> List[Tuple[Dict[str, Any], str, bool]]:
        """
        Every place a texture index is stored, as (holder, key, is_texture_info).

        Texture infos hold the index under holder[key]["index"]; plain
        references hold it directly in holder[key].
        """
        sites = []
        for _, material in safe_iterate(self.document, 'materials'):
            if not isinstance(material, dict):
                continue
            for parent_path, key in CORE_TEXTURE_FIELDS:
                parent = get_path(material, parent_path) if parent_path else material
                if isinstance(get_field(parent, key), dict):
                    sites.append((parent, key, True))
            for extension in get_dict_field(material, 'extensions').values():
                if not isinstance(extension, dict):
                    continue
                for key, value in extension.items():
                    if key.endswith('Texture') and isinstance(value, dict) and 'index' in value:
                        sites.append((extension, key, True))

        vrm0 = self.vendor_extension(VRM0_EXTENSION)
        for _, props in safe_iterate(vrm0, 'materialProperties'):
            texture_properties = get_field(props, 'textureProperties')
            if isinstance(texture_properties, dict):
                sites.extend((texture_properties, key, False) for key in texture_properties)
        meta = get_field(vrm0, 'meta')
        if isinstance(meta, dict) and 'texture' in meta:
            sites.append((meta, 'texture', False))
        return sites

    def _image_ref_sites(self) -> List[Tuple[Dict[str, Any], str]]:
        sites = []
        for _, texture in safe_iterate(self.document, 'textures'):
            if not isinstance(texture, dict):
                continue
            if 'source' in texture:
                sites.append((texture, 'source'))
            for extension in get_dict_field(texture, 'extensions').values():
                if isinstance(extension, dict) and 'source' in extension:
                    sites.append((extension, 'source'))
        meta = get_field(self.vendor_extension(VRM1_EXTENSION), 'meta')
        if isinstance(meta, dict) and 'thumbnailImage' in meta:
            sites.append((meta, 'thumbnailImage'))
        return sites

    def _buffer_view_ref_sites(self) -> List[Tuple[Dict[str, Any], str]]:
        sites = []
        for root in (self.document, self.vendor_extensions):
            sites.extend(_walk_key(root, 'bufferView'))
        return sites

    def texture_usage(self) -> Dict[int, int]:
        """
        Reference count per texture index from a full scan of the document.

        Covers every material texture field of both schemas, so textures
        reachable only through a shader-specific slot are still counted.
        """
        usage = {i: 0 for i in range(len(self.textures))}
        for holder, key, is_info in self._texture_ref_sites():
            index = _read_ref(holder, key, is_info)
            if index is not None:
                usage[index] = usage.get(index, 0) + 1
        return usage

    def image_usage(self) -> Dict[int, int]:
        usage = {i: 0 for i in range(len(self.images))}
        for holder, key in self._image_ref_sites():
            index = _read_ref(holder, key, False)
            if index is not None:
                usage[index] = usage.get(index, 0) + 1
        return usage

    # ------------------------------------------------------------------
    # Delete and compact

    def delete_texture(self, index: int) -> None:
        """
        Remove a texture and renumber every texture reference.

        References above the index are decremented, references equal to it
        are cleared. The texture's image goes too once nothing else uses it.
        """
        textures = self.textures
        if index < 0 or index >= len(textures):
            raise IndexError(f"Texture index {index} out of range")

        source = get_index(textures[index], 'source')
        del textures[index]
        for holder, key, is_info in self._texture_ref_sites():
            _compact_ref(holder, key, is_info, index)
        logger.debug(f"Deleted texture {index}")

        if source is not None and self.image_usage().get(source, 0) == 0:
            self.delete_image(source)

    def delete_image(self, index: int) -> None:
        """Remove an image, renumber image references and drop its orphaned bufferView."""
        images = self.images
        if index < 0 or index >= len(images):
            raise IndexError(f"Image index {index} out of range")

        view_index = get_index(images[index], 'bufferView')
        del images[index]
        for holder, key in self._image_ref_sites():
            _compact_ref(holder, key, False, index)
        logger.debug(f"Deleted image {index}")

        if view_index is not None:
            still_used = any(
                _read_ref(holder, key, False) == view_index
                for holder, key in self._buffer_view_ref_sites()
            )
            if not still_used:
                self.delete_buffer_view(view_index)

    def delete_buffer_view(self, index: int) -> None:
        """Remove a bufferView; its bytes are reclaimed on the next to_container()."""
        views = self.buffer_views
        if index < 0 or index >= len(views):
            raise IndexError(f"bufferView index {index} out of range")
        del views[index]
        for holder, key in self._buffer_view_ref_sites():
            _compact_ref(holder, key, False, index)
        self._layout_dirty = True

    def _repack_binary(self) -> None:
        """Rebuild the GLB binary from the surviving bufferViews, 4-byte aligned."""
        if not self._glb_buffer_available():
            self._layout_dirty = False
            return
        old = bytes(self.binary)
        packed = bytearray()
        for _, view in safe_iterate(self.document, 'bufferViews'):
            if get_field(view, 'buffer', 0) != 0:
                continue
            start = get_field(view, 'byteOffset', 0)
            length = get_field(view, 'byteLength', 0)
            packed.extend(b'\x00' * (-len(packed) % 4))
            view['byteOffset'] = len(packed)
            packed.extend(old[start:start + length])
        logger.debug(f"Repacked binary: {len(old)} -> {len(packed)} bytes")
        self.binary = packed
        if get_list_field(self.document, 'buffers'):
            self._sync_buffer_length()
        self._layout_dirty = False


def _read_ref(holder: Dict[str, Any], key: str, is_info: bool) -> Optional[int]:
    if is_info:
        return get_index(holder.get(key), 'index')
    return get_index(holder, key)


def _compact_ref(holder: Dict[str, Any], key: str, is_info: bool, removed: int) -> None:
    current = _read_ref(holder, key, is_info)
    if current is None or current < removed:
        return
    if current == removed:
        del holder[key]
    elif is_info:
        holder[key]['index'] = current - 1
    else:
        holder[key] = current - 1


def _walk_key(obj: Any, key: str) -> Iterator[Tuple[Dict[str, Any], str]]:
    """Yield every dict (recursively) that has an entry for key."""
    if isinstance(obj, dict):
        if key in obj:
            yield obj, key
        for value in obj.values():
            yield from _walk_key(value, key)
    elif isinstance(obj, list):
        for item in obj:
            yield from _walk_key(item, key)


def _decode_data_uri(uri: str) -> Optional[bytes]:
    if not uri.startswith('data:') or ';base64,' not in uri:
        return None
    try:
        return base64.b64decode(uri.split(';base64,', 1)[1])
    except (binascii.Error, ValueError):
        return None
