"""
GLB container codec

Splits a binary glTF file into its JSON document and BIN payload and puts it
back together again.

Layout:
    header  <III  magic, version, total length
    chunk   <II   chunk length, chunk type, followed by the payload

The VRM vendor block lives in the document's top-level "extensions" map.
It is lifted out on decode and re-attached on encode, untouched.
"""

import json
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from vrm_atlas.errors import InvalidContainerError

logger = logging.getLogger(__name__)

GLB_MAGIC = 0x46546C67  # "glTF"
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942

HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8

# VRM 0.x and VRM 1.0 top-level extension keys
VENDOR_EXTENSION_KEYS = ("VRM", "VRMC_vrm")


@dataclass
class GlbChunk:
    """One chunk as it appeared in the file."""
    chunk_type: int
    data: bytes


@dataclass
class GlbContainer:
    """
    Decoded GLB file.

    Attributes:
        document: glTF JSON document (vendor extensions removed)
        binary: BIN chunk payload (empty when the file has none)
        chunks: Every chunk in file order; JSON/BIN payloads are regenerated on encode
        vendor_extensions: Opaque VRM extension objects keyed by extension name
        version: GLB header version
    """
    document: Dict[str, Any]
    binary: bytes = b""
    chunks: List[GlbChunk] = field(default_factory=list)
    vendor_extensions: Dict[str, Any] = field(default_factory=dict)
    version: int = GLB_VERSION


def _pad(data: bytes, fill: bytes) -> bytes:
    remainder = len(data) % 4
    if remainder:
        data += fill * (4 - remainder)
    return data


def decode_glb(data: bytes) -> GlbContainer:
    """
    Parse GLB bytes.

    Raises:
        InvalidContainerError: Bad magic, truncated chunks, missing or unreadable JSON chunk
    """
    if len(data) < HEADER_SIZE:
        raise InvalidContainerError(f"File too small for a GLB header ({len(data)} bytes)")

    magic, version, total_length = struct.unpack_from('<III', data, 0)
    if magic != GLB_MAGIC:
        raise InvalidContainerError(f"Not a GLB file (magic 0x{magic:08X})")

    if total_length > len(data):
        raise InvalidContainerError(
            f"Header declares {total_length} bytes but only {len(data)} are present"
        )
    if total_length < len(data):
        logger.warning(f"Ignoring {len(data) - total_length} trailing bytes after GLB payload")

    chunks: List[GlbChunk] = []
    offset = HEADER_SIZE
    while offset < total_length:
        if offset + CHUNK_HEADER_SIZE > total_length:
            raise InvalidContainerError(f"Truncated chunk header at offset {offset}")
        chunk_length, chunk_type = struct.unpack_from('<II', data, offset)
        start = offset + CHUNK_HEADER_SIZE
        end = start + chunk_length
        if end > total_length:
            raise InvalidContainerError(
                f"Chunk 0x{chunk_type:08X} at offset {offset} overruns the file"
            )
        chunks.append(GlbChunk(chunk_type, bytes(data[start:end])))
        offset = end

    json_chunk = next((c for c in chunks if c.chunk_type == CHUNK_JSON), None)
    if json_chunk is None:
        raise InvalidContainerError("GLB has no JSON chunk")

    try:
        document = json.loads(json_chunk.data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidContainerError(f"JSON chunk is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise InvalidContainerError("JSON chunk does not contain an object")

    bin_chunk = next((c for c in chunks if c.chunk_type == CHUNK_BIN), None)
    binary = bin_chunk.data if bin_chunk is not None else b""

    vendor_extensions = _extract_vendor_extensions(document)
    if vendor_extensions:
        logger.debug(f"Extracted vendor extensions: {', '.join(vendor_extensions)}")

    return GlbContainer(
        document=document,
        binary=binary,
        chunks=chunks,
        vendor_extensions=vendor_extensions,
        version=version,
    )


def encode_glb(container: GlbContainer) -> bytes:
    """
    Serialize a container back to GLB bytes.

    Chunks are written in their original order with recomputed lengths. A BIN
    chunk is added after the JSON chunk if binary data appeared where the
    source file had none.
    """
    document = _attach_vendor_extensions(container.document, container.vendor_extensions)
    json_bytes = _pad(
        json.dumps(document, separators=(',', ':'), ensure_ascii=False).encode('utf-8'),
        b' ',
    )
    bin_bytes = _pad(bytes(container.binary), b'\x00')

    chunk_types = [c.chunk_type for c in container.chunks]
    if CHUNK_JSON not in chunk_types:
        chunk_types.insert(0, CHUNK_JSON)
    if bin_bytes and CHUNK_BIN not in chunk_types:
        chunk_types.insert(chunk_types.index(CHUNK_JSON) + 1, CHUNK_BIN)

    payloads = []
    others = iter([c for c in container.chunks if c.chunk_type not in (CHUNK_JSON, CHUNK_BIN)])
    for chunk_type in chunk_types:
        if chunk_type == CHUNK_JSON:
            payloads.append((CHUNK_JSON, json_bytes))
        elif chunk_type == CHUNK_BIN:
            payloads.append((CHUNK_BIN, bin_bytes))
        else:
            payloads.append((chunk_type, next(others).data))

    total_length = HEADER_SIZE + sum(CHUNK_HEADER_SIZE + len(p) for _, p in payloads)
    out = bytearray(struct.pack('<III', GLB_MAGIC, container.version, total_length))
    for chunk_type, payload in payloads:
        out += struct.pack('<II', len(payload), chunk_type)
        out += payload
    return bytes(out)


def read_glb(path: Union[str, Path]) -> GlbContainer:
    """Read and decode a GLB file from disk."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"GLB file not found: {path}")
    return decode_glb(path.read_bytes())


def write_glb(path: Union[str, Path], container: GlbContainer) -> None:
    """Encode a container and write it to disk."""
    Path(path).write_bytes(encode_glb(container))


def _extract_vendor_extensions(document: Dict[str, Any]) -> Dict[str, Any]:
    extensions = document.get('extensions')
    if not isinstance(extensions, dict):
        return {}
    vendor = {}
    for key in VENDOR_EXTENSION_KEYS:
        if key in extensions:
            vendor[key] = extensions.pop(key)
    if not extensions and vendor:
        # map only existed to carry the vendor block
        del document['extensions']
    return vendor


def _attach_vendor_extensions(
    document: Dict[str, Any],
    vendor_extensions: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    if not vendor_extensions:
        return document
    merged = dict(document)
    extensions = dict(merged.get('extensions') or {})
    extensions.update(vendor_extensions)
    merged['extensions'] = extensions
    return merged
