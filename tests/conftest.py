"""
Shared fixtures: tiny VRM 0.x / VRM 1.0 documents built in memory.
"""

import json
import struct
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

GLB_MAGIC = 0x46546C67
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942


def png_bytes(width, height, color=(255, 0, 0, 255)):
    buf = BytesIO()
    Image.new('RGBA', (width, height), color).save(buf, format='PNG')
    return buf.getvalue()


def raw_glb(document, binary=b"", extra_chunks=()):
    """Hand-rolled GLB writer, independent from the codec under test."""
    json_bytes = json.dumps(document, separators=(',', ':')).encode('utf-8')
    json_bytes += b' ' * (-len(json_bytes) % 4)
    chunks = [(CHUNK_JSON, json_bytes)]
    chunks.extend(extra_chunks)
    if binary:
        chunks.append((CHUNK_BIN, binary + b'\x00' * (-len(binary) % 4)))

    body = b"".join(struct.pack('<II', len(data), kind) + data for kind, data in chunks)
    return struct.pack('<III', GLB_MAGIC, 2, 12 + len(body)) + body


class GltfBuilder:
    """Builds a glTF document plus binary payload piece by piece."""

    def __init__(self):
        self.document = {
            "asset": {"version": "2.0", "generator": "vrm-atlas tests"},
            "buffers": [{"byteLength": 0}],
            "bufferViews": [],
            "accessors": [],
            "images": [],
            "textures": [],
            "materials": [],
            "meshes": [],
        }
        self.binary = bytearray()
        self.vrm0_properties = []

    def _view(self, data, stride=None):
        self.binary.extend(b'\x00' * (-len(self.binary) % 4))
        view = {"buffer": 0, "byteOffset": len(self.binary), "byteLength": len(data)}
        if stride:
            view["byteStride"] = stride
        self.binary.extend(data)
        self.document["bufferViews"].append(view)
        return len(self.document["bufferViews"]) - 1

    def add_texture(self, width=16, height=16, color=(255, 0, 0, 255)):
        """Add PNG image + texture, return the texture index."""
        view = self._view(png_bytes(width, height, color))
        self.document["images"].append({"bufferView": view, "mimeType": "image/png"})
        self.document["textures"].append({"source": len(self.document["images"]) - 1})
        return len(self.document["textures"]) - 1

    def add_accessor(self, values, accessor_type="VEC2", component_type=5126, with_bounds=False):
        array = np.asarray(values, dtype=np.float32)
        view = self._view(array.tobytes())
        accessor = {
            "bufferView": view,
            "componentType": component_type,
            "count": len(array),
            "type": accessor_type,
        }
        if with_bounds:
            accessor["min"] = array.min(axis=0).tolist()
            accessor["max"] = array.max(axis=0).tolist()
        self.document["accessors"].append(accessor)
        return len(self.document["accessors"]) - 1

    def add_mesh(self, material, uvs=None, uv_accessor=None):
        """Add a one-primitive mesh; returns the TEXCOORD_0 accessor index."""
        if uv_accessor is None:
            uvs = uvs if uvs is not None else [(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)]
            uv_accessor = self.add_accessor(uvs)
        count = self.document["accessors"][uv_accessor]["count"]
        position = self.add_accessor([(0.0, 0.0, 0.0)] * count, accessor_type="VEC3")
        self.document["meshes"].append({
            "primitives": [{
                "attributes": {"POSITION": position, "TEXCOORD_0": uv_accessor},
                "material": material,
            }]
        })
        return uv_accessor

    def add_vrm1_material(self, name, base_color=None, normal=None, emissive=None,
                          mtoon=None, with_mtoon=True):
        material = {"name": name, "pbrMetallicRoughness": {}}
        if base_color is not None:
            material["pbrMetallicRoughness"]["baseColorTexture"] = {"index": base_color}
        if normal is not None:
            material["normalTexture"] = {"index": normal, "scale": 1.0}
        if emissive is not None:
            material["emissiveTexture"] = {"index": emissive}
        if with_mtoon:
            extension = {"specVersion": "1.0"}
            for field, index in (mtoon or {}).items():
                extension[field] = {"index": index}
            material["extensions"] = {"VRMC_materials_mtoon": extension}
        self.document["materials"].append(material)
        return len(self.document["materials"]) - 1

    def add_vrm0_material(self, name, texture_properties, mirror_base_color=True):
        material = {"name": name, "pbrMetallicRoughness": {}}
        if mirror_base_color and "_MainTex" in texture_properties:
            material["pbrMetallicRoughness"]["baseColorTexture"] = {"index": texture_properties["_MainTex"]}
        self.document["materials"].append(material)
        self.vrm0_properties.append({
            "name": name,
            "shader": "VRM/MToon",
            "textureProperties": dict(texture_properties),
        })
        return len(self.document["materials"]) - 1

    def build(self, schema="vrm1"):
        """Return (document, binary) with the VRM extension for the schema attached."""
        document = json.loads(json.dumps(self.document))
        document["buffers"][0]["byteLength"] = len(self.binary)
        if schema == "vrm1":
            document["extensionsUsed"] = ["VRMC_vrm", "VRMC_materials_mtoon"]
            document["extensions"] = {
                "VRMC_vrm": {"specVersion": "1.0", "meta": {"name": "Test Avatar"}, "humanoid": {"humanBones": {}}}
            }
        elif schema == "vrm0":
            document["extensionsUsed"] = ["VRM"]
            document["extensions"] = {
                "VRM": {
                    "exporterVersion": "tests",
                    "meta": {"title": "Test Avatar"},
                    "materialProperties": json.loads(json.dumps(self.vrm0_properties)),
                }
            }
        return document, bytes(self.binary)

    def to_glb(self, schema="vrm1"):
        document, binary = self.build(schema)
        return raw_glb(document, binary)


@pytest.fixture
def builder():
    return GltfBuilder()


@pytest.fixture
def two_material_vrm1(builder):
    """Two MToon materials with distinct base color textures, one mesh each."""
    red = builder.add_texture(32, 32, (255, 0, 0, 255))
    blue = builder.add_texture(16, 16, (0, 0, 255, 255))
    body = builder.add_vrm1_material("Body", base_color=red)
    hair = builder.add_vrm1_material("Hair", base_color=blue)
    builder.add_mesh(body)
    builder.add_mesh(hair)
    return builder
