"""
Tests for the scenegraph model: schema detection, insertion and delete-and-compact
"""

import base64

import pytest

from conftest import png_bytes
from vrm_atlas.errors import InvalidTextureError, UnsupportedSchemaError
from vrm_atlas.scenegraph import Scenegraph, SchemaVersion, detect_schema_version


def all_texture_refs(graph):
    """Every texture index referenced anywhere in the document."""
    return [
        (holder[key]["index"] if is_info else holder[key])
        for holder, key, is_info in graph._texture_ref_sites()
    ]


class TestSchemaDetection:
    """detect_schema_version"""

    def test_vrm1_from_extensions(self):
        assert detect_schema_version({"extensions": {"VRMC_vrm": {}}}) == SchemaVersion.VRM1

    def test_vrm0_from_extensions_used(self):
        assert detect_schema_version({"extensionsUsed": ["VRM"]}) == SchemaVersion.VRM0

    def test_vendor_extensions_count(self):
        """Markers extracted by the codec still count"""
        assert detect_schema_version({}, {"VRM": {}}) == SchemaVersion.VRM0

    def test_plain_gltf(self):
        assert detect_schema_version({"asset": {"version": "2.0"}}) is None

    def test_unsupported_schema_raises(self):
        """Constructing a scenegraph for a plain glTF fails"""
        with pytest.raises(UnsupportedSchemaError):
            Scenegraph({"asset": {"version": "2.0"}})

    def test_schema_from_glb(self, builder):
        builder.add_texture()
        graph = Scenegraph.from_glb(builder.to_glb("vrm0"))
        assert graph.schema_version == SchemaVersion.VRM0
        assert graph.material_properties == []


class TestImageAccess:
    """Reading and inserting images"""

    def test_image_bytes_from_buffer_view(self, builder):
        builder.add_texture(8, 8)
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary)
        assert graph.texture_image_bytes(0) == png_bytes(8, 8)

    def test_image_bytes_from_data_uri(self, builder):
        document, binary = builder.build("vrm1")
        data = png_bytes(4, 4)
        document["images"] = [{"uri": "data:image/png;base64," + base64.b64encode(data).decode()}]
        document["textures"] = [{"source": 0}]
        graph = Scenegraph(document, binary)
        assert graph.texture_image_bytes(0) == data

    def test_external_uri_is_invalid(self, builder):
        document, binary = builder.build("vrm1")
        document["images"] = [{"uri": "textures/body.png"}]
        document["textures"] = [{"source": 0}]
        graph = Scenegraph(document, binary)
        with pytest.raises(InvalidTextureError):
            graph.texture_image_bytes(0)

    def test_texture_without_source(self, builder):
        document, binary = builder.build("vrm1")
        document["textures"] = [{}]
        with pytest.raises(InvalidTextureError):
            Scenegraph(document, binary).texture_image_bytes(0)

    def test_add_image_appends_aligned_view(self, builder):
        builder.add_texture()
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary + b"\x01")  # misaligned tail

        image = graph.add_image(b"png!", "image/png", name="atlas")
        texture = graph.add_texture(image, name="atlas")

        view = graph.buffer_views[graph.images[image]["bufferView"]]
        assert view["byteOffset"] % 4 == 0
        assert graph.image_bytes(image) == b"png!"
        assert graph.textures[texture]["source"] == image
        assert graph.document["buffers"][0]["byteLength"] == len(graph.binary)


class TestDeleteAndCompact:
    """Index renumbering on deletion"""

    def test_reference_above_deleted_index_is_decremented(self, builder):
        """Material on texture 2 of 5 points at 1 after texture 0 goes"""
        for _ in range(5):
            builder.add_texture()
        builder.add_vrm1_material("Body", base_color=2)
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary)

        graph.delete_texture(0)

        assert len(graph.textures) == 4
        assert graph.materials[0]["pbrMetallicRoughness"]["baseColorTexture"]["index"] == 1

    def test_reference_equal_to_deleted_index_is_cleared(self, builder):
        builder.add_texture()
        builder.add_texture()
        builder.add_vrm1_material("Body", base_color=0, mtoon={"shadeMultiplyTexture": 1})
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary)

        graph.delete_texture(0)

        material = graph.materials[0]
        assert "baseColorTexture" not in material["pbrMetallicRoughness"]
        assert material["extensions"]["VRMC_materials_mtoon"]["shadeMultiplyTexture"]["index"] == 0

    def test_vrm0_texture_properties_renumbered(self, builder):
        for _ in range(3):
            builder.add_texture()
        builder.add_vrm0_material("Face", {"_MainTex": 2, "_ShadeTexture": 1})
        document, binary = builder.build("vrm0")
        graph = Scenegraph(document, binary)

        graph.delete_texture(1)

        properties = graph.material_properties[0]["textureProperties"]
        assert properties == {"_MainTex": 1}
        assert graph.materials[0]["pbrMetallicRoughness"]["baseColorTexture"]["index"] == 1

    def test_owned_image_is_deleted_and_sources_renumbered(self, builder):
        for _ in range(3):
            builder.add_texture()
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary)

        graph.delete_texture(0)

        assert len(graph.images) == 2
        assert [t["source"] for t in graph.textures] == [0, 1]

    def test_shared_image_is_kept(self, builder):
        builder.add_texture()
        document, binary = builder.build("vrm1")
        document["textures"].append({"source": 0, "sampler": 0})
        graph = Scenegraph(document, binary)

        graph.delete_texture(0)

        assert len(graph.images) == 1
        assert graph.textures == [{"source": 0, "sampler": 0}]

    def test_binary_is_repacked(self, builder):
        """Bytes of a dropped image disappear on to_container()"""
        builder.add_texture(64, 64)
        builder.add_texture(4, 4)
        builder.add_vrm1_material("Body", base_color=1)
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary)
        kept = graph.texture_image_bytes(1)

        graph.delete_texture(0)
        container = graph.to_container()

        assert len(container.binary) < len(binary)
        assert graph.texture_image_bytes(0) == kept
        assert graph.images[0]["bufferView"] == 0

    def test_no_dangling_references(self, builder):
        """Every remaining reference is in range after several deletions"""
        for _ in range(6):
            builder.add_texture()
        builder.add_vrm1_material("A", base_color=5, normal=3, mtoon={"rimMultiplyTexture": 1})
        builder.add_vrm1_material("B", base_color=4, emissive=0)
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary)

        for index in (4, 2, 0):
            graph.delete_texture(index)

        refs = all_texture_refs(graph)
        assert refs
        assert all(0 <= ref < len(graph.textures) for ref in refs)
        assert all(0 <= t["source"] < len(graph.images) for t in graph.textures)

    def test_usage_counts_custom_slots(self, builder):
        """Textures referenced only by MToon fields are counted"""
        builder.add_texture()
        builder.add_texture()
        builder.add_vrm1_material("Body", base_color=0, mtoon={"outlineWidthMultiplyTexture": 1})
        document, binary = builder.build("vrm1")
        graph = Scenegraph(document, binary)
        assert graph.texture_usage() == {0: 1, 1: 1}
