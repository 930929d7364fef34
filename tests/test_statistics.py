"""
Tests for model statistics
"""

import pytest

from conftest import raw_glb
from vrm_atlas import calculate_statistics
from vrm_atlas.errors import InvalidContainerError


class TestStatistics:

    def test_counts(self, builder):
        texture = builder.add_texture(64, 32)
        material = builder.add_vrm1_material("Body", base_color=texture)
        builder.add_mesh(material, uvs=[(0.0, 0.0)] * 6)
        document, binary = builder.build("vrm0")
        document["skins"] = [{"joints": [0, 1, 2]}, {"joints": [2, 3]}]

        stats = calculate_statistics(raw_glb(document, binary))

        assert stats.schema_version == "vrm0"
        assert stats.polygon_count == 2
        assert stats.bone_count == 4
        assert stats.image_count == 1
        assert stats.vram_estimate_mb == pytest.approx(64 * 32 * 4 * 4 / 3 / (1024 * 1024))

    def test_indexed_and_strip_primitives(self, builder):
        builder.add_accessor([(0.0, 0.0, 0.0)] * 5, accessor_type="VEC3")
        indices = builder.add_accessor([0.0] * 9, accessor_type="SCALAR")
        document, binary = builder.build(schema=None)
        document["meshes"] = [{"primitives": [
            {"attributes": {"POSITION": 0}, "indices": indices},
            {"attributes": {"POSITION": 0}, "mode": 5},
            {"attributes": {"POSITION": 0}, "mode": 1},
        ]}]

        stats = calculate_statistics(raw_glb(document, binary))

        # 9 indices -> 3 triangles, 5-vertex strip -> 3, lines -> 0
        assert stats.polygon_count == 6
        assert stats.schema_version is None

    def test_undecodable_image_is_skipped(self, builder):
        document, binary = builder.build("vrm1")
        document["images"] = [{"uri": "external.png"}]
        stats = calculate_statistics(raw_glb(document, binary))
        assert stats.image_count == 1
        assert stats.vram_estimate_mb == 0.0

    def test_file_size(self, two_material_vrm1):
        data = two_material_vrm1.to_glb("vrm1")
        assert calculate_statistics(data).file_size_mb == pytest.approx(len(data) / (1024 * 1024))

    def test_not_a_glb(self):
        with pytest.raises(InvalidContainerError):
            calculate_statistics(b"glTF")
