"""
Tests for the NFDH texture packer
"""

import random
from itertools import combinations

import pytest

from vrm_atlas.errors import PackingFailedError
from vrm_atlas.texturing.packer import pack, pack_textures_nfdh


def assert_valid(result):
    """No overlaps and everything inside the atlas"""
    for a, b in combinations(result.placements, 2):
        assert not a.intersects(b), f"{a} overlaps {b}"
    for p in result.placements:
        assert 0 <= p.x and p.x + p.width <= result.atlas_width
        assert 0 <= p.y and p.y + p.height <= result.atlas_height


class TestPack:
    """Single packing attempt"""

    def test_three_squares(self):
        """512/256/128 squares fit a 1024 atlas with padding 4"""
        result = pack_textures_nfdh([(512, 512), (256, 256), (128, 128)], 1024, 1024, padding=4)

        assert len(result.placements) == 3
        assert result.scale == 1.0
        assert_valid(result)
        assert sum(p.width * p.height for p in result.placements) <= 1024 * 1024
        assert all(p.x >= 4 and p.y >= 4 for p in result.placements)
        assert [(p.width, p.height) for p in result.placements] == [(512, 512), (256, 256), (128, 128)]

    def test_neighbours_are_two_paddings_apart(self):
        result = pack([(100, 100), (100, 100)], 512, 512, padding=3)
        first, second = sorted(result.placements, key=lambda p: p.x)
        assert first.x == 3
        assert second.x == first.x + first.width + 6

    def test_tall_rectangle_is_rotated(self):
        result = pack([(100, 300)], 512, 512)
        placement = result.placements[0]
        assert placement.rotated
        assert (placement.width, placement.height) == (300, 100)
        assert (placement.source_width, placement.source_height) == (100, 300)
        assert (placement.original_width, placement.original_height) == (100, 300)

    def test_rotated_footprint_after_downscaling(self):
        """Footprint is in atlas orientation, source size un-rotated"""
        result = pack_textures_nfdh([(100, 300)], 200, 200)
        placement = result.placements[0]
        assert placement.rotated
        assert (placement.width, placement.height) == (196, 65)
        assert (placement.source_width, placement.source_height) == (65, 196)
        assert (placement.original_width, placement.original_height) == (100, 300)
        assert placement.x + placement.width <= result.atlas_width

    def test_top_down_fill(self):
        """Short items stack against the ceiling of a tall shelf"""
        result = pack([(600, 600), (400, 300), (400, 300)], 1024, 1024)
        by_index = {p.index: p for p in result.placements}

        assert (by_index[1].x, by_index[1].y) == (600, 0)
        assert (by_index[2].x, by_index[2].y) == (624, 300)
        assert max(p.y + p.height for p in result.placements) == 600
        assert_valid(result)

    def test_too_large_raises(self):
        with pytest.raises(PackingFailedError):
            pack([(1024, 1024)], 512, 512)

    def test_empty_input(self):
        with pytest.raises(PackingFailedError):
            pack_textures_nfdh([], 512, 512)

    def test_zero_size(self):
        with pytest.raises(ValueError):
            pack([(0, 10)], 512, 512)

    def test_efficiency(self):
        result = pack([(256, 256)], 512, 512)
        assert result.efficiency == pytest.approx(0.25)


class TestRetry:
    """Downscaling retry ladder"""

    def test_oversized_texture_is_scaled_down(self):
        """1024 square into a 512 atlas succeeds at a smaller scale"""
        result = pack_textures_nfdh([(1024, 1024)], 512, 512)

        placement = result.placements[0]
        assert result.scale < 1.0
        assert placement.width <= 512
        assert (placement.original_width, placement.original_height) == (1024, 1024)
        assert_valid(result)

    def test_each_retry_shrinks_by_ten_percent(self):
        result = pack_textures_nfdh([(1000, 1000)], 950, 950)
        assert result.scale == pytest.approx(0.9)
        assert result.placements[0].width == 900

    def test_gives_up_below_one_pixel(self):
        """Padding alone is larger than the atlas, so no scale helps"""
        with pytest.raises(PackingFailedError) as exc_info:
            pack_textures_nfdh([(4, 4)], 8, 8, padding=4)
        assert 0.0 < exc_info.value.scale < 0.3


class TestProperties:
    """Invariants over random inputs"""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_random_sets_never_overlap(self, seed):
        rng = random.Random(seed)
        sizes = [(rng.randint(8, 200), rng.randint(8, 200)) for _ in range(30)]
        result = pack_textures_nfdh(sizes, 1024, 1024, padding=2)

        assert sorted(p.index for p in result.placements) == list(range(30))
        assert_valid(result)

    def test_non_square_atlas(self):
        sizes = [(120, 60), (60, 120), (200, 40), (30, 30)]
        result = pack_textures_nfdh(sizes, 512, 128, padding=1)
        assert_valid(result)
