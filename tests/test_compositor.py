"""
Tests for the atlas compositor and Pillow image capabilities
"""

import numpy as np
import pytest

from conftest import png_bytes
from vrm_atlas.errors import CompositeFailedError, InvalidTextureError
from vrm_atlas.texturing.compositor import RawImage, composite
from vrm_atlas.texturing.image_io import decode_image, encode_png, resize_image
from vrm_atlas.texturing.packer import PackedPlacement


def solid(width, height, color):
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :] = color
    return RawImage(width, height, pixels)


class TestComposite:
    """Copying sources into the atlas"""

    def test_copies_at_offset(self):
        placement = PackedPlacement(0, x=2, y=3, width=4, height=2, original_width=4, original_height=2)
        atlas = composite(10, 8, [placement], {0: solid(4, 2, (255, 0, 0, 255))})

        assert (atlas.width, atlas.height) == (10, 8)
        assert atlas.pixels[3:5, 2:6].tolist() == [[[255, 0, 0, 255]] * 4] * 2
        assert atlas.pixels[0, 0].tolist() == [0, 0, 0, 0]
        assert atlas.pixels[:, :, 3].sum() == 255 * 8

    def test_rotated_source(self):
        """Rotated placements receive the source turned clockwise"""
        source = RawImage.blank(2, 3)
        source.pixels[0, 0] = (1, 2, 3, 255)  # top-left
        placement = PackedPlacement(0, 0, 0, width=3, height=2, original_width=2, original_height=3, rotated=True)

        atlas = composite(3, 2, [placement], {0: source})

        # clockwise: top-left ends up top-right
        assert atlas.pixels[0, 2].tolist() == [1, 2, 3, 255]
        assert atlas.pixels[:, :, 3].sum() == 255

    def test_size_mismatch(self):
        placement = PackedPlacement(0, 0, 0, width=4, height=4, original_width=8, original_height=8)
        with pytest.raises(CompositeFailedError):
            composite(8, 8, [placement], {0: RawImage.blank(8, 8)})

    def test_missing_source(self):
        placement = PackedPlacement(3, 0, 0, width=4, height=4, original_width=4, original_height=4)
        with pytest.raises(CompositeFailedError):
            composite(8, 8, [placement], {})

    def test_outside_atlas(self):
        placement = PackedPlacement(0, 6, 6, width=4, height=4, original_width=4, original_height=4)
        with pytest.raises(CompositeFailedError):
            composite(8, 8, [placement], {0: RawImage.blank(4, 4)})


class TestImageIO:
    """Pillow-backed decode/encode/resize"""

    def test_decode_png(self):
        image = decode_image(png_bytes(5, 3, (10, 20, 30, 255)))
        assert (image.width, image.height) == (5, 3)
        assert image.pixels[1, 1].tolist() == [10, 20, 30, 255]

    def test_decode_garbage(self):
        with pytest.raises(InvalidTextureError):
            decode_image(b"definitely not an image")

    def test_encode_then_decode(self):
        image = solid(4, 4, (0, 128, 255, 200))
        assert np.array_equal(decode_image(encode_png(image)).pixels, image.pixels)

    def test_resize(self):
        resized = resize_image(solid(8, 8, (50, 50, 50, 255)), 4, 2)
        assert (resized.width, resized.height) == (4, 2)
        assert resized.pixels.shape == (2, 4, 4)

    def test_raw_image_shape_check(self):
        with pytest.raises(ValueError):
            RawImage(4, 4, np.zeros((2, 2, 4), dtype=np.uint8))
