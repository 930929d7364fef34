"""
Atlas compositor

Copies decoded RGBA sources into a transparent atlas buffer at the packed
placements. No filtering happens here: sources must already have the
placement's (un-rotated) size.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

import numpy as np

from vrm_atlas.errors import CompositeFailedError
from vrm_atlas.texturing.packer import PackedPlacement

logger = logging.getLogger(__name__)


@dataclass
class RawImage:
    """Decoded RGBA8 image; pixels has shape (height, width, 4)."""
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        expected = (self.height, self.width, 4)
        if self.pixels.shape != expected:
            raise ValueError(f"Pixel array shape {self.pixels.shape} does not match {expected}")

    @classmethod
    def blank(cls, width: int, height: int) -> "RawImage":
        """Fully transparent image."""
        return cls(width, height, np.zeros((height, width, 4), dtype=np.uint8))


def composite(
    width: int,
    height: int,
    placements: Iterable[PackedPlacement],
    sources: Mapping[int, RawImage],
) -> RawImage:
    """
    Assemble an atlas.

    Args:
        width: Atlas width
        height: Atlas height
        placements: Packed rectangles; placement.index selects the source
        sources: Decoded images keyed by placement index

    Returns:
        New RawImage of width x height

    Raises:
        CompositeFailedError: Missing source, size mismatch or placement outside the atlas
    """
    atlas = RawImage.blank(width, height)

    for placement in placements:
        source = sources.get(placement.index)
        if source is None:
            raise CompositeFailedError(f"No source image for placement {placement.index}")
        if (source.width, source.height) != (placement.source_width, placement.source_height):
            raise CompositeFailedError(
                f"Source {placement.index} is {source.width}x{source.height}, "
                f"placement expects {placement.source_width}x{placement.source_height}"
            )
        if (placement.x < 0 or placement.y < 0
                or placement.x + placement.width > width
                or placement.y + placement.height > height):
            raise CompositeFailedError(f"Placement {placement.index} lies outside the {width}x{height} atlas")

        # clockwise quarter turn: footprint is source height wide, source width tall
        pixels = np.rot90(source.pixels, k=-1) if placement.rotated else source.pixels
        atlas.pixels[
            placement.y:placement.y + placement.height,
            placement.x:placement.x + placement.width,
        ] = pixels

    logger.debug(f"Composited {width}x{height} atlas")
    return atlas
