"""
NFDH texture packer

Next-Fit Decreasing Height with floor/ceiling shelf filling:

    +--------------------------------+  <- ceil
    |            [top 2][   top 1   ]|     filled right -> left from the ceiling
    |[ bottom 1 ][bottom 2]          |     filled left -> right from the floor
    +--------------------------------+  <- floor

Packing runs in normalized [0, 1] space so one code path serves every atlas
resolution. Rectangles taller than wide are rotated first. Every rectangle
reserves `padding` pixels on each side, so neighbours end up two paddings
apart and the first item on a shelf edge one padding from the border.

pack_textures_nfdh() retries at 0.9x scale until everything fits.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from vrm_atlas.errors import PackingFailedError

logger = logging.getLogger(__name__)

EPSILON = 1e-9
RETRY_SCALE_STEP = 0.9

Size = Tuple[int, int]


@dataclass
class PackedPlacement:
    """
    Where one source rectangle landed in the atlas.

    x/y/width/height describe the pixel footprint inside the atlas, in atlas
    orientation. When rotated is set the source was turned 90 degrees
    clockwise to fit, so width and height are swapped relative to the
    source: use source_width/source_height for the un-rotated size the
    source is resampled to, and original_width/original_height for its
    unscaled size.
    """
    index: int
    x: int
    y: int
    width: int
    height: int
    original_width: int
    original_height: int
    rotated: bool = False

    @property
    def source_width(self) -> int:
        """Width the source must have (un-rotated) before it is copied in."""
        return self.height if self.rotated else self.width

    @property
    def source_height(self) -> int:
        return self.width if self.rotated else self.height

    def intersects(self, other: "PackedPlacement") -> bool:
        return (
            self.x < other.x + other.width
            and other.x < self.x + self.width
            and self.y < other.y + other.height
            and other.y < self.y + self.height
        )


@dataclass
class PackingResult:
    atlas_width: int
    atlas_height: int
    placements: List[PackedPlacement] = field(default_factory=list)
    scale: float = 1.0

    @property
    def efficiency(self) -> float:
        """Fraction of the atlas covered by placed rectangles."""
        area = self.atlas_width * self.atlas_height
        if area == 0:
            return 0.0
        used = sum(p.width * p.height for p in self.placements)
        return used / area


@dataclass
class _Island:
    index: int
    width_px: int
    height_px: int
    w: float  # normalized, padding included
    h: float
    rotated: bool
    x: float = 0.0
    y: float = 0.0


class _Shelf:
    """One horizontal band of the atlas with bottom and top fill lists."""

    def __init__(self, floor: float, height: float, width: float = 1.0):
        self.floor = floor
        self.height = height
        self.width = width
        self.lower: List[_Island] = []
        self.upper: List[_Island] = []

    @property
    def ceil(self) -> float:
        return self.floor + self.height

    def try_place(self, island: _Island) -> bool:
        """Place bottom-up if possible, otherwise top-down. Returns True on success."""
        if self.height + EPSILON < island.h:
            return False

        # bottom, growing right from the last lower item
        x_min = self.lower[-1].x + self.lower[-1].w if self.lower else 0.0
        x_max = self._ceil_with_empty(max(self.floor, min(self.floor + island.h, self.ceil)))
        if x_max - x_min + EPSILON >= island.w:
            island.x = x_min
            island.y = self.floor
            self.lower.append(island)
            return True

        # top, growing left from the last upper item
        x_min = self._floor_with_empty(max(self.floor, min(self.ceil - island.h, self.ceil)))
        x_max = self.upper[-1].x if self.upper else self.width
        if x_max - x_min + EPSILON >= island.w:
            island.x = x_max - island.w
            island.y = self.ceil - island.h
            self.upper.append(island)
            return True

        return False

    def _floor_with_empty(self, target: float) -> float:
        """Leftmost free x at height `target`, looking at bottom items only."""
        x_min = 0.0
        for island in self.lower:
            if target - self.floor < island.h - EPSILON:
                x_min = max(x_min, island.x + island.w)
        return x_min

    def _ceil_with_empty(self, target: float) -> float:
        """Rightmost free x at height `target`, looking at top items only."""
        x_max = self.width
        for island in self.upper:
            if self.ceil - target < island.h - EPSILON:
                x_max = min(x_max, island.x)
        return x_max


def _pack_once(
    sizes: Sequence[Size],
    bound_width: int,
    bound_height: int,
    padding: int,
) -> Optional[List[_Island]]:
    islands = []
    for index, (width, height) in enumerate(sizes):
        rotated = height > width
        if rotated:
            width, height = height, width
        islands.append(_Island(
            index=index,
            width_px=width,
            height_px=height,
            w=(width + 2 * padding) / bound_width,
            h=(height + 2 * padding) / bound_height,
            rotated=rotated,
        ))

    shelves: List[_Shelf] = []
    for island in sorted(islands, key=lambda i: i.h, reverse=True):
        if any(shelf.try_place(island) for shelf in shelves):
            continue
        floor = shelves[-1].ceil if shelves else 0.0
        shelf = _Shelf(floor, island.h)
        if not shelf.try_place(island):
            return None  # wider than the atlas
        shelves.append(shelf)

    if shelves and shelves[-1].ceil > 1.0 + EPSILON:
        return None
    return islands


def _to_result(
    islands: List[_Island],
    originals: Sequence[Size],
    bound_width: int,
    bound_height: int,
    padding: int,
    scale: float,
) -> PackingResult:
    placements = []
    for island in islands:
        original_width, original_height = originals[island.index]
        placements.append(PackedPlacement(
            index=island.index,
            x=int(round(island.x * bound_width)) + padding,
            y=int(round(island.y * bound_height)) + padding,
            width=island.width_px,
            height=island.height_px,
            original_width=original_width,
            original_height=original_height,
            rotated=island.rotated,
        ))
    return PackingResult(bound_width, bound_height, placements, scale)


def _validate_sizes(sizes: Sequence[Size]) -> None:
    if not sizes:
        raise PackingFailedError("No textures to pack")
    for width, height in sizes:
        if width <= 0 or height <= 0:
            raise ValueError(f"Cannot pack a {width}x{height} rectangle")


def pack(
    sizes: Sequence[Size],
    bound_width: int,
    bound_height: int,
    padding: int = 0,
) -> PackingResult:
    """
    Pack (width, height) rectangles into one atlas at their given size.

    Raises:
        PackingFailedError: The rectangles do not fit
    """
    _validate_sizes(sizes)
    islands = _pack_once(sizes, bound_width, bound_height, padding)
    if islands is None:
        raise PackingFailedError(
            f"{len(sizes)} rectangle(s) do not fit in {bound_width}x{bound_height}", 1.0
        )
    return _to_result(islands, sizes, bound_width, bound_height, padding, 1.0)


def pack_textures_nfdh(
    sizes: Sequence[Size],
    bound_width: int,
    bound_height: int,
    padding: int = 0,
) -> PackingResult:
    """
    Pack rectangles, shrinking all of them by 0.9x per attempt until they fit.

    Args:
        sizes: (width, height) per source, in pixels
        bound_width: Atlas width
        bound_height: Atlas height
        padding: Pixels reserved on every side of each rectangle

    Returns:
        PackingResult whose placements carry the original (unscaled) sizes

    Raises:
        PackingFailedError: Still no fit once the smallest rectangle would drop below 1px
    """
    _validate_sizes(sizes)
    smallest = min(min(width, height) for width, height in sizes)

    scale = 1.0
    while True:
        scaled = [
            (max(1, math.floor(width * scale)), max(1, math.floor(height * scale)))
            for width, height in sizes
        ]
        islands = _pack_once(scaled, bound_width, bound_height, padding)
        if islands is not None:
            result = _to_result(islands, sizes, bound_width, bound_height, padding, scale)
            if scale < 1.0:
                logger.info(f"Packed {len(sizes)} texture(s) after downscaling to {scale:.3f}x")
            logger.debug(f"Packing efficiency: {result.efficiency:.1%}")
            return result

        next_scale = scale * RETRY_SCALE_STEP
        if math.floor(smallest * next_scale) < 1:
            raise PackingFailedError(
                f"Could not pack {len(sizes)} texture(s) into {bound_width}x{bound_height} "
                f"(last scale {scale:.4f})",
                scale,
            )
        logger.debug(f"Packing failed at scale {scale:.3f}, retrying at {next_scale:.3f}")
        scale = next_scale
