"""
Default image capabilities backed by Pillow.

The optimizer only ever calls these through an ImageCapabilities bundle, so
callers can swap in their own decoder, encoder or resampler.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Callable, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from vrm_atlas.errors import InvalidTextureError
from vrm_atlas.texturing.compositor import RawImage


def decode_image(data: bytes) -> RawImage:
    """
    Decode PNG/JPEG/... bytes into RGBA8.

    Raises:
        InvalidTextureError: Pillow cannot read the data
    """
    try:
        with Image.open(BytesIO(data)) as img:
            rgba = img.convert('RGBA')
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidTextureError(f"Cannot decode image: {e}") from e
    pixels = np.array(rgba, dtype=np.uint8)
    return RawImage(rgba.width, rgba.height, pixels)


def encode_png(image: RawImage, optimize: bool = False) -> bytes:
    """Encode an RGBA8 image as PNG."""
    buf = BytesIO()
    Image.fromarray(image.pixels).save(buf, format='PNG', optimize=optimize)
    return buf.getvalue()


def resize_image(image: RawImage, width: int, height: int) -> RawImage:
    """Lanczos resample to an exact size."""
    if (image.width, image.height) == (width, height):
        return image
    resized = Image.fromarray(image.pixels).resize((width, height), Image.LANCZOS)
    return RawImage(width, height, np.array(resized, dtype=np.uint8))


@dataclass
class ImageCapabilities:
    """
    Image operations the optimizer depends on.

    Attributes:
        decode: encoded bytes -> RawImage
        encode: (RawImage, optimize) -> encoded bytes
        resize: (RawImage, width, height) -> RawImage, or None to disable resampling
        mime_type: MIME type of what encode produces
    """
    decode: Callable[[bytes], RawImage] = decode_image
    encode: Callable[[RawImage, bool], bytes] = encode_png
    resize: Optional[Callable[[RawImage, int, int], RawImage]] = resize_image
    mime_type: str = "image/png"


def default_capabilities() -> ImageCapabilities:
    return ImageCapabilities()
