"""
Raster codec: image bytes <-> `RasterImage`.

Decoding honours EXIF orientation and always yields RGBA so every later
stage can rely on a four-channel buffer.
"""

from __future__ import annotations

import base64
from io import BytesIO
import logging

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeFailure, EncodeFailure
from .raster import RasterImage

logger = logging.getLogger(__name__)

PNG_MEDIA_TYPE = "image/png"


def decode(image_bytes: bytes) -> RasterImage:
    """Decode JPEG/PNG bytes into an RGBA raster."""
    if not image_bytes:
        raise DecodeFailure("Empty image data")
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            image = ImageOps.exif_transpose(image)
            rgba = image.convert("RGBA")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError, ValueError) as exc:
        raise DecodeFailure("Invalid image data") from exc

    raster = RasterImage.from_array(np.asarray(rgba))
    logger.debug("codec: decoded %dx%d image", raster.width, raster.height)
    return raster


def encode_png(raster: RasterImage) -> bytes:
    """Encode a raster as PNG bytes, alpha channel included."""
    try:
        out = Image.fromarray(raster.pixels.copy())
        buf = BytesIO()
        out.save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodeFailure("Could not encode PNG") from exc
    return buf.getvalue()


def to_data_url(png_bytes: bytes, media_type: str = PNG_MEDIA_TYPE) -> str:
    return f"data:{media_type};base64," + base64.b64encode(png_bytes).decode("ascii")
