"""
Raster resampling to arbitrary target dimensions.

Each axis is stretched independently over the full source extent. All four
channels go through the same filter, so alpha is interpolated exactly like
colour and opaque regions stay opaque.
"""

from __future__ import annotations

import logging
import math
import numbers
from typing import Optional

import cv2
import numpy as np

from . import config
from .errors import InvalidDimensions
from .raster import RasterImage

logger = logging.getLogger(__name__)

INTERPOLATION = {
    "nearest": cv2.INTER_NEAREST,
    "bilinear": cv2.INTER_LINEAR,
    "area": cv2.INTER_AREA,
}


def _validate_dimension(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidDimensions(f"{name} must be a positive integer, got {value!r}")
    if isinstance(value, numbers.Integral):
        value = int(value)
    else:
        value = float(value)
        if not math.isfinite(value) or not value.is_integer():
            raise InvalidDimensions(f"{name} must be a positive integer, got {value!r}")
        value = int(value)
    if value <= 0:
        raise InvalidDimensions(f"{name} must be a positive integer, got {value!r}")
    return value


def resample(
    source: RasterImage,
    target_width,
    target_height,
    method: Optional[str] = None,
    max_pixels: Optional[int] = None,
) -> RasterImage:
    """
    Return a new raster of exactly `target_width` x `target_height`.

    Raises:
        InvalidDimensions: when either target is not a strictly positive,
            finite integer, or the output would exceed `max_pixels`
            (defaults to the `max_output_pixels` setting).
        ValueError: for an unknown `method`.
    """
    width = _validate_dimension(target_width, "width")
    height = _validate_dimension(target_height, "height")

    if max_pixels is None:
        max_pixels = config.get_settings().max_output_pixels
    if width * height > max_pixels:
        raise InvalidDimensions(
            f"{width}x{height} exceeds the {max_pixels} pixel output limit"
        )

    method = (method or config.get_settings().resample_method).lower()
    if method not in INTERPOLATION:
        raise ValueError(f"Unknown resample method '{method}'")

    if (width, height) == source.size:
        return source

    resized = cv2.resize(
        np.ascontiguousarray(source.pixels),
        (width, height),
        interpolation=INTERPOLATION[method],
    )
    # cv2 keeps the channel axis for 4-channel input, including 1x1 output.
    resized = resized.reshape(height, width, 4)
    logger.debug(
        "resample: %dx%d -> %dx%d method=%s",
        source.width,
        source.height,
        width,
        height,
        method,
    )
    return RasterImage.from_array(resized)
