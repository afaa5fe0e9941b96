"""Alpha compositing of a raster with a person/background segmentation mask."""

from __future__ import annotations

import logging

import numpy as np

from .errors import DimensionMismatch
from .raster import RasterImage, SegmentationMask

logger = logging.getLogger(__name__)


def composite(source: RasterImage, mask: SegmentationMask) -> RasterImage:
    """
    Make every background pixel of `source` fully transparent.

    RGB bytes are copied unchanged and foreground pixels keep their source
    alpha, so an all-foreground mask returns a raster equal to `source`.

    Raises:
        DimensionMismatch: when the mask was not computed for an image of
            this size.
    """
    if mask.size != source.size:
        raise DimensionMismatch(
            f"mask is {mask.width}x{mask.height} but image is {source.width}x{source.height}"
        )

    pixels = source.pixels.copy()
    pixels[..., 3] = np.where(mask.foreground, pixels[..., 3], 0)

    logger.debug(
        "composite: %dx%d foreground fraction=%.4f",
        source.width,
        source.height,
        mask.foreground_fraction,
    )
    return RasterImage.from_array(pixels)
