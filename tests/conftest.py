"""Shared fixtures: synthetic rasters and an in-memory segmentation provider."""

from __future__ import annotations

import asyncio
from io import BytesIO
from typing import Callable, Optional

import numpy as np
from PIL import Image
import pytest

from cutout_service import codec
from cutout_service.config import Settings
from cutout_service.raster import RasterImage, SegmentationMask
from cutout_service.segmentation import SegmentationProvider


def make_raster(width: int, height: int, alpha: int = 255, seed: int = 0) -> RasterImage:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    pixels[..., 3] = alpha
    return RasterImage.from_array(pixels)


def png_bytes(raster: RasterImage) -> bytes:
    return codec.encode_png(raster)


def jpeg_bytes(width: int, height: int) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), (200, 120, 40)).save(buf, format="JPEG")
    return buf.getvalue()


def central_block_mask(width: int, height: int, block: int) -> SegmentationMask:
    fg = np.zeros((height, width), dtype=bool)
    top = (height - block) // 2
    left = (width - block) // 2
    fg[top : top + block, left : left + block] = True
    return SegmentationMask(width=width, height=height, foreground=fg)


class FakeProvider(SegmentationProvider):
    """
    Deterministic provider. Set `gate` to an `asyncio.Event` to hold
    `segment` until the test releases it.
    """

    def __init__(
        self,
        mask_factory: Optional[Callable[[RasterImage], SegmentationMask]] = None,
        fail_init: bool = False,
        fail_segment: bool = False,
    ) -> None:
        self.mask_factory = mask_factory or (
            lambda r: SegmentationMask.filled(r.width, r.height, True)
        )
        self.fail_init = fail_init
        self.fail_segment = fail_segment
        self.gate: Optional[asyncio.Event] = None
        self.init_calls = 0
        self.segment_calls = 0
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        self.init_calls += 1
        if self.fail_init:
            raise RuntimeError("checkpoint missing")
        self._ready = True

    async def segment(self, raster: RasterImage) -> SegmentationMask:
        self.segment_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_segment:
            raise RuntimeError("inference failed")
        return self.mask_factory(raster)


@pytest.fixture
def settings() -> Settings:
    return Settings(segmentation_model_path=None, debug=False, resample_method="bilinear")


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
