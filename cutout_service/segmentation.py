"""
Segmentation providers.

A provider turns a `RasterImage` into a person/background `SegmentationMask`.
The default provider:
 - loads a TorchScript person-matting checkpoint from `SEGMENTATION_MODEL_PATH`,
 - keeps a single instance on the best available device,
 - resizes by the longest edge and normalizes input to [-1, 1],
 - thresholds the predicted matte back at the source resolution.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
import math
from pathlib import Path
from threading import Lock
from typing import Optional, Tuple

import numpy as np
from PIL import Image
import torch
import torch.nn.functional as F

from . import config
from .errors import ModelNotReady
from .raster import RasterImage, SegmentationMask

logger = logging.getLogger(__name__)


class SegmentationProvider(ABC):
    """Asynchronous person-segmentation backend."""

    @property
    @abstractmethod
    def ready(self) -> bool:
        """True once `initialize` has completed successfully."""

    @abstractmethod
    async def initialize(self) -> None:
        """Load model resources. Raises when the model cannot be made available."""

    @abstractmethod
    async def segment(self, raster: RasterImage) -> SegmentationMask:
        """Classify every pixel of `raster`, row-major, as foreground or background."""


def select_device() -> torch.device:
    """Prefer CUDA -> Apple MPS -> CPU."""
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():  # type: ignore[attr-defined]
        return torch.device("mps")
    return torch.device("cpu")


def compute_input_size(width: int, height: int, max_long_edge: int) -> Tuple[int, int]:
    """Constrain the longest edge while keeping the aspect ratio."""
    if max_long_edge <= 0:
        return width, height
    long_edge = max(width, height)
    if long_edge <= max_long_edge:
        return width, height
    scale = max_long_edge / long_edge
    new_w = int(width * scale)
    new_h = int(height * scale)
    # Encoder/decoder stride chains expect sides divisible by 32.
    new_w = max(32, math.ceil(new_w / 32) * 32)
    new_h = max(32, math.ceil(new_h / 32) * 32)
    return new_w, new_h


def to_model_input(raster: RasterImage, max_long_edge: int, device: torch.device) -> torch.Tensor:
    """RGB channels resized on the long edge, normalized to [-1, 1], NCHW."""
    rgb = Image.fromarray(raster.pixels[..., :3].copy())
    new_w, new_h = compute_input_size(raster.width, raster.height, max_long_edge)
    if (new_w, new_h) != raster.size:
        rgb = rgb.resize((new_w, new_h), Image.BILINEAR)

    im_np = np.asarray(rgb).astype("float32") / 255.0
    im_np = (im_np - 0.5) / 0.5
    im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW
    return torch.from_numpy(np.ascontiguousarray(im_np)).unsqueeze(0).to(device)


def load_torchscript_model(model_path: Path, device: torch.device) -> torch.nn.Module:
    model = torch.jit.load(str(model_path), map_location=device)
    model.eval()
    return model


class TorchScriptSegmentationProvider(SegmentationProvider):
    """Runs a scripted matting model that maps (1,3,H,W) input to a (1,1,H,W) matte."""

    def __init__(self, settings: Optional[config.Settings] = None) -> None:
        self._settings = settings or config.get_settings()
        self._model: Optional[torch.nn.Module] = None
        self._device = select_device()
        self._lock = Lock()

    @property
    def ready(self) -> bool:
        return self._model is not None

    @property
    def device(self) -> torch.device:
        return self._device

    def _load(self) -> None:
        with self._lock:
            if self._model is not None:
                return
            model_path = self._settings.segmentation_model_path
            if model_path is None:
                raise ValueError("SEGMENTATION_MODEL_PATH is required")
            if not model_path.exists():
                raise FileNotFoundError(f"Segmentation checkpoint not found at {model_path}")
            logger.info("segmentation: loading TorchScript model from %s", model_path)
            self._model = load_torchscript_model(model_path, self._device)
            logger.info("segmentation: model loaded on device %s", self._device)

    async def initialize(self) -> None:
        await asyncio.to_thread(self._load)

    def _predict(self, raster: RasterImage) -> np.ndarray:
        model = self._model
        if model is None:
            raise ModelNotReady()
        tensor = to_model_input(raster, self._settings.segmentation_max_long_edge, self._device)
        with torch.no_grad():
            output = model(tensor)
        if isinstance(output, (tuple, list)):
            output = output[-1]
        matte = F.interpolate(
            output,
            size=(raster.height, raster.width),
            mode="bilinear",
            align_corners=False,
        )
        scores = matte[0, 0].detach().cpu().numpy()
        return np.clip(scores, 0.0, 1.0)

    async def segment(self, raster: RasterImage) -> SegmentationMask:
        scores = await asyncio.to_thread(self._predict, raster)
        mask = SegmentationMask.from_scores(scores, self._settings.segmentation_threshold)
        logger.debug(
            "segmentation: %dx%d foreground fraction=%.4f",
            mask.width,
            mask.height,
            mask.foreground_fraction,
        )
        return mask


def build_provider(settings: Optional[config.Settings] = None) -> SegmentationProvider:
    return TorchScriptSegmentationProvider(settings)
