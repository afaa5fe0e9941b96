"""
Pipeline controller for one image-editing session.

`PipelineController` is the single owner of the session state and keeps
orchestration simple:
bytes in -> decode -> (segment + composite) -> (resample) -> PNG out.

Decode, segmentation and encode are the only stages that suspend. A load
that commits bumps the generation counter, and any in-flight operation that
started before it is stale: its result is discarded instead of applied.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import itertools
import logging
from pathlib import Path
from typing import Dict, Optional

import cv2
import numpy as np

from . import codec, config
from .compositing import composite
from .errors import (
    ModelNotReady,
    NoImageLoaded,
    OperationInProgress,
    StaleResult,
)
from .intake import validate_upload
from .raster import RasterImage, SegmentationMask
from .resampling import resample
from .segmentation import SegmentationProvider

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    IDLE = "idle"
    DECODING = "decoding"
    READY = "ready"
    SEGMENTING = "segmenting"
    COMPOSITING = "compositing"
    RESAMPLING = "resampling"
    EXPORTING = "exporting"


@dataclass
class PipelineState:
    original_raster: Optional[RasterImage] = None
    working_raster: Optional[RasterImage] = None
    model_ready: bool = False
    busy: bool = False
    stage: PipelineStage = PipelineStage.IDLE
    generation: int = 0


@dataclass(frozen=True)
class PipelineSnapshot:
    """Read-only view handed to the presentation layer."""

    original_raster: Optional[RasterImage]
    working_raster: Optional[RasterImage]
    model_ready: bool
    busy: bool
    stage: PipelineStage
    generation: int

    @property
    def has_image(self) -> bool:
        return self.working_raster is not None


@dataclass(frozen=True)
class ExportResult:
    data: bytes
    filename: str
    media_type: str = codec.PNG_MEDIA_TYPE

    @property
    def data_url(self) -> str:
        return codec.to_data_url(self.data, self.media_type)


class PipelineController:
    def __init__(
        self,
        provider: SegmentationProvider,
        settings: Optional[config.Settings] = None,
    ) -> None:
        self._provider = provider
        self._settings = settings or config.get_settings()
        self._state = PipelineState()
        self._inflight: Dict[int, PipelineStage] = {}
        self._op_ids = itertools.count(1)
        self._last_committed_load = 0
        self._model_init_attempted = False

    # -- state bookkeeping -------------------------------------------------

    def snapshot(self) -> PipelineSnapshot:
        s = self._state
        return PipelineSnapshot(
            original_raster=s.original_raster,
            working_raster=s.working_raster,
            model_ready=s.model_ready,
            busy=s.busy,
            stage=s.stage,
            generation=s.generation,
        )

    @property
    def model_ready(self) -> bool:
        return self._state.model_ready

    @property
    def busy(self) -> bool:
        return self._state.busy

    def _refresh(self) -> None:
        """Derive `busy` and `stage` from the in-flight table."""
        if self._inflight:
            self._state.busy = True
            self._state.stage = self._inflight[max(self._inflight)]
        else:
            self._state.busy = False
            self._state.stage = (
                PipelineStage.READY if self._state.working_raster is not None else PipelineStage.IDLE
            )

    def _begin(self, stage: PipelineStage) -> int:
        op_id = next(self._op_ids)
        self._inflight[op_id] = stage
        self._refresh()
        return op_id

    def _advance(self, op_id: int, stage: PipelineStage) -> None:
        if op_id in self._inflight:
            self._inflight[op_id] = stage
            self._refresh()

    def _end(self, op_id: int) -> None:
        self._inflight.pop(op_id, None)
        self._refresh()

    def _require_image(self) -> RasterImage:
        if self._state.working_raster is None:
            raise NoImageLoaded()
        return self._state.working_raster

    def _require_idle(self) -> None:
        if self._state.busy:
            raise OperationInProgress(
                f"Cannot start while {self._state.stage.value} is in progress"
            )

    # -- operations ----------------------------------------------------------

    async def initialize_model(self) -> bool:
        """
        One-time model readiness step.

        A failure is logged and leaves `model_ready` permanently false, so every
        later `remove_background` fails fast with `ModelNotReady`.
        """
        if self._model_init_attempted:
            return self._state.model_ready
        self._model_init_attempted = True
        try:
            await self._provider.initialize()
        except Exception as exc:  # noqa: BLE001
            logger.exception("pipeline: segmentation model failed to initialize: %s", exc)
            return False
        self._state.model_ready = self._provider.ready
        logger.info("pipeline: segmentation model ready=%s", self._state.model_ready)
        return self._state.model_ready

    async def load(self, data: bytes, mime_type: Optional[str]) -> RasterImage:
        """
        Validate and decode an upload, making it the original and working image.

        Accepted while busy: a committed load supersedes every operation that
        started before it.
        """
        upload = validate_upload(data, mime_type, self._settings)

        op_id = self._begin(PipelineStage.DECODING)
        try:
            raster = await asyncio.to_thread(codec.decode, upload.data)
        except Exception:
            self._end(op_id)
            raise

        # Only a newer load that already committed makes this one stale.
        if op_id < self._last_committed_load:
            self._end(op_id)
            logger.info("pipeline: discarding decode superseded by a newer load")
            raise StaleResult()

        self._state.original_raster = raster
        self._state.working_raster = raster
        self._state.generation += 1
        self._last_committed_load = op_id
        for stale_id in [i for i in self._inflight if i < op_id]:
            del self._inflight[stale_id]
        self._end(op_id)
        logger.info(
            "pipeline: loaded %s %dx%d (%d bytes) generation=%d",
            upload.mime_type,
            raster.width,
            raster.height,
            upload.size,
            self._state.generation,
        )
        return raster

    async def remove_background(self) -> RasterImage:
        """Segment the working image and make its background transparent."""
        if not self._state.model_ready:
            raise ModelNotReady()
        source = self._require_image()
        self._require_idle()

        generation = self._state.generation
        op_id = self._begin(PipelineStage.SEGMENTING)
        try:
            mask = await self._provider.segment(source)
            if generation != self._state.generation:
                logger.info(
                    "pipeline: discarding segmentation for generation %d (current %d)",
                    generation,
                    self._state.generation,
                )
                raise StaleResult()
            self._advance(op_id, PipelineStage.COMPOSITING)
            result = composite(source, mask)
        except Exception:
            self._end(op_id)
            raise

        self._state.working_raster = result
        self._end(op_id)
        logger.info("pipeline: background removed for %dx%d image", result.width, result.height)
        if self._settings.debug:
            await asyncio.to_thread(
                _maybe_dump_debug, mask, result, Path(self._settings.debug_output_dir)
            )
        return result

    def resize(self, width, height) -> RasterImage:
        """Resample the working image; the result also becomes the preview."""
        source = self._require_image()
        self._require_idle()

        op_id = self._begin(PipelineStage.RESAMPLING)
        try:
            result = resample(
                source,
                width,
                height,
                method=self._settings.resample_method,
                max_pixels=self._settings.max_output_pixels,
            )
        except Exception:
            self._end(op_id)
            raise

        self._state.working_raster = result
        self._state.original_raster = result
        self._end(op_id)
        logger.info(
            "pipeline: resized %dx%d -> %dx%d",
            source.width,
            source.height,
            result.width,
            result.height,
        )
        return result

    async def export(self) -> ExportResult:
        """Encode the working image as PNG."""
        return await self._encode(self._require_image())

    async def preview(self) -> ExportResult:
        """Encode the cached preview (the last loaded or resized image)."""
        if self._state.original_raster is None:
            raise NoImageLoaded()
        return await self._encode(self._state.original_raster)

    async def _encode(self, raster: RasterImage) -> ExportResult:
        self._require_idle()
        op_id = self._begin(PipelineStage.EXPORTING)
        try:
            png_bytes = await asyncio.to_thread(codec.encode_png, raster)
        finally:
            self._end(op_id)
        return ExportResult(data=png_bytes, filename=self._settings.export_filename)


def _maybe_dump_debug(mask: SegmentationMask, result: RasterImage, debug_dir: Path) -> None:
    """Write the mask and the composite when DEBUG is enabled."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        mask_path = debug_dir / "mask.png"
        cutout_path = debug_dir / "cutout.png"

        cv2.imwrite(str(mask_path), mask.foreground.astype(np.uint8) * 255)
        cv2.imwrite(str(cutout_path), cv2.cvtColor(result.pixels, cv2.COLOR_RGBA2BGRA))
        logger.debug("pipeline: wrote debug outputs to %s", debug_dir)
    except Exception as exc:  # noqa: BLE001
        logger.warning("pipeline: failed to write debug outputs: %s", exc)
