"""
Raster data types shared by every pipeline stage.

`RasterImage` owns an RGBA pixel buffer and `SegmentationMask` a per-pixel
foreground/background classification. Both keep their arrays read-only so
a stage can only move the pipeline forward by building a new value.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union

import numpy as np

from .errors import DimensionMismatch, InvalidDimensions

CHANNELS = 4  # R, G, B, A


class Classification(Enum):
    BACKGROUND = 0
    FOREGROUND = 1


def _check_positive_dims(obj) -> None:
    for name in ("width", "height"):
        value = getattr(obj, name)
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
            raise InvalidDimensions(f"{name} must be a positive integer, got {value!r}")


def _frozen_copy(array: np.ndarray, dtype) -> np.ndarray:
    out = np.array(array, dtype=dtype, copy=True, order="C")
    out.setflags(write=False)
    return out


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Decoded image: `pixels` has shape (height, width, 4), dtype uint8, RGBA order."""

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        _check_positive_dims(self)
        pixels = np.asarray(self.pixels)
        expected = (self.height, self.width, CHANNELS)
        if pixels.shape != expected:
            raise InvalidDimensions(
                f"pixel buffer shape {pixels.shape} does not match {expected}"
            )
        if pixels.dtype != np.uint8:
            raise InvalidDimensions(f"pixel buffer must be uint8, got {pixels.dtype}")
        object.__setattr__(self, "width", int(self.width))
        object.__setattr__(self, "height", int(self.height))
        object.__setattr__(self, "pixels", _frozen_copy(pixels, np.uint8))

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterImage":
        if pixels.ndim != 3:
            raise InvalidDimensions(f"expected an (H, W, 4) array, got shape {pixels.shape}")
        height, width = pixels.shape[:2]
        return cls(width=width, height=height, pixels=pixels)

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "RasterImage":
        expected = width * height * CHANNELS
        if len(data) != expected:
            raise InvalidDimensions(
                f"expected {expected} bytes for {width}x{height} RGBA, got {len(data)}"
            )
        flat = np.frombuffer(data, dtype=np.uint8)
        return cls(width=width, height=height, pixels=flat.reshape(height, width, CHANNELS))

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def to_bytes(self) -> bytes:
        """Flat row-major R,G,B,A bytes, length width*height*4."""
        return self.pixels.tobytes()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RasterImage):
            return NotImplemented
        return self.size == other.size and np.array_equal(self.pixels, other.pixels)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RasterImage(width={self.width}, height={self.height})"


@dataclass(frozen=True, eq=False)
class SegmentationMask:
    """Per-pixel classification; `foreground` has shape (height, width), dtype bool."""

    width: int
    height: int
    foreground: np.ndarray

    def __post_init__(self) -> None:
        _check_positive_dims(self)
        fg = np.asarray(self.foreground)
        if fg.size != self.width * self.height:
            raise DimensionMismatch(
                f"mask has {fg.size} classifications, expected {self.width}x{self.height}"
            )
        object.__setattr__(
            self, "foreground", _frozen_copy(fg.reshape(self.height, self.width), bool)
        )

    @classmethod
    def from_classifications(
        cls, classifications: Iterable[Classification], width: int, height: int
    ) -> "SegmentationMask":
        values = [c is Classification.FOREGROUND for c in classifications]
        return cls(width=width, height=height, foreground=np.array(values, dtype=bool))

    @classmethod
    def from_scores(cls, scores: np.ndarray, threshold: float = 0.0) -> "SegmentationMask":
        """
        Build a mask from a (height, width) score map.

        Scores strictly above `threshold` are foreground, so the default treats
        any non-zero value as the subject.
        """
        scores = np.asarray(scores)
        if scores.ndim != 2:
            raise DimensionMismatch(f"expected a 2-D score map, got shape {scores.shape}")
        height, width = scores.shape
        return cls(width=width, height=height, foreground=scores > threshold)

    @classmethod
    def filled(cls, width: int, height: int, value: Union[Classification, bool]) -> "SegmentationMask":
        fg = value is Classification.FOREGROUND or value is True
        return cls(width=width, height=height, foreground=np.full((height, width), fg, dtype=bool))

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def classifications(self) -> list[Classification]:
        """Row-major classification list, one entry per pixel."""
        return [
            Classification.FOREGROUND if fg else Classification.BACKGROUND
            for fg in self.foreground.ravel()
        ]

    @property
    def foreground_fraction(self) -> float:
        return float(self.foreground.mean()) if self.foreground.size else 0.0

    def __repr__(self) -> str:
        return f"SegmentationMask(width={self.width}, height={self.height})"
