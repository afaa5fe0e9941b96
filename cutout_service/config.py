"""
Configuration loader for the cutout service.

Environment variables are centralized here to keep the rest of the code
focused on image handling and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RESAMPLE_METHODS = ("nearest", "bilinear", "area")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
    )

    # Segmentation model
    segmentation_model_path: Optional[Path] = None
    segmentation_max_long_edge: int = 1024
    segmentation_threshold: float = 0.5

    # File intake
    max_upload_bytes: int = 10 * 1024 * 1024
    accepted_mime_types: Tuple[str, ...] = ("image/jpeg", "image/png", "image/jpg")

    # Resampling + export
    resample_method: str = "bilinear"
    max_output_pixels: int = 100_000_000
    export_filename: str = "processed-image.png"

    log_level: str = "INFO"

    # Debugging
    debug: bool = False
    debug_output_dir: Path = Path("/tmp/cutout_debug")

    @field_validator("resample_method")
    @classmethod
    def validate_resample_method(cls, v: str) -> str:
        v = v.lower()
        if v not in RESAMPLE_METHODS:
            raise ValueError("RESAMPLE_METHOD must be one of nearest|bilinear|area")
        return v

    @field_validator("segmentation_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError("SEGMENTATION_THRESHOLD must be within [0, 1)")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()
