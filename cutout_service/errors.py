"""
Error taxonomy for the cutout pipeline.

Every error is recoverable at the API boundary: the handler in `api.py`
turns it into a JSON body using `code` and `status_code`.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    code = "pipeline_error"
    status_code = 500
    default_message = "Image processing failed"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class UnsupportedFormat(PipelineError, ValueError):
    code = "unsupported_format"
    status_code = 415
    default_message = "Only JPG, JPEG and PNG images are supported"


class FileTooLarge(PipelineError, ValueError):
    code = "file_too_large"
    status_code = 413
    default_message = "File exceeds the maximum upload size"


class ModelNotReady(PipelineError):
    code = "model_not_ready"
    status_code = 503
    default_message = "Segmentation model is still loading, try again shortly"


class NoImageLoaded(PipelineError):
    code = "no_image_loaded"
    status_code = 404
    default_message = "No image has been loaded"


class DimensionMismatch(PipelineError, ValueError):
    code = "dimension_mismatch"
    status_code = 400
    default_message = "Mask dimensions do not match the image"


class InvalidDimensions(PipelineError, ValueError):
    code = "invalid_dimensions"
    status_code = 400
    default_message = "Width and height must be positive integers"


class OperationInProgress(PipelineError):
    code = "operation_in_progress"
    status_code = 409
    default_message = "Another operation is still running"


class StaleResult(PipelineError):
    """Raised when a newer image replaced the source of an in-flight operation."""

    code = "stale_result"
    status_code = 409
    default_message = "Result discarded because a newer image was loaded"


class DecodeFailure(PipelineError, ValueError):
    code = "decode_failure"
    status_code = 400
    default_message = "Invalid image data"


class EncodeFailure(PipelineError):
    code = "encode_failure"
    status_code = 500
    default_message = "Could not encode image"
