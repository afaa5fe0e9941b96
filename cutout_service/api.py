"""
FastAPI layer exposing one editing session per process.

Endpoints:
 - GET  /health
 - GET  /state
 - POST /image            (raw image body, Content-Type is the declared type)
 - POST /remove-bg
 - POST /resize
 - GET  /export
 - GET  /export/data-url
 - GET  /preview
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from . import config
from .errors import FileTooLarge, PipelineError
from .pipeline import ExportResult, PipelineController, PipelineSnapshot
from .raster import RasterImage
from .segmentation import build_provider

logger = logging.getLogger(__name__)


class ImageInfo(BaseModel):
    width: int
    height: int


class StateResponse(BaseModel):
    stage: str
    busy: bool
    modelReady: bool
    generation: int
    image: Optional[ImageInfo] = None
    preview: Optional[ImageInfo] = None


class ResizeRequest(BaseModel):
    width: int
    height: int


class DataUrlResponse(BaseModel):
    dataUrl: str
    filename: str


def _image_info(raster: Optional[RasterImage]) -> Optional[ImageInfo]:
    if raster is None:
        return None
    return ImageInfo(width=raster.width, height=raster.height)


def _state_response(snapshot: PipelineSnapshot) -> StateResponse:
    return StateResponse(
        stage=snapshot.stage.value,
        busy=snapshot.busy,
        modelReady=snapshot.model_ready,
        generation=snapshot.generation,
        image=_image_info(snapshot.working_raster),
        preview=_image_info(snapshot.original_raster),
    )


def _png_response(result: ExportResult, attachment: bool) -> Response:
    headers = {}
    if attachment:
        headers["Content-Disposition"] = f'attachment; filename="{result.filename}"'
    return Response(content=result.data, media_type=result.media_type, headers=headers)


def create_app(
    controller: Optional[PipelineController] = None,
    settings: Optional[config.Settings] = None,
) -> FastAPI:
    settings = settings or config.get_settings()
    if controller is None:
        controller = PipelineController(build_provider(settings), settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Model readiness is a one-time background step; requests are served meanwhile.
        init_task = asyncio.create_task(controller.initialize_model())
        try:
            yield
        finally:
            if not init_task.done():
                init_task.cancel()

    # Handlers are all `async def` so the controller is only touched from the event loop.
    app = FastAPI(title="Cutout Background Removal Service", version="0.1.0", lifespan=lifespan)
    app.state.controller = controller

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        logger.info("api: %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": str(exc), "error": exc.code},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "modelReady": controller.model_ready}

    @app.get("/state", response_model=StateResponse)
    async def state():
        return _state_response(controller.snapshot())

    @app.post("/image", response_model=ImageInfo)
    async def upload_image(request: Request):
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > settings.max_upload_bytes:
            # Reject before buffering the body; intake re-checks the real size.
            raise FileTooLarge()
        body = await request.body()
        raster = await controller.load(body, request.headers.get("content-type"))
        return _image_info(raster)

    @app.post("/remove-bg", response_model=ImageInfo)
    async def remove_bg():
        raster = await controller.remove_background()
        return _image_info(raster)

    @app.post("/resize", response_model=ImageInfo)
    async def resize(body: ResizeRequest):
        raster = controller.resize(body.width, body.height)
        return _image_info(raster)

    @app.get("/export")
    async def export():
        return _png_response(await controller.export(), attachment=True)

    @app.get("/export/data-url", response_model=DataUrlResponse)
    async def export_data_url():
        result = await controller.export()
        return DataUrlResponse(dataUrl=result.data_url, filename=result.filename)

    @app.get("/preview")
    async def preview():
        return _png_response(await controller.preview(), attachment=False)

    return app


def _configure_logging(settings: config.Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))


_configure_logging(config.get_settings())
app = create_app()
