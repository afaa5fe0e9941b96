"""Tests for the FastAPI session endpoints."""

from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image
import pytest
from fastapi.testclient import TestClient

from cutout_service.api import create_app
from cutout_service.pipeline import PipelineController

from conftest import FakeProvider, central_block_mask, make_raster, png_bytes


def _client(provider, settings) -> TestClient:
    controller = PipelineController(provider, settings=settings)
    return TestClient(create_app(controller=controller, settings=settings))


def _wait_until_ready(client: TestClient) -> None:
    for _ in range(50):
        if client.get("/health").json()["modelReady"]:
            return
    raise AssertionError("model never became ready")


def _upload(client: TestClient, width: int = 40, height: int = 30):
    return client.post(
        "/image",
        content=png_bytes(make_raster(width, height)),
        headers={"Content-Type": "image/png"},
    )


def test_health_reports_model_readiness(provider, settings) -> None:
    with _client(provider, settings) as client:
        _wait_until_ready(client)
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "modelReady": True}


def test_upload_and_state(provider, settings) -> None:
    with _client(provider, settings) as client:
        response = _upload(client)
        state = client.get("/state").json()

    assert response.status_code == 200
    assert response.json() == {"width": 40, "height": 30}
    assert state["stage"] == "ready"
    assert state["busy"] is False
    assert state["generation"] == 1
    assert state["image"] == {"width": 40, "height": 30}


def test_unsupported_upload(provider, settings) -> None:
    with _client(provider, settings) as client:
        response = client.post("/image", content=b"GIF89a", headers={"Content-Type": "image/gif"})

    assert response.status_code == 415
    assert response.json()["error"] == "unsupported_format"


def test_oversized_upload(provider, settings) -> None:
    with _client(provider, settings) as client:
        response = client.post(
            "/image",
            content=b"\x00" * (settings.max_upload_bytes + 1),
            headers={"Content-Type": "image/png"},
        )

    assert response.status_code == 413
    assert response.json()["error"] == "file_too_large"


def test_corrupt_upload(provider, settings) -> None:
    with _client(provider, settings) as client:
        response = client.post("/image", content=b"nope", headers={"Content-Type": "image/png"})

    assert response.status_code == 400
    assert response.json()["error"] == "decode_failure"


def test_operations_without_image(provider, settings) -> None:
    with _client(provider, settings) as client:
        _wait_until_ready(client)
        remove = client.post("/remove-bg")
        export = client.get("/export")

    assert remove.status_code == 404
    assert export.status_code == 404
    assert export.json()["error"] == "no_image_loaded"


def test_remove_bg_when_model_failed(settings) -> None:
    with _client(FakeProvider(fail_init=True), settings) as client:
        _upload(client)
        response = client.post("/remove-bg")

    assert response.status_code == 503
    assert response.json()["error"] == "model_not_ready"


def test_remove_bg_resize_and_export(settings) -> None:
    provider = FakeProvider(mask_factory=lambda r: central_block_mask(r.width, r.height, 20))
    with _client(provider, settings) as client:
        _wait_until_ready(client)
        _upload(client, 40, 40)
        removed = client.post("/remove-bg")
        resized = client.post("/resize", json={"width": 20, "height": 20})
        exported = client.get("/export")
        data_url = client.get("/export/data-url").json()

    assert removed.status_code == 200
    assert resized.json() == {"width": 20, "height": 20}
    assert exported.status_code == 200
    assert exported.headers["content-type"] == "image/png"
    assert 'filename="processed-image.png"' in exported.headers["content-disposition"]
    with Image.open(BytesIO(exported.content)) as image:
        alpha = np.asarray(image.convert("RGBA"))[..., 3]
    assert image.size == (20, 20)
    assert alpha[0, 0] == 0
    assert alpha[10, 10] == 255
    assert data_url["filename"] == "processed-image.png"
    assert data_url["dataUrl"].startswith("data:image/png;base64,")


@pytest.mark.parametrize(
    "body,status",
    [
        ({"width": 0, "height": 10}, 400),
        ({"width": 10, "height": -1}, 400),
        ({"width": 10}, 422),
        ({"width": "abc", "height": 10}, 422),
    ],
)
def test_resize_validation(provider, settings, body, status) -> None:
    with _client(provider, settings) as client:
        _upload(client)
        response = client.post("/resize", json=body)
        state = client.get("/state").json()

    assert response.status_code == status
    assert state["image"] == {"width": 40, "height": 30}


def test_preview_is_updated_by_resize(provider, settings) -> None:
    with _client(provider, settings) as client:
        _upload(client)
        client.post("/resize", json={"width": 8, "height": 4})
        response = client.get("/preview")

    assert response.status_code == 200
    assert "content-disposition" not in response.headers
    with Image.open(BytesIO(response.content)) as image:
        assert image.size == (8, 4)


def test_resize_beyond_output_limit_is_a_client_error(provider, settings) -> None:
    with _client(provider, settings) as client:
        _upload(client)
        response = client.post("/resize", json={"width": 100_000, "height": 100_000})
        state = client.get("/state").json()

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_dimensions"
    assert state["image"] == {"width": 40, "height": 30}
