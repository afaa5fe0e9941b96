"""Tests for the local command-line helper."""

from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image
import pytest

from cutout_service import cli
from cutout_service.raster import SegmentationMask

from conftest import FakeProvider, make_raster, png_bytes


def _left_half_background(raster):
    fg = np.ones((raster.height, raster.width), dtype=bool)
    fg[:, : raster.width // 2] = False
    return SegmentationMask(width=raster.width, height=raster.height, foreground=fg)


@pytest.fixture
def fake_provider(monkeypatch) -> FakeProvider:
    provider = FakeProvider(mask_factory=_left_half_background)
    monkeypatch.setattr(cli, "build_provider", lambda settings=None: provider)
    return provider


def test_cli_removes_background_and_resizes(tmp_path, fake_provider) -> None:
    source = tmp_path / "photo.png"
    source.write_bytes(png_bytes(make_raster(40, 20)))
    output = tmp_path / "out" / "cutout.png"

    code = cli.main(["--input", str(source), "--output", str(output), "--width", "20", "--height", "10"])

    assert code == 0
    with Image.open(BytesIO(output.read_bytes())) as image:
        assert image.size == (20, 10)
        alpha = np.asarray(image.convert("RGBA"))[..., 3]
    assert np.all(alpha[:, 0] == 0)
    assert np.all(alpha[:, -1] == 255)


def test_cli_keep_background_skips_model(tmp_path, fake_provider) -> None:
    source = tmp_path / "photo.png"
    source.write_bytes(png_bytes(make_raster(6, 6)))
    output = tmp_path / "plain.png"

    assert cli.main(["--input", str(source), "--output", str(output), "--keep-background"]) == 0
    assert fake_provider.init_calls == 0
    assert output.exists()


def test_cli_reports_unsupported_input(tmp_path, fake_provider) -> None:
    source = tmp_path / "anim.gif"
    source.write_bytes(b"GIF89a")

    assert cli.main(["--input", str(source), "--output", str(tmp_path / "x.png")]) == 1


def test_cli_requires_both_dimensions() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--input", "a.png", "--width", "10"])
