"""
Local helper: runs the cutout pipeline on an image file and writes a PNG.
This bypasses the HTTP layer.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import List, Optional

from . import config
from .errors import PipelineError
from .pipeline import PipelineController
from .segmentation import build_provider

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove the background of a local image")
    parser.add_argument("--input", required=True, help="Path to the input JPG/PNG image")
    parser.add_argument("--output", help="Path to write the PNG (defaults to the export filename)")
    parser.add_argument("--width", type=int, help="Resample to this width (requires --height)")
    parser.add_argument("--height", type=int, help="Resample to this height (requires --width)")
    parser.add_argument(
        "--keep-background",
        action="store_true",
        help="Skip segmentation and only resample/convert",
    )
    args = parser.parse_args(argv)
    if (args.width is None) != (args.height is None):
        parser.error("--width and --height must be given together")
    return args


async def run(args: argparse.Namespace, settings: Optional[config.Settings] = None) -> Path:
    settings = settings or config.get_settings()
    input_path = Path(args.input)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    output_path = Path(args.output or settings.export_filename)

    controller = PipelineController(build_provider(settings), settings=settings)
    mime_type, _ = mimetypes.guess_type(input_path.name)
    await controller.load(input_path.read_bytes(), mime_type)

    if not args.keep_background:
        await controller.initialize_model()
        await controller.remove_background()
    if args.width is not None:
        controller.resize(args.width, args.height)

    result = await controller.export()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.data)
    return output_path


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = config.get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    try:
        output_path = asyncio.run(run(args, settings))
    except PipelineError as exc:
        logger.error("cli: %s", exc)
        return 1
    print(f"Wrote PNG output to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
