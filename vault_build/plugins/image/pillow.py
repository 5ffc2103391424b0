"""
Pillow Image Processor

ImageProcessorPlugin backed by Pillow.

Supports:
    - Metadata reads (width, height, format) without decoding pixel data
    - Lanczos downscaling with EXIF orientation applied
    - Transcoding to webp, jpeg, png and (when the Pillow build has it) avif

Policy:
    Never upscales. A requested width above the source width is clamped to
    the source width; height follows the source aspect ratio unless given.

Example:
    >>> processor = PillowImageProcessor()
    >>> meta = await processor.get_metadata(Path("photo.jpg"))
    >>> result = await processor.process(
    ...     Path("photo.jpg"), Path("out/photo-sm.webp"),
    ...     ProcessOptions(width=640, format="webp", quality=80),
    ... )
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from PIL import Image, ImageOps

from vault_build.errors import PluginExecutionError
from vault_build.plugins.base import ImageProcessorPlugin
from vault_build.types.media import ImageMetadata, ProcessOptions, VariantResult

# Formats Pillow decodes reliably for resizing; gif and svg are copy-only
PROCESSABLE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".avif"}

_SAVE_FORMATS = {
    "jpeg": "JPEG",
    "jpg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "avif": "AVIF",
}


class PillowImageProcessor(ImageProcessorPlugin):
    """
    Image processor using Pillow.

    Args:
        resample: Pillow resampling filter (default: Lanczos)
    """

    def __init__(self, resample: Image.Resampling = Image.Resampling.LANCZOS) -> None:
        self._resample = resample
        registered = Image.registered_extensions()
        self._extensions = {ext for ext in PROCESSABLE_EXTENSIONS if ext in registered}

    def can_process(self, path: Path) -> bool:
        return Path(path).suffix.lower() in self._extensions

    async def get_metadata(self, path: Path) -> ImageMetadata:
        def _read() -> ImageMetadata:
            with Image.open(path) as im:
                width, height = im.size
                # Orientation tags 5-8 swap the displayed axes
                orientation = im.getexif().get(0x0112, 1)
                if orientation in (5, 6, 7, 8):
                    width, height = height, width
                return ImageMetadata(width=width, height=height, format=(im.format or "").lower())

        try:
            return await asyncio.to_thread(_read)
        except OSError as e:
            raise PluginExecutionError(self.name, str(path), e) from e

    async def process(
        self,
        input_path: Path,
        output_path: Path,
        options: ProcessOptions,
    ) -> VariantResult:
        fmt = options.format.lower()
        save_format = _SAVE_FORMATS.get(fmt)
        if save_format is None:
            raise ValueError(f"Unsupported output format: {options.format}")

        def _process() -> VariantResult:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with Image.open(input_path) as source:
                im = ImageOps.exif_transpose(source)
                width, height = _target_size(im.size, options.width, options.height)
                if (width, height) != im.size:
                    im = im.resize((width, height), resample=self._resample)

                if save_format == "JPEG" and im.mode not in ("RGB", "L"):
                    im = im.convert("RGB")
                elif im.mode == "P":
                    im = im.convert("RGBA")

                save_kwargs: dict[str, object] = {}
                if options.quality is not None and save_format in ("JPEG", "WEBP", "AVIF"):
                    save_kwargs["quality"] = options.quality
                if save_format in ("JPEG", "PNG"):
                    save_kwargs["optimize"] = True
                im.save(output_path, format=save_format, **save_kwargs)

            return VariantResult(
                width=width,
                height=height,
                format=fmt,
                size=output_path.stat().st_size,
            )

        try:
            return await asyncio.to_thread(_process)
        except OSError as e:
            raise PluginExecutionError(self.name, str(input_path), e) from e

    async def copy(self, input_path: Path, output_path: Path) -> None:
        def _copy() -> None:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(input_path, output_path)

        await asyncio.to_thread(_copy)


def _target_size(
    size: tuple[int, int],
    width: int | None,
    height: int | None,
) -> tuple[int, int]:
    """Clamp requested dimensions to the source (never upscale)."""
    src_w, src_h = size
    if width is None and height is None:
        return src_w, src_h

    if width is not None:
        out_w = min(width, src_w)
        out_h = min(height, src_h) if height is not None else round(src_h * out_w / src_w)
    else:
        assert height is not None
        out_h = min(height, src_h)
        out_w = round(src_w * out_h / src_h)

    return max(1, out_w), max(1, out_h)
