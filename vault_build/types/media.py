"""
Media Types

Image processing contracts and processed media assets.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ImageMetadata(BaseModel):
    """Intrinsic properties of a source image."""

    width: int
    height: int
    format: str


class SizeSpec(BaseModel):
    """One requested variant width and its filename suffix."""

    width: int
    suffix: str


class ProcessOptions(BaseModel):
    """Options for a single ImageProcessorPlugin.process() call."""

    width: int | None = None
    height: int | None = None
    format: str = "webp"
    quality: int | None = None


class VariantResult(BaseModel):
    """What an image processor actually produced."""

    width: int
    height: int
    format: str
    size: int


class MediaVariant(BaseModel):
    """A generated variant inside the output tree."""

    path: str
    width: int
    height: int
    format: str
    size: int
    quality: int | None = None


class MediaAsset(BaseModel):
    """
    A processed media file.

    Attributes:
        hash: SHA-256 of the source bytes
        original_path: First vault path (sorted) carrying these bytes
        paths: Every vault path carrying these bytes
        mime_type: Source MIME type
        filename: Output path of the verbatim copy
        size: Source size in bytes
        width: Source width, when the processor could read it
        height: Source height, when the processor could read it
        variants: Size suffix -> generated variant
    """

    hash: str
    original_path: str
    paths: list[str] = Field(default_factory=list)
    mime_type: str
    filename: str
    size: int
    width: int | None = None
    height: int | None = None
    variants: dict[str, MediaVariant] = Field(default_factory=dict)
    embedding: list[float] | None = Field(default=None, exclude=True)


class CacheStats(BaseModel):
    """Hit/miss counters for content-addressed caches."""

    hits: int = 0
    misses: int = 0
