"""
Image Plugins

Implementations:
    - PillowImageProcessor: Resize/transcode via Pillow
    - ColorHistogramImageEmbedder: Deterministic RGB histogram embeddings
"""

from vault_build.plugins.image.histogram import ColorHistogramImageEmbedder
from vault_build.plugins.image.pillow import PillowImageProcessor

__all__ = ["PillowImageProcessor", "ColorHistogramImageEmbedder"]
