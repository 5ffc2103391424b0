"""
Build Pipeline

Stages that run after ingest, and the orchestrator that sequences them.

Modules:
    media: Verbatim copies, resized variants, variant cache
    embeddings: Text and image embeddings with batch fallback
    orchestrator: Build state machine
"""

from vault_build.pipeline.embeddings import EmbeddingPipeline
from vault_build.pipeline.media import MediaPipeline
from vault_build.pipeline.orchestrator import BuildOrchestrator

__all__ = ["EmbeddingPipeline", "MediaPipeline", "BuildOrchestrator"]
