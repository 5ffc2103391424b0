"""
Text Embedding Plugins

Implementations:
    - HashingTextEmbedder: Deterministic feature hashing (no network)
    - OpenAITextEmbedder: OpenAI models via langchain-openai (lazy import)
"""

from vault_build.plugins.embedding.hashing import HashingTextEmbedder
from vault_build.plugins.embedding.openai import OpenAITextEmbedder

__all__ = ["HashingTextEmbedder", "OpenAITextEmbedder"]
