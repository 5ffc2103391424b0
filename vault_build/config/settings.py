"""
BuildConfig - Configuration Management

Sensible defaults with full override capability.

Example:
    >>> # Use defaults (reads from environment)
    >>> orchestrator = BuildOrchestrator("./vault", "./dist")

    >>> # Explicit configuration
    >>> config = BuildConfig(
    ...     embedding_provider="hashing",
    ...     similarity_enabled=True,
    ... )
    >>> orchestrator = BuildOrchestrator("./vault", "./dist", config=config)

    >>> # From config file
    >>> config = BuildConfig.from_file("./vault-build.toml")

Environment Variables:
    VAULT_IMAGE_PROCESSOR - Image processor: "none" or "pillow"
    VAULT_IMAGE_EMBEDDER - Image embedder: "none" or "histogram"
    VAULT_EMBEDDING_PROVIDER - Text embedder: "none", "hashing" or "openai"
    VAULT_EMBEDDING_MODEL - Embedding model name
    VAULT_MEDIA_FORMAT - Variant output format (webp, jpeg, png, avif)
    VAULT_MEDIA_QUALITY - Variant output quality (1-100)
    VAULT_SIMILARITY - Enable the similarity plugin ("1"/"true")
    VAULT_DATABASE - Enable the database plugin ("1"/"true")
    VAULT_STRICT - Fail the build on any qualifying issue ("1"/"true")
    VAULT_INGEST_CONCURRENCY - Max concurrent document parses
    VAULT_MEDIA_CONCURRENCY - Max concurrent media items
    VAULT_EMBEDDING_CONCURRENCY - Max concurrent embedding batches
    VAULT_SIMILARITY_CONCURRENCY - Max concurrent similarity chunks
    OPENAI_API_KEY - OpenAI API key (standard name)
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, cast

from vault_build.types.media import SizeSpec

# TOML support: tomllib is built-in for Python 3.11+, use tomli for 3.10
try:
    import tomllib

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomllib.load(f))

except ImportError:
    import tomli

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomli.load(f))


_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_MEDIA_SIZES: list[dict[str, Any]] = [
    {"width": 320, "suffix": "xs"},
    {"width": 640, "suffix": "sm"},
    {"width": 1024, "suffix": "md"},
    {"width": 1920, "suffix": "lg"},
    {"width": 3840, "suffix": "xl"},
]


def _env_flag(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


class BuildConfig:
    """Configuration for a vault build."""

    # === Build Configuration ===

    strict: bool = False
    """Treat qualifying issues as fatal"""

    strict_min_severity: str = "info"
    """Lowest severity that fails a strict build: "info" (any issue), "warning", "error" """

    include_unpublished: bool = False
    """Keep documents marked `published: false` or `draft: true`"""

    ignore_names: list[str] = ["node_modules", "_site", "__pycache__"]
    """Directory and file names skipped during the vault walk (dot-names are always skipped)"""

    # === Media Configuration ===

    image_processor: str = "none"
    """Image processor plugin: "none" or "pillow" """

    media_dir: str = "_media"
    """Output directory for media copies and variants"""

    media_url_prefix: str = "/_media"
    """URL prefix used in rendered HTML for media references"""

    media_sizes: list[dict[str, Any]] = DEFAULT_MEDIA_SIZES
    """Variant widths and filename suffixes"""

    media_format: str = "webp"
    """Variant output format"""

    media_quality: int = 80
    """Variant output quality"""

    media_shard: bool = False
    """Shard media output by the first two hash characters"""

    # === Embedding Configuration ===

    embedding_provider: str = "none"
    """Text embedder plugin: "none", "hashing", "openai" """

    embedding_model: str = "text-embedding-3-small"
    """Embedding model name (openai only)"""

    embedding_dimensions: int = 256
    """Vector dimensions for the hashing embedder"""

    embedding_batch_size: int = 32
    """Texts per batch_embed call"""

    embedding_max_chars: int = 8000
    """Characters of document text sent to the embedder"""

    image_embedder: str = "none"
    """Image embedder plugin: "none" or "histogram" """

    openai_api_key: str | None = None

    # === Similarity Configuration ===

    similarity_enabled: bool = False
    """Enable the similarity plugin (requires a text embedder)"""

    similarity_top_k: int = 10
    """Neighbors kept per document"""

    similarity_chunk_size: int = 256
    """Rows per similarity work chunk"""

    similarity_min_score: float | None = None
    """Drop neighbors below this score"""

    # === Database Configuration ===

    database_enabled: bool = False
    """Enable the database plugin"""

    database_vector_index: str = "parquet"
    """Vector table backend: "parquet" (deterministic) or "lancedb" """

    parquet_compression: str = "zstd"
    """Parquet compression: "zstd", "snappy", "gzip", "none" """

    # === Processing Configuration ===

    ingest_concurrency: int = 8
    """Max concurrent document parses"""

    media_concurrency: int = 4
    """Max concurrent media items"""

    embedding_concurrency: int = 4
    """Max concurrent embedding batches"""

    similarity_concurrency: int = 4
    """Max concurrent similarity chunks"""

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Args:
            **kwargs: Override any configuration option
        """
        # Mutable defaults must not be shared between instances
        self.ignore_names = list(type(self).ignore_names)
        self.media_sizes = copy.deepcopy(type(self).media_sizes)

        # Load from environment first
        self._load_from_env()

        # Apply explicit overrides
        for key, value in kwargs.items():
            if hasattr(self, key) and not key.startswith("_"):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration option: {key}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        import os

        self.openai_api_key = os.getenv("OPENAI_API_KEY")

        if value := os.getenv("VAULT_IMAGE_PROCESSOR"):
            self.image_processor = value
        if value := os.getenv("VAULT_IMAGE_EMBEDDER"):
            self.image_embedder = value
        if value := os.getenv("VAULT_EMBEDDING_PROVIDER"):
            self.embedding_provider = value
        if value := os.getenv("VAULT_EMBEDDING_MODEL"):
            self.embedding_model = value
        if value := os.getenv("VAULT_MEDIA_FORMAT"):
            self.media_format = value
        if value := os.getenv("VAULT_MEDIA_QUALITY"):
            self.media_quality = int(value)
        if value := os.getenv("VAULT_SIMILARITY"):
            self.similarity_enabled = _env_flag(value)
        if value := os.getenv("VAULT_DATABASE"):
            self.database_enabled = _env_flag(value)
        if value := os.getenv("VAULT_STRICT"):
            self.strict = _env_flag(value)
        if value := os.getenv("VAULT_INGEST_CONCURRENCY"):
            self.ingest_concurrency = int(value)
        if value := os.getenv("VAULT_MEDIA_CONCURRENCY"):
            self.media_concurrency = int(value)
        if value := os.getenv("VAULT_EMBEDDING_CONCURRENCY"):
            self.embedding_concurrency = int(value)
        if value := os.getenv("VAULT_SIMILARITY_CONCURRENCY"):
            self.similarity_concurrency = int(value)

    def size_specs(self) -> list[SizeSpec]:
        """Configured variant sizes, smallest first."""
        specs = [SizeSpec(**s) for s in self.media_sizes]
        return sorted(specs, key=lambda s: (s.width, s.suffix))

    @classmethod
    def from_file(cls, path: str | Path) -> "BuildConfig":
        """
        Load configuration from TOML file.

        Nested sections are flattened into prefixed keys.

        Example TOML:
            [build]
            strict = true

            [media]
            processor = "pillow"
            format = "webp"
            sizes = [{ width = 640, suffix = "sm" }]

            [embedding]
            provider = "hashing"

            [similarity]
            enabled = true
            top_k = 5

        Args:
            path: Path to TOML configuration file

        Returns:
            BuildConfig instance with values from file

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)

        flat_config: dict[str, Any] = {}

        # Map section names to config key prefixes
        section_mapping = {
            "build": "",
            "media": "media_",
            "embedding": "embedding_",
            "similarity": "similarity_",
            "database": "database_",
            "processing": "",
        }
        # Keys whose flattened name doesn't follow the prefix rule
        renamed = {
            "media_processor": "image_processor",
            "media_embedder": "image_embedder",
            "database_parquet_compression": "parquet_compression",
        }

        for section, prefix in section_mapping.items():
            if section in data:
                for key, value in data[section].items():
                    flat_key = f"{prefix}{key}"
                    flat_config[renamed.get(flat_key, flat_key)] = value

        # Also support flat top-level keys
        for key, value in data.items():
            if key not in section_mapping and not isinstance(value, dict):
                flat_config[key] = value

        return cls(**flat_config)

    @classmethod
    def from_env(cls) -> "BuildConfig":
        """Load configuration from environment variables only."""
        return cls()

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to TOML file.

        API keys are excluded; set them through the environment.

        Args:
            path: Path to write TOML configuration file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sections: dict[str, dict[str, Any]] = {
            "build": {
                "strict": self.strict,
                "strict_min_severity": self.strict_min_severity,
                "include_unpublished": self.include_unpublished,
                "ignore_names": self.ignore_names,
            },
            "media": {
                "processor": self.image_processor,
                "embedder": self.image_embedder,
                "dir": self.media_dir,
                "url_prefix": self.media_url_prefix,
                "format": self.media_format,
                "quality": self.media_quality,
                "shard": self.media_shard,
                "sizes": self.media_sizes,
            },
            "embedding": {
                "provider": self.embedding_provider,
                "model": self.embedding_model,
                "dimensions": self.embedding_dimensions,
                "batch_size": self.embedding_batch_size,
                "max_chars": self.embedding_max_chars,
            },
            "similarity": {
                "enabled": self.similarity_enabled,
                "top_k": self.similarity_top_k,
                "chunk_size": self.similarity_chunk_size,
                "min_score": self.similarity_min_score,
            },
            "database": {
                "enabled": self.database_enabled,
                "vector_index": self.database_vector_index,
                "parquet_compression": self.parquet_compression,
            },
            "processing": {
                "ingest_concurrency": self.ingest_concurrency,
                "media_concurrency": self.media_concurrency,
                "embedding_concurrency": self.embedding_concurrency,
                "similarity_concurrency": self.similarity_concurrency,
            },
        }

        # Build TOML string manually (tomllib is read-only)
        lines = ["# vault-build configuration", ""]

        for section_name, section_values in sections.items():
            lines.append(f"[{section_name}]")
            for key, value in section_values.items():
                if value is None:
                    continue
                lines.append(f"{key} = {_toml_value(value)}")
            lines.append("")

        lines.extend([
            "# API keys should be set via environment variables:",
            "# OPENAI_API_KEY",
            "",
        ])

        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "BuildConfig":
        """Return new config with specified overrides."""
        new_config = BuildConfig.__new__(BuildConfig)
        for key in dir(self):
            if not key.startswith("_") and not callable(getattr(self, key)):
                setattr(new_config, key, copy.deepcopy(getattr(self, key)))
        for key, value in kwargs.items():
            if not hasattr(new_config, key):
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(new_config, key, value)
        return new_config


def _toml_value(value: Any) -> str:
    """Render a scalar, list or inline table as TOML."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, dict):
        inner = ", ".join(f"{k} = {_toml_value(v)}" for k, v in value.items())
        return f"{{ {inner} }}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    raise TypeError(f"Unsupported TOML value: {value!r}")
