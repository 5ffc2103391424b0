"""
Parquet Database Builder

Assembles the queryable `database/` artifact: one Parquet file per table,
readable directly with DuckDB (`SELECT * FROM read_parquet(...)`).

Tables:
    posts           - one row per document (list fields JSON-encoded)
    medias          - one row per media asset
    tags            - tag name and post count
    post_tags       - post hash / tag pairs
    links           - source hash / target hash pairs
    post_media      - post hash / media hash pairs
    post_frontmatter   - one typed row per frontmatter key of each post
    frontmatter_schema - inferred type and column mapping per frontmatter key
    post_embeddings - post hash and float32 vector (text embedder only)
    vectors/        - LanceDB posts table (database_vector_index = "lancedb")

Transaction:
    1. Write every table into a temporary sibling directory
    2. Re-read the row count of each table through DuckDB
    3. Rename the temporary directory over the target
    Any failure removes the temporary directory and raises FatalBuildError.

Rows are sorted by their key columns, so identical inputs produce
byte-identical Parquet files.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Any
from uuid import uuid4

import duckdb
import pyarrow as pa
import pyarrow.parquet as pq

from vault_build.errors import FatalBuildError
from vault_build.ingestion.schema import detect_type, scan_frontmatter_schema
from vault_build.plugins.base import TEXT_EMBEDDER, DatabasePlugin, PluginContext
from vault_build.types.issues import Severity
from vault_build.types.results import DatabaseBuildResult, DatabaseInputs

logger = logging.getLogger(__name__)

ARTIFACT_NAME = "database"
VECTOR_INDEXES = ("parquet", "lancedb")


class ParquetDatabasePlugin(DatabasePlugin):
    """
    DatabasePlugin writing Parquet tables.

    Args:
        compression: Parquet codec (default from config, "zstd")
        vector_index: "parquet" or "lancedb" (default from config)
    """

    def __init__(self, compression: str | None = None, vector_index: str | None = None):
        if vector_index is not None and vector_index not in VECTOR_INDEXES:
            raise ValueError(f"Unknown vector index: {vector_index}")
        self.compression = compression or "zstd"
        self.vector_index = vector_index or "parquet"
        self._explicit_compression = compression is not None
        self._explicit_vector_index = vector_index is not None
        self._context: PluginContext | None = None
        self._has_embedder = False

    async def initialize(self, context: PluginContext) -> None:
        self._context = context
        if not self._explicit_compression:
            self.compression = context.config.parquet_compression
        if not self._explicit_vector_index:
            if context.config.database_vector_index not in VECTOR_INDEXES:
                raise ValueError(
                    f"Unknown vector index: {context.config.database_vector_index}"
                )
            self.vector_index = context.config.database_vector_index
        self._has_embedder = context.get_plugin(TEXT_EMBEDDER) is not None
        if not self._has_embedder:
            context.issues.add(
                Severity.INFO,
                "database",
                "No text embedder configured; vector search is unavailable",
                plugin=self.name,
            )

    # -------------------------------------------------------------------------
    # Schemas
    # -------------------------------------------------------------------------

    @staticmethod
    def _posts_schema() -> pa.Schema:
        return pa.schema([
            ("hash", pa.string()),
            ("path", pa.string()),
            ("slug", pa.string()),
            ("title", pa.string()),
            ("excerpt", pa.string()),
            ("word_count", pa.int64()),
            ("frontmatter", pa.string()),  # JSON-encoded mapping
            ("toc", pa.string()),  # JSON-encoded list
            ("aliases", pa.string()),  # JSON-encoded list
            ("rendered_html", pa.string()),
            ("plain_text", pa.string()),
        ])

    @staticmethod
    def _medias_schema() -> pa.Schema:
        return pa.schema([
            ("hash", pa.string()),
            ("original_path", pa.string()),
            ("filename", pa.string()),
            ("mime_type", pa.string()),
            ("size", pa.int64()),
            ("width", pa.int64()),
            ("height", pa.int64()),
            ("variants", pa.string()),  # JSON-encoded mapping
        ])

    @staticmethod
    def _tags_schema() -> pa.Schema:
        return pa.schema([("tag", pa.string()), ("post_count", pa.int64())])

    @staticmethod
    def _post_tags_schema() -> pa.Schema:
        return pa.schema([("post_hash", pa.string()), ("tag", pa.string())])

    @staticmethod
    def _links_schema() -> pa.Schema:
        return pa.schema([("source_hash", pa.string()), ("target_hash", pa.string())])

    @staticmethod
    def _post_media_schema() -> pa.Schema:
        return pa.schema([("post_hash", pa.string()), ("media_hash", pa.string())])

    @staticmethod
    def _post_frontmatter_schema() -> pa.Schema:
        return pa.schema([
            ("post_hash", pa.string()),
            ("key", pa.string()),
            ("value_type", pa.string()),
            ("value_json", pa.string()),
            ("value_text", pa.string()),  # strings and dates
            ("value_number", pa.float64()),
            ("value_boolean", pa.bool_()),
        ])

    @staticmethod
    def _frontmatter_schema_schema() -> pa.Schema:
        return pa.schema([
            ("key", pa.string()),
            ("column_name", pa.string()),
            ("recommended_type", pa.string()),
            ("column_type", pa.string()),
            ("types", pa.list_(pa.string())),
            ("occurrences", pa.int64()),
            ("nullable", pa.bool_()),
            ("needs_quoting", pa.bool_()),
        ])

    @staticmethod
    def _post_embeddings_schema() -> pa.Schema:
        return pa.schema([
            ("hash", pa.string()),
            ("model", pa.string()),
            ("vector", pa.list_(pa.float32())),
        ])

    # -------------------------------------------------------------------------
    # Rows
    # -------------------------------------------------------------------------

    @staticmethod
    def _columns(rows: list[dict[str, Any]], schema: pa.Schema) -> dict[str, list[Any]]:
        return {name: [row[name] for row in rows] for name in schema.names}

    @staticmethod
    def _frontmatter_row(post_hash: str, key: str, value: Any) -> dict[str, Any]:
        value_type = detect_type(value)
        return {
            "post_hash": post_hash,
            "key": key,
            "value_type": value_type,
            "value_json": json.dumps(value, sort_keys=True, ensure_ascii=False),
            "value_text": value if isinstance(value, str) else None,
            "value_number": float(value) if value_type == "number" else None,
            "value_boolean": value if value_type == "boolean" else None,
        }

    def _tables(self, inputs: DatabaseInputs) -> dict[str, pa.Table]:
        documents = sorted(inputs.documents, key=lambda d: d.hash)
        media = sorted(inputs.media, key=lambda m: m.hash)

        posts = [
            {
                "hash": d.hash,
                "path": d.path,
                "slug": d.slug,
                "title": d.title,
                "excerpt": d.excerpt,
                "word_count": d.word_count,
                "frontmatter": json.dumps(d.frontmatter, sort_keys=True, ensure_ascii=False),
                "toc": json.dumps([t.model_dump() for t in d.toc], ensure_ascii=False),
                "aliases": json.dumps(d.aliases, ensure_ascii=False),
                "rendered_html": d.rendered_html,
                "plain_text": d.plain_text,
            }
            for d in documents
        ]
        medias = [
            {
                "hash": m.hash,
                "original_path": m.original_path,
                "filename": m.filename,
                "mime_type": m.mime_type,
                "size": m.size,
                "width": m.width,
                "height": m.height,
                "variants": json.dumps(
                    {k: v.model_dump() for k, v in sorted(m.variants.items())},
                    sort_keys=True,
                ),
            }
            for m in media
        ]
        post_tags = sorted(
            {(d.hash, tag) for d in documents for tag in d.tags}
        )
        tag_counts: dict[str, int] = {}
        for _, tag in post_tags:
            tag_counts[tag] = tag_counts.get(tag, 0) + 1
        links = sorted({(d.hash, target) for d in documents for target in d.outgoing_links})
        post_media = sorted({(d.hash, m) for d in documents for m in d.media_refs})
        post_frontmatter = [
            self._frontmatter_row(d.hash, key, d.frontmatter[key])
            for d in documents
            for key in sorted(d.frontmatter)
        ]
        schema = inputs.frontmatter_schema
        if schema is None:
            schema, _ = scan_frontmatter_schema(inputs.documents)
        schema_rows = [
            {
                "key": key,
                "column_name": prop.column_name,
                "recommended_type": prop.recommended_type,
                "column_type": prop.column_type,
                "types": prop.types,
                "occurrences": prop.occurrences,
                "nullable": prop.nullable,
                "needs_quoting": prop.needs_quoting,
            }
            for key, prop in sorted(schema.properties.items())
        ]

        tables = {
            "posts": pa.Table.from_pydict(
                self._columns(posts, self._posts_schema()), schema=self._posts_schema()
            ),
            "medias": pa.Table.from_pydict(
                self._columns(medias, self._medias_schema()), schema=self._medias_schema()
            ),
            "tags": pa.Table.from_pydict(
                {
                    "tag": sorted(tag_counts),
                    "post_count": [tag_counts[t] for t in sorted(tag_counts)],
                },
                schema=self._tags_schema(),
            ),
            "post_tags": pa.Table.from_pydict(
                {"post_hash": [p for p, _ in post_tags], "tag": [t for _, t in post_tags]},
                schema=self._post_tags_schema(),
            ),
            "links": pa.Table.from_pydict(
                {"source_hash": [s for s, _ in links], "target_hash": [t for _, t in links]},
                schema=self._links_schema(),
            ),
            "post_media": pa.Table.from_pydict(
                {
                    "post_hash": [p for p, _ in post_media],
                    "media_hash": [m for _, m in post_media],
                },
                schema=self._post_media_schema(),
            ),
            "post_frontmatter": pa.Table.from_pydict(
                self._columns(post_frontmatter, self._post_frontmatter_schema()),
                schema=self._post_frontmatter_schema(),
            ),
            "frontmatter_schema": pa.Table.from_pydict(
                self._columns(schema_rows, self._frontmatter_schema_schema()),
                schema=self._frontmatter_schema_schema(),
            ),
        }

        if inputs.embeddings is not None and inputs.embeddings.vectors:
            vectors = inputs.embeddings.as_map()
            tables["post_embeddings"] = pa.Table.from_pydict(
                {
                    "hash": list(vectors),
                    "model": [inputs.embeddings.model] * len(vectors),
                    "vector": list(vectors.values()),
                },
                schema=self._post_embeddings_schema(),
            )
        return tables

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    @staticmethod
    def _verify(temp_dir: Path, expected: dict[str, int]) -> None:
        """Re-read each table's row count through DuckDB."""
        conn = duckdb.connect()
        try:
            for name, count in expected.items():
                path = str(temp_dir / f"{name}.parquet").replace("'", "''")
                row = conn.execute(f"SELECT COUNT(*) FROM read_parquet('{path}')").fetchone()
                actual = row[0] if row else -1
                if actual != count:
                    raise FatalBuildError(
                        f"Database table '{name}' has {actual} rows, expected {count}"
                    )
        finally:
            conn.close()

    def _build_sync(self, inputs: DatabaseInputs) -> DatabaseBuildResult:
        target = inputs.output_dir / ARTIFACT_NAME
        temp_dir = inputs.output_dir / f".{ARTIFACT_NAME}.tmp-{uuid4().hex}"
        temp_dir.mkdir(parents=True, exist_ok=False)
        try:
            tables = self._tables(inputs)
            row_counts: dict[str, int] = {}
            for name, table in tables.items():
                pq.write_table(table, temp_dir / f"{name}.parquet", compression=self.compression)
                row_counts[name] = table.num_rows

            self._verify(temp_dir, row_counts)

            table_names = sorted(row_counts)
            if self.vector_index == "lancedb" and "post_embeddings" in tables:
                from vault_build.storage.vectors import LanceVectorIndex

                slugs = {d.hash: (d.slug, d.title) for d in inputs.documents}
                embeddings = tables["post_embeddings"].to_pylist()
                rows = [
                    {
                        "hash": r["hash"],
                        "slug": slugs[r["hash"]][0],
                        "title": slugs[r["hash"]][1],
                        "vector": r["vector"],
                    }
                    for r in embeddings
                    if r["hash"] in slugs
                ]
                row_counts["vectors"] = LanceVectorIndex(temp_dir / "vectors").write_posts(rows)
                table_names.append("vectors")

            if target.exists():
                shutil.rmtree(target)
            temp_dir.replace(target)
        except FatalBuildError:
            shutil.rmtree(temp_dir, ignore_errors=True)
            raise
        except Exception as e:
            shutil.rmtree(temp_dir, ignore_errors=True)
            raise FatalBuildError(f"Database build failed: {e}") from e

        return DatabaseBuildResult(
            artifact_path=ARTIFACT_NAME,
            table_names=table_names,
            row_counts=dict(sorted(row_counts.items())),
        )

    async def build(self, inputs: DatabaseInputs) -> DatabaseBuildResult:
        """
        Write the database artifact transactionally.

        Raises:
            FatalBuildError: If any table fails to write or verify
        """
        if inputs.embeddings is None and self._has_embedder:
            logger.debug("Text embedder present but no vectors were produced")
        result = await asyncio.to_thread(self._build_sync, inputs)
        logger.info(
            f"Database: {len(result.table_names)} tables, "
            f"{result.row_counts.get('posts', 0)} posts"
        )
        return result
