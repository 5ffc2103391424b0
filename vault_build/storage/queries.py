"""
DuckDB Query Layer

SQL queries over a published `database/` artifact.

Example:
    >>> queries = DatabaseQueries(Path("./dist/database"))
    >>> await queries.count("posts")
    >>> post = await queries.get_post_by_slug("getting-started")
    >>> await queries.search_similar(vector, limit=5)
"""

from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path
from typing import Any

import duckdb

TABLES = (
    "posts",
    "medias",
    "tags",
    "post_tags",
    "links",
    "post_media",
    "post_frontmatter",
    "frontmatter_schema",
    "post_embeddings",
)


class DatabaseQueries:
    """
    Read-only DuckDB access to the Parquet tables.

    Thread safety:
        Uses thread-local storage for connections since DuckDB connections
        are not thread-safe and asyncio.to_thread() may use different threads.

    DuckDB reads Parquet files directly without loading into memory.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._local = threading.local()

    def _get_conn(self) -> duckdb.DuckDBPyConnection:
        """Get thread-local DuckDB connection, creating if needed."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = duckdb.connect()
            self._register_views(conn)
            self._local.conn = conn
        return conn

    def _register_views(self, conn: duckdb.DuckDBPyConnection) -> None:
        """Register Parquet files as views if they exist."""
        for table in TABLES:
            path = self.db_path / f"{table}.parquet"
            if path.exists():
                escaped = str(path).replace("'", "''")
                conn.execute(f"""
                    CREATE OR REPLACE VIEW {table} AS
                    SELECT * FROM read_parquet('{escaped}')
                """)

    async def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def table_names(self) -> list[str]:
        return [t for t in TABLES if (self.db_path / f"{t}.parquet").exists()]

    async def count(self, table: str) -> int:
        """Row count of a table (0 when the table is absent)."""
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")

        def _query() -> int:
            conn = self._get_conn()
            try:
                row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            except duckdb.CatalogException:
                return 0
            return int(row[0]) if row else 0

        return await asyncio.to_thread(_query)

    async def row_counts(self) -> dict[str, int]:
        return {t: await self.count(t) for t in self.table_names()}

    async def get_post_by_slug(self, slug: str) -> dict[str, Any] | None:
        """Post row with JSON columns decoded."""
        def _query() -> dict[str, Any] | None:
            conn = self._get_conn()
            try:
                cursor = conn.execute("SELECT * FROM posts WHERE slug = ?", [slug])
                row = cursor.fetchone()
            except duckdb.CatalogException:
                return None
            if not row:
                return None
            names = [d[0] for d in cursor.description]
            post = dict(zip(names, row))
            for key in ("frontmatter", "toc", "aliases"):
                post[key] = json.loads(post[key]) if post.get(key) else None
            return post

        return await asyncio.to_thread(_query)

    async def backlinks(self, post_hash: str) -> list[str]:
        """Slugs of posts linking to the given post, sorted."""
        def _query() -> list[str]:
            conn = self._get_conn()
            try:
                rows = conn.execute(
                    """
                    SELECT p.slug FROM links l
                    JOIN posts p ON p.hash = l.source_hash
                    WHERE l.target_hash = ?
                    ORDER BY p.slug
                    """,
                    [post_hash],
                ).fetchall()
            except duckdb.CatalogException:
                return []
            return [r[0] for r in rows]

        return await asyncio.to_thread(_query)

    async def posts_with_tag(self, tag: str) -> list[str]:
        def _query() -> list[str]:
            conn = self._get_conn()
            try:
                rows = conn.execute(
                    """
                    SELECT p.slug FROM post_tags t
                    JOIN posts p ON p.hash = t.post_hash
                    WHERE t.tag = ?
                    ORDER BY p.slug
                    """,
                    [tag],
                ).fetchall()
            except duckdb.CatalogException:
                return []
            return [r[0] for r in rows]

        return await asyncio.to_thread(_query)

    async def frontmatter_values(self, key: str) -> list[tuple[str, Any]]:
        """(slug, value) for every post that sets a frontmatter key, by slug."""
        def _query() -> list[tuple[str, Any]]:
            conn = self._get_conn()
            try:
                rows = conn.execute(
                    """
                    SELECT p.slug, f.value_json FROM post_frontmatter f
                    JOIN posts p ON p.hash = f.post_hash
                    WHERE f.key = ?
                    ORDER BY p.slug
                    """,
                    [key],
                ).fetchall()
            except duckdb.CatalogException:
                return []
            return [(r[0], json.loads(r[1])) for r in rows]

        return await asyncio.to_thread(_query)

    async def posts_where(self, key: str, value: float | bool | str) -> list[str]:
        """
        Slugs of posts whose frontmatter key equals a value.

        Numbers and booleans match the typed columns, so `3` and `3.0` are
        the same; strings (including dates) match value_text.
        """
        if isinstance(value, bool):
            column = "value_boolean"
        elif isinstance(value, (int, float)):
            column = "value_number"
        else:
            column = "value_text"

        def _query() -> list[str]:
            conn = self._get_conn()
            try:
                rows = conn.execute(
                    f"""
                    SELECT p.slug FROM post_frontmatter f
                    JOIN posts p ON p.hash = f.post_hash
                    WHERE f.key = ? AND f.{column} = ?
                    ORDER BY p.slug
                    """,
                    [key, value],
                ).fetchall()
            except duckdb.CatalogException:
                return []
            return [r[0] for r in rows]

        return await asyncio.to_thread(_query)

    async def search_similar(
        self,
        query_vector: list[float],
        limit: int = 10,
    ) -> list[tuple[str, float]]:
        """
        Posts ranked by cosine similarity to a query vector.

        Returns (slug, score) pairs, best first. Empty when the database was
        built without a text embedder.
        """
        def _query() -> list[tuple[str, float]]:
            if not (self.db_path / "post_embeddings.parquet").exists():
                return []
            conn = self._get_conn()
            rows = conn.execute(
                """
                SELECT p.slug,
                       list_cosine_similarity(e.vector, ?::FLOAT[]) AS score
                FROM post_embeddings e
                JOIN posts p ON p.hash = e.hash
                ORDER BY score DESC, p.slug
                LIMIT ?
                """,
                [query_vector, limit],
            ).fetchall()
            return [(r[0], float(r[1])) for r in rows]

        return await asyncio.to_thread(_query)
