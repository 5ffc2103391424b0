"""
LanceDB Vector Index

Optional ANN table over post embeddings, written next to the Parquet tables
when `database_vector_index = "lancedb"`.

LanceDB fragment files carry random ids, so this table is the one database
artifact that is not byte-identical across runs.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Any

import lancedb

POSTS_TABLE = "posts"


class LanceVectorIndex:
    """
    Posts vector table in a LanceDB directory.

    Thread safety:
        Uses thread-local connections since asyncio.to_thread() may run each
        call on a different worker thread.
    """

    def __init__(self, path: Path):
        self.path = path
        self._local = threading.local()

    def _get_db(self) -> lancedb.DBConnection:
        db = getattr(self._local, "db", None)
        if db is None:
            db = lancedb.connect(str(self.path))
            self._local.db = db
        return db

    @staticmethod
    def _table_names(db: lancedb.DBConnection) -> set[str]:
        """
        Return table names across LanceDB API variants.

        Recent LanceDB returns a response object from list_tables() with a
        `tables` attribute, while older versions return a plain list.
        """
        listed = db.list_tables()
        tables = getattr(listed, "tables", listed)
        return {str(name) for name in tables}

    def write_posts(self, rows: list[dict[str, Any]]) -> int:
        """
        Create (or overwrite) the posts table. Blocking.

        Args:
            rows: Dicts with hash, slug, title and vector

        Returns:
            Number of rows written
        """
        if not rows:
            return 0
        self.path.mkdir(parents=True, exist_ok=True)
        db = self._get_db()
        db.create_table(POSTS_TABLE, rows, mode="overwrite")
        return len(rows)

    async def search(
        self,
        query_vector: list[float],
        limit: int = 10,
        threshold: float = 0.0,
    ) -> list[tuple[dict[str, Any], float]]:
        """
        Nearest posts by cosine similarity.

        LanceDB returns distance, converted here to similarity (1 - distance).
        """
        def _search() -> list[tuple[dict[str, Any], float]]:
            db = self._get_db()
            if POSTS_TABLE not in self._table_names(db):
                return []
            results = (
                db.open_table(POSTS_TABLE)
                .search(query_vector)
                .metric("cosine")
                .limit(limit)
                .to_arrow()
            )
            output: list[tuple[dict[str, Any], float]] = []
            for i in range(results.num_rows):
                similarity = 1 - results.column("_distance")[i].as_py()
                if similarity >= threshold:
                    output.append((
                        {
                            "hash": results.column("hash")[i].as_py(),
                            "slug": results.column("slug")[i].as_py(),
                            "title": results.column("title")[i].as_py(),
                        },
                        similarity,
                    ))
            return output

        return await asyncio.to_thread(_search)
