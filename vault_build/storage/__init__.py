"""
Database Storage

Parquet tables queried through DuckDB, with an optional LanceDB vector table.

Modules:
    database: ParquetDatabasePlugin (transactional artifact builder)
    queries: DuckDB read access to a built artifact
    vectors: LanceDB posts index
"""

from vault_build.storage.database import ParquetDatabasePlugin
from vault_build.storage.queries import DatabaseQueries

__all__ = ["ParquetDatabasePlugin", "DatabaseQueries"]
