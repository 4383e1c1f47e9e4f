"""DuckDB checkpoint tables for oracle answers, catalogs and rankings."""

from pathlib import Path
from typing import Optional

import duckdb
import polars as pl

CHECKPOINTS_DDL = """
    CREATE TABLE IF NOT EXISTS _checkpoints (
        table_name VARCHAR PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        row_count INTEGER,
        description VARCHAR
    )
"""


class PipelineStore:
    """
    One DuckDB file holding every census table.

    Each saved frame replaces its table and refreshes a row in
    ``_checkpoints``, so a rerun can tell which oracle answers already
    exist and skip the rate-limited lookups behind them.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = duckdb.connect(str(self.db_path))
        self.conn.execute(CHECKPOINTS_DDL)

    def save_dataframe(self, df: pl.DataFrame, table_name: str, description: str = "") -> None:
        """
        Replace ``table_name`` with the contents of ``df``.

        Raises:
            ValueError: If df is not a polars DataFrame
        """
        if not isinstance(df, pl.DataFrame):
            raise ValueError("df must be polars.DataFrame")

        # DuckDB resolves ``df`` from the local scope
        self.conn.execute(f"CREATE OR REPLACE TABLE {table_name} AS SELECT * FROM df")
        self.conn.execute(
            "INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at) "
            "VALUES (?, ?, ?, CURRENT_TIMESTAMP)",
            [table_name, df.height, description],
        )

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """Return the table as a polars frame, or None if it was never saved."""
        try:
            return self.conn.execute(f"SELECT * FROM {table_name}").pl()
        except duckdb.CatalogException:
            return None

    def has_checkpoint(self, table_name: str) -> bool:
        count = self.conn.execute(
            "SELECT COUNT(*) FROM _checkpoints WHERE table_name = ?",
            [table_name],
        ).fetchone()[0]
        return count > 0

    def list_checkpoints(self) -> list[dict]:
        """Saved tables, newest first, with created_at, row_count and description."""
        columns = ["table_name", "created_at", "row_count", "description"]
        rows = self.conn.execute(
            f"SELECT {', '.join(columns)} FROM _checkpoints ORDER BY created_at DESC"
        ).fetchall()
        return [dict(zip(columns, row)) for row in rows]

    def export_parquet(self, table_name: str, output_path: Path) -> Path:
        """Write a saved table to a Parquet file and return its path."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn.execute(
            f"COPY {table_name} TO ? (FORMAT PARQUET)",
            [str(output_path)],
        )
        return output_path

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "PipelineStore":
        return cls(config.duckdb_path)
