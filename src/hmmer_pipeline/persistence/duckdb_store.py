"""DuckDB-based storage for pipeline checkpoints with restart capability."""

from pathlib import Path
from typing import Optional

import duckdb
import polars as pl

from hmmer_pipeline.normalize.models import DOMAINS_TABLE_NAME, HITS_TABLE_NAME
from hmmer_pipeline.normalize.normalizer import check_referential_integrity


class PipelineStore:
    """
    DuckDB-based storage for hits/domains tables between pipeline stages.

    Each stage (search, enrich, curate) saves its tables under a stage
    prefix, so later stages can restart from the last checkpoint without
    re-running remote searches.
    """

    def __init__(self, db_path: Path):
        """
        Initialize PipelineStore with a DuckDB database.

        Args:
            db_path: Path to DuckDB database file. Parent directories
                     are created automatically.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(str(self.db_path))

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS _checkpoints (
                table_name VARCHAR PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                row_count INTEGER,
                description VARCHAR
            )
        """)

    def save_dataframe(
        self,
        df: pl.DataFrame,
        table_name: str,
        description: str = "",
        replace: bool = True,
    ) -> None:
        """
        Save a polars DataFrame to DuckDB as a table.

        Args:
            df: Polars DataFrame to save
            table_name: Name for the DuckDB table
            description: Optional description for checkpoint metadata
            replace: If True, replace existing table; if False, append
        """
        if not isinstance(df, pl.DataFrame):
            raise ValueError("df must be a polars.DataFrame")

        # DuckDB resolves `df` from the local scope
        if replace:
            self.conn.execute(f'CREATE OR REPLACE TABLE "{table_name}" AS SELECT * FROM df')
        else:
            self.conn.execute(f'INSERT INTO "{table_name}" SELECT * FROM df')

        row_count = self.conn.execute(f'SELECT COUNT(*) FROM "{table_name}"').fetchone()[0]
        self.conn.execute("""
            INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        """, [table_name, row_count, description])

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """
        Load a table as a polars DataFrame.

        Returns:
            DataFrame or None if table doesn't exist
        """
        try:
            return self.conn.execute(f'SELECT * FROM "{table_name}"').pl()
        except duckdb.CatalogException:
            return None

    @staticmethod
    def stage_table(stage: str, table: str) -> str:
        """Table name for one stage, e.g. ``enriched_hits``."""
        return f"{stage}_{table}"

    def save_result_tables(
        self,
        stage: str,
        hits: pl.DataFrame,
        domains: pl.DataFrame,
        description: str = "",
    ) -> None:
        """
        Save a linked hits/domains pair for a pipeline stage.

        Raises:
            ReferentialIntegrityError: If domains reference missing hits;
                nothing is written in that case
        """
        check_referential_integrity(hits, domains)
        hits_table = self.stage_table(stage, HITS_TABLE_NAME)
        domains_table = self.stage_table(stage, DOMAINS_TABLE_NAME)

        self.conn.execute("BEGIN TRANSACTION")
        try:
            self.save_dataframe(hits, hits_table, description or f"{stage} hits")
            self.save_dataframe(domains, domains_table, description or f"{stage} domains")
            self.conn.execute("COMMIT")
        except Exception:
            self.conn.execute("ROLLBACK")
            raise

    def load_result_tables(
        self,
        stage: str,
    ) -> Optional[tuple[pl.DataFrame, pl.DataFrame]]:
        """
        Load the hits/domains pair saved for a stage.

        Returns:
            (hits, domains) or None if the stage has no checkpoint

        Raises:
            ReferentialIntegrityError: If the stored tables are inconsistent
        """
        hits = self.load_dataframe(self.stage_table(stage, HITS_TABLE_NAME))
        domains = self.load_dataframe(self.stage_table(stage, DOMAINS_TABLE_NAME))
        if hits is None or domains is None:
            return None
        check_referential_integrity(hits, domains)
        return hits, domains

    def has_checkpoint(self, table_name: str) -> bool:
        """Check if a checkpoint exists for a table."""
        result = self.conn.execute(
            "SELECT COUNT(*) FROM _checkpoints WHERE table_name = ?",
            [table_name]
        ).fetchone()
        return result[0] > 0

    def has_stage(self, stage: str) -> bool:
        """Check if both tables of a stage are checkpointed."""
        return (
            self.has_checkpoint(self.stage_table(stage, HITS_TABLE_NAME))
            and self.has_checkpoint(self.stage_table(stage, DOMAINS_TABLE_NAME))
        )

    def list_checkpoints(self) -> list[dict]:
        """
        List all checkpoints with metadata.

        Returns:
            List of checkpoint metadata dicts with keys:
            table_name, created_at, row_count, description
        """
        result = self.conn.execute("""
            SELECT table_name, created_at, row_count, description
            FROM _checkpoints
            ORDER BY created_at DESC
        """).fetchall()

        return [
            {
                "table_name": row[0],
                "created_at": row[1],
                "row_count": row[2],
                "description": row[3],
            }
            for row in result
        ]

    def delete_checkpoint(self, table_name: str) -> None:
        """Delete a checkpoint table and its metadata."""
        self.conn.execute(f'DROP TABLE IF EXISTS "{table_name}"')
        self.conn.execute(
            "DELETE FROM _checkpoints WHERE table_name = ?",
            [table_name]
        )

    def orphan_domain_count(self, stage: str) -> int:
        """Count stored domains whose hit_id has no matching hit."""
        hits_table = self.stage_table(stage, HITS_TABLE_NAME)
        domains_table = self.stage_table(stage, DOMAINS_TABLE_NAME)
        return self.conn.execute(f"""
            SELECT COUNT(*) FROM "{domains_table}" d
            LEFT JOIN "{hits_table}" h ON d.hit_id = h.hit_id
            WHERE h.hit_id IS NULL
        """).fetchone()[0]

    def execute_query(
        self,
        query: str,
        params: Optional[list] = None
    ) -> pl.DataFrame:
        """Execute arbitrary SQL query and return polars DataFrame."""
        if params:
            result = self.conn.execute(query, params)
        else:
            result = self.conn.execute(query)
        return result.pl()

    def close(self) -> None:
        """Close the DuckDB connection."""
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
        """Create PipelineStore from a PipelineConfig."""
        return cls(config.duckdb_path)

