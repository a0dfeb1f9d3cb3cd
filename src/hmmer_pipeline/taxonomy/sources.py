"""Taxonomy backends: pre-loaded local index and NCBI Taxonomy via Entrez."""

from http.client import HTTPException
from pathlib import Path
from typing import Optional, Protocol
from urllib.error import HTTPError

import polars as pl
import structlog
from Bio import Entrez
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hmmer_pipeline.api_clients.base import is_retryable_status
from hmmer_pipeline.api_clients.ratelimit import RateLimiter
from hmmer_pipeline.errors import (
    ServiceError,
    TaxonomyNotLoadedError,
    TransientError,
    UnknownTaxonError,
)
from hmmer_pipeline.taxonomy.models import TaxonLineage

logger = structlog.get_logger()

TAXON_ID_COLUMN = "taxon_id"


class TaxonomySource(Protocol):
    """Capability shared by all taxonomy backends."""

    name: str

    def lookup(self, taxon_id: int) -> TaxonLineage:
        """Return the lineage for taxon_id or raise UnknownTaxonError."""
        ...


class LocalTaxonomySource:
    """Offline lineage lookup backed by an in-memory index.

    The index is a wide table with a ``taxon_id`` column and one column per
    rank, ordered broad to specific. Null cells mean the rank is absent.
    """

    name = "local"

    def __init__(self, table: pl.DataFrame | None = None):
        self._index: dict[int, TaxonLineage] | None = None
        if table is not None:
            self.load_table(table)

    @property
    def is_loaded(self) -> bool:
        return self._index is not None

    def load_table(self, table: pl.DataFrame) -> None:
        """Build the lookup index from a wide lineage table."""
        if TAXON_ID_COLUMN not in table.columns:
            raise ValueError(f"Lineage table needs a '{TAXON_ID_COLUMN}' column")

        rank_columns = [c for c in table.columns if c != TAXON_ID_COLUMN]
        index: dict[int, TaxonLineage] = {}
        for row in table.iter_rows(named=True):
            taxon_id = row[TAXON_ID_COLUMN]
            if taxon_id is None:
                continue
            index[int(taxon_id)] = TaxonLineage.from_pairs(
                taxon_id,
                ((rank, row[rank]) for rank in rank_columns),
            )
        self._index = index

        logger.info(
            "local_taxonomy_loaded",
            taxa=len(index),
            ranks=rank_columns,
        )

    def load(self, path: Path | str) -> "LocalTaxonomySource":
        """Load a TSV or Parquet lineage index from disk."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Taxonomy index not found: {path}")

        if path.suffix == ".parquet":
            table = pl.read_parquet(path)
        else:
            table = pl.read_csv(path, separator="\t", infer_schema_length=0)
            table = table.with_columns(pl.col(TAXON_ID_COLUMN).cast(pl.Int64))

        self.load_table(table)
        return self

    @classmethod
    def from_file(cls, path: Path | str) -> "LocalTaxonomySource":
        return cls().load(path)

    def lookup(self, taxon_id: int) -> TaxonLineage:
        if self._index is None:
            raise TaxonomyNotLoadedError(
                "Local taxonomy index must be loaded before lookups"
            )
        try:
            return self._index[int(taxon_id)]
        except KeyError:
            raise UnknownTaxonError(taxon_id, self.name) from None


def _record_to_lineage(taxon_id: int, record: dict) -> TaxonLineage:
    """Convert one Entrez taxonomy record to a TaxonLineage.

    LineageEx lists ancestors broad to specific; the record's own rank and
    name close the lineage.
    """
    pairs = [
        (ancestor.get("Rank"), ancestor.get("ScientificName"))
        for ancestor in record.get("LineageEx", [])
    ]
    pairs.append((record.get("Rank"), record.get("ScientificName")))
    return TaxonLineage.from_pairs(taxon_id, pairs)


class RemoteTaxonomySource:
    """NCBI Taxonomy lookups through Biopython Entrez.

    Calls are rate limited process-wide and transient failures (5xx, 429,
    network errors) are retried with exponential backoff.
    """

    name = "remote"

    def __init__(
        self,
        email: Optional[str] = None,
        api_key: Optional[str] = None,
        max_retries: int = 5,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if email:
            Entrez.email = email
        if api_key:
            Entrez.api_key = api_key
        self.max_retries = max_retries
        self.rate_limiter = rate_limiter or RateLimiter(10.0 if api_key else 3.0)

    def _efetch(self, taxon_id: int) -> list:
        self.rate_limiter.wait()
        try:
            handle = Entrez.efetch(db="taxonomy", id=str(taxon_id), retmode="xml")
            try:
                return Entrez.read(handle)
            finally:
                handle.close()
        except HTTPError as e:
            if is_retryable_status(e.code):
                raise TransientError(f"NCBI taxonomy HTTP {e.code} for {taxon_id}") from e
            raise ServiceError(
                f"NCBI taxonomy rejected {taxon_id}: HTTP {e.code}",
                status_code=e.code,
            ) from e
        except (HTTPException, OSError) as e:
            # URLError, socket timeouts, resets and truncated reads
            raise TransientError(f"NCBI taxonomy unreachable for {taxon_id}: {e}") from e
        except RuntimeError as e:
            # Entrez.read raises RuntimeError for <ERROR> payloads
            raise UnknownTaxonError(taxon_id, self.name) from e

    def lookup(self, taxon_id: int) -> TaxonLineage:
        fetch = retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        )(self._efetch)

        records = fetch(taxon_id)
        if not records:
            raise UnknownTaxonError(taxon_id, self.name)

        lineage = _record_to_lineage(taxon_id, records[0])
        logger.debug("remote_taxonomy_lookup", taxon_id=taxon_id, ranks=len(lineage.ranks))
        return lineage
