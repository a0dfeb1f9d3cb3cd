"""Load query sequences from FASTA."""

from pathlib import Path

import structlog
from Bio import SeqIO

from hmmer_pipeline.search.models import Query
from hmmer_pipeline.sequences.header import parse_header

logger = structlog.get_logger()


def read_queries(fasta_path: Path | str) -> list[Query]:
    """Read a FASTA file into Query records.

    Headers go through the header parser; its output is attached as opaque
    metadata, with organism and description lifted onto the Query.

    Raises:
        FileNotFoundError: If the FASTA file doesn't exist
        ValueError: If the file holds no records or repeats an identifier
    """
    fasta_path = Path(fasta_path)
    if not fasta_path.exists():
        raise FileNotFoundError(f"Query FASTA not found: {fasta_path}")

    queries = []
    seen = set()
    for record in SeqIO.parse(str(fasta_path), "fasta"):
        if record.id in seen:
            raise ValueError(f"Duplicate query id in {fasta_path}: {record.id}")
        seen.add(record.id)

        metadata = parse_header(record.description)
        queries.append(Query(
            query_id=record.id,
            sequence=str(record.seq).upper(),
            organism=metadata.get("organism"),
            description=metadata.get("description") or None,
            metadata=metadata,
        ))

    if not queries:
        raise ValueError(f"No sequences found in {fasta_path}")

    logger.info("queries_loaded", path=str(fasta_path), count=len(queries))
    return queries
