"""Fetch full target sequences by accession."""

from io import StringIO
from pathlib import Path
from typing import Protocol

import structlog
from Bio import SeqIO

from hmmer_pipeline.api_clients.base import CachedAPIClient
from hmmer_pipeline.config.schema import PipelineConfig
from hmmer_pipeline.errors import SequenceNotFoundError, ServiceError
from hmmer_pipeline.sequences.header import parse_header

logger = structlog.get_logger()

# UniProt REST API base URL
UNIPROT_API_BASE = "https://rest.uniprot.org"


class SequenceFetcher(Protocol):
    """Sequence source: accession in, full sequence out."""

    def fetch(self, accession: str) -> str:
        """Return the sequence or raise SequenceNotFoundError."""
        ...


def normalize_accession(accession: str) -> str:
    """Strip database prefixes (``sp|P69905|HBA_HUMAN``) and versions."""
    accession = accession.strip()
    if "|" in accession:
        parts = accession.split("|")
        accession = parts[1] if len(parts) > 2 else parts[-1]
    return accession.split(".")[0]


def parse_fasta_text(text: str) -> str | None:
    """Return the first record's sequence from FASTA text, or None."""
    records = list(SeqIO.parse(StringIO(text), "fasta"))
    if not records:
        return None
    sequence = str(records[0].seq)
    return sequence or None


class UniProtSequenceFetcher:
    """Sequence source backed by the UniProt REST FASTA endpoint.

    Uses the cached HTTP client, so repeated accessions across runs are
    served from the SQLite cache without counting against the rate limit.
    """

    def __init__(self, client: CachedAPIClient, base_url: str = UNIPROT_API_BASE):
        self.client = client
        self.base_url = base_url.rstrip("/")

    def fetch(self, accession: str) -> str:
        """Fetch a sequence from UniProt.

        Raises:
            SequenceNotFoundError: On 404/410 or an empty FASTA body
            ServiceError: On other non-retryable HTTP errors
            TransientError: On network failures after retries
        """
        acc = normalize_accession(accession)
        url = f"{self.base_url}/uniprotkb/{acc}.fasta"
        try:
            text = self.client.get_text(url)
        except ServiceError as e:
            if e.status_code in (400, 404, 410):
                raise SequenceNotFoundError(accession) from e
            raise

        sequence = parse_fasta_text(text)
        if sequence is None:
            raise SequenceNotFoundError(accession)

        logger.debug("uniprot_sequence_fetched", accession=acc, length=len(sequence))
        return sequence

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "UniProtSequenceFetcher":
        return cls(CachedAPIClient.from_config(config))


class FastaSequenceSource:
    """Offline sequence source built from a local FASTA file or mapping.

    Records are keyed by their parsed accession and by the raw identifier,
    so both ``P69905`` and ``sp|P69905|HBA_HUMAN`` resolve.
    """

    def __init__(self, sequences: dict[str, str] | None = None):
        self.sequences = dict(sequences or {})

    @classmethod
    def from_fasta(cls, path: Path | str) -> "FastaSequenceSource":
        sequences = {}
        for record in SeqIO.parse(str(path), "fasta"):
            metadata = parse_header(record.description)
            sequence = str(record.seq)
            sequences[record.id] = sequence
            if metadata.get("accession"):
                sequences[metadata["accession"]] = sequence

        logger.info("fasta_sequence_source_loaded", path=str(path), records=len(sequences))
        return cls(sequences)

    def fetch(self, accession: str) -> str:
        sequence = self.sequences.get(accession)
        if sequence is None:
            sequence = self.sequences.get(normalize_accession(accession))
        if not sequence:
            raise SequenceNotFoundError(accession)
        return sequence
