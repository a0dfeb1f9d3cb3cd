"""Sequence sources and header parsing."""

from hmmer_pipeline.sequences.fetch import (
    UNIPROT_API_BASE,
    FastaSequenceSource,
    SequenceFetcher,
    UniProtSequenceFetcher,
    normalize_accession,
    parse_fasta_text,
)
from hmmer_pipeline.sequences.header import parse_header, taxon_id_from_header

__all__ = [
    "UNIPROT_API_BASE",
    "FastaSequenceSource",
    "SequenceFetcher",
    "UniProtSequenceFetcher",
    "normalize_accession",
    "parse_fasta_text",
    "parse_header",
    "taxon_id_from_header",
]
