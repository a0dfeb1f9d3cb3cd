"""Tests for header parsing and sequence sources."""

from unittest.mock import MagicMock

import pytest

from hmmer_pipeline.errors import SequenceNotFoundError, ServiceError, TransientError
from hmmer_pipeline.sequences import (
    FastaSequenceSource,
    UniProtSequenceFetcher,
    normalize_accession,
    parse_fasta_text,
    parse_header,
    taxon_id_from_header,
)


def test_parse_uniprot_header():
    meta = parse_header(
        ">sp|P69905|HBA_HUMAN Hemoglobin subunit alpha OS=Homo sapiens OX=9606 GN=HBA1 PE=1 SV=2"
    )

    assert meta["database"] == "swissprot"
    assert meta["accession"] == "P69905"
    assert meta["entry_name"] == "HBA_HUMAN"
    assert meta["description"] == "Hemoglobin subunit alpha"
    assert meta["organism"] == "Homo sapiens"
    assert meta["taxon_id"] == 9606
    assert meta["gene"] == "HBA1"


def test_parse_trembl_header():
    meta = parse_header("tr|A0A024R161|A0A024R161_HUMAN Guanine nucleotide-binding protein OS=Homo sapiens OX=9606")

    assert meta["database"] == "trembl"
    assert meta["accession"] == "A0A024R161"


def test_parse_ncbi_header():
    meta = parse_header("WP_000001.1 DNA-binding protein [Escherichia coli K-12]")

    assert meta["identifier"] == "WP_000001.1"
    assert meta["accession"] == "WP_000001.1"
    assert meta["organism"] == "Escherichia coli K-12"
    assert meta["description"] == "DNA-binding protein"
    assert "taxon_id" not in meta


def test_parse_plain_header():
    meta = parse_header("query1")

    assert meta["identifier"] == "query1"
    assert meta["description"] == ""
    assert "organism" not in meta


def test_parse_empty_header():
    assert parse_header("") == {"identifier": "", "description": ""}
    assert parse_header(None) == {"identifier": "", "description": ""}


@pytest.mark.parametrize("text,expected", [
    ("Hemoglobin subunit alpha OS=Homo sapiens OX=9606 GN=HBA1", 9606),
    ("Uncharacterized protein OS=Escherichia coli OX=562", 562),
    ("Protein without tags", None),
    ("OX=not-a-number", None),
    (None, None),
])
def test_taxon_id_from_header(text, expected):
    assert taxon_id_from_header(text) == expected


@pytest.mark.parametrize("raw,expected", [
    ("P69905", "P69905"),
    ("P69905.2", "P69905"),
    ("sp|P69905|HBA_HUMAN", "P69905"),
])
def test_normalize_accession(raw, expected):
    assert normalize_accession(raw) == expected


def test_parse_fasta_text():
    assert parse_fasta_text(">sp|P1|X desc\nMKV\nLLA\n") == "MKVLLA"
    assert parse_fasta_text("") is None


def test_uniprot_fetcher_returns_sequence():
    client = MagicMock()
    client.get_text.return_value = ">sp|P69905|HBA_HUMAN Hemoglobin\nMVLSPADKTN\nVKAAWGKVGA\n"
    fetcher = UniProtSequenceFetcher(client, base_url="https://rest.uniprot.test")

    assert fetcher.fetch("sp|P69905|HBA_HUMAN") == "MVLSPADKTNVKAAWGKVGA"
    client.get_text.assert_called_once_with("https://rest.uniprot.test/uniprotkb/P69905.fasta")


def test_uniprot_fetcher_not_found():
    client = MagicMock()
    client.get_text.side_effect = ServiceError("HTTP 404", status_code=404)
    fetcher = UniProtSequenceFetcher(client)

    with pytest.raises(SequenceNotFoundError) as exc_info:
        fetcher.fetch("P00000")

    assert exc_info.value.accession == "P00000"


def test_uniprot_fetcher_empty_body():
    client = MagicMock()
    client.get_text.return_value = ""

    with pytest.raises(SequenceNotFoundError):
        UniProtSequenceFetcher(client).fetch("P00000")


def test_uniprot_fetcher_propagates_transient_errors():
    client = MagicMock()
    client.get_text.side_effect = TransientError("HTTP 503")

    with pytest.raises(TransientError):
        UniProtSequenceFetcher(client).fetch("P69905")


def test_fasta_source_lookup(tmp_path):
    fasta = tmp_path / "targets.fasta"
    fasta.write_text(
        ">sp|P69905|HBA_HUMAN Hemoglobin OS=Homo sapiens OX=9606\nMVLSPADKTN\n"
        ">custom1 local protein\nMKV\n"
    )

    source = FastaSequenceSource.from_fasta(fasta)

    assert source.fetch("P69905") == "MVLSPADKTN"
    assert source.fetch("sp|P69905|HBA_HUMAN") == "MVLSPADKTN"
    assert source.fetch("custom1") == "MKV"
    with pytest.raises(SequenceNotFoundError):
        source.fetch("Q99999")
