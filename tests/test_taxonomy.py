"""Tests for taxonomy sources and the caching resolver."""

import threading
import time
from http.client import IncompleteRead
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError

import polars as pl
import pytest
from Bio import Entrez

from hmmer_pipeline.errors import (
    TaxonomyNotLoadedError,
    TransientError,
    UnknownTaxonError,
)
from hmmer_pipeline.taxonomy import (
    LocalTaxonomySource,
    RemoteTaxonomySource,
    TaxonLineage,
    TaxonomyMode,
    TaxonomyResolver,
)
from hmmer_pipeline.api_clients import RateLimiter


HUMAN_TABLE = pl.DataFrame({
    "taxon_id": [9606, 562],
    "superkingdom": ["Eukaryota", "Bacteria"],
    "phylum": ["Chordata", "Pseudomonadota"],
    "class": ["Mammalia", "Gammaproteobacteria"],
    "genus": ["Homo", "Escherichia"],
    "species": ["Homo sapiens", None],
})


class CountingSource:
    """Taxonomy source that records each lookup."""

    name = "counting"

    def __init__(self, delay=0.0, unknown=()):
        self.calls = []
        self.delay = delay
        self.unknown = set(unknown)
        self._lock = threading.Lock()

    def lookup(self, taxon_id):
        with self._lock:
            self.calls.append(taxon_id)
        if self.delay:
            time.sleep(self.delay)
        if taxon_id in self.unknown:
            raise UnknownTaxonError(taxon_id, self.name)
        return TaxonLineage.from_pairs(taxon_id, [("genus", f"G{taxon_id}")])


def test_lineage_from_pairs_normalizes_ranks():
    lineage = TaxonLineage.from_pairs(9606, [
        ("no rank", "cellular organisms"),
        ("Domain", "Eukaryota"),
        ("clade", "Opisthokonta"),
        ("kingdom", "Metazoa"),
        ("species", "Homo sapiens"),
        ("genus", ""),
    ])

    assert lineage.ranks == (
        ("superkingdom", "Eukaryota"),
        ("kingdom", "Metazoa"),
        ("species", "Homo sapiens"),
    )
    assert lineage.get("genus") is None
    columns = lineage.canonical_columns()
    assert columns["lineage_superkingdom"] == "Eukaryota"
    assert columns["lineage_genus"] is None
    assert len(columns) == 8


def test_local_source_lookup():
    source = LocalTaxonomySource(HUMAN_TABLE)

    lineage = source.lookup(9606)

    assert lineage.get("genus") == "Homo"
    assert [rank for rank, _ in lineage.ranks] == [
        "superkingdom", "phylum", "class", "genus", "species",
    ]
    assert source.lookup(562).get("species") is None


def test_local_source_unknown_taxon():
    source = LocalTaxonomySource(HUMAN_TABLE)

    with pytest.raises(UnknownTaxonError) as exc_info:
        source.lookup(10090)

    assert exc_info.value.taxon_id == 10090


def test_local_source_not_loaded():
    with pytest.raises(TaxonomyNotLoadedError):
        LocalTaxonomySource().lookup(9606)


def test_local_source_from_tsv(tmp_path):
    path = tmp_path / "taxa.tsv"
    path.write_text(
        "taxon_id\tsuperkingdom\tgenus\tspecies\n"
        "9606\tEukaryota\tHomo\tHomo sapiens\n"
        "562\tBacteria\tEscherichia\t\n"
    )

    source = LocalTaxonomySource.from_file(path)

    assert source.is_loaded
    assert source.lookup(9606).get("species") == "Homo sapiens"
    assert source.lookup(562).get("species") is None


def test_local_source_from_parquet(tmp_path):
    path = tmp_path / "taxa.parquet"
    HUMAN_TABLE.write_parquet(path)

    source = LocalTaxonomySource.from_file(path)

    assert source.lookup(9606).get("class") == "Mammalia"


def test_resolve_is_idempotent_and_cached():
    source = CountingSource()
    resolver = TaxonomyResolver({TaxonomyMode.LOCAL: source}, default_mode="local")

    first = resolver.resolve(9606)
    second = resolver.resolve(9606)

    assert first == second
    assert source.calls == [9606]
    assert resolver.lookup_count == 1
    assert resolver.cached(9606) == first


def test_concurrent_resolve_single_lookup():
    """Many threads asking for one id share one lookup."""
    source = CountingSource(delay=0.05)
    resolver = TaxonomyResolver({"local": source}, default_mode="local")
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(resolver.resolve(9606))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 8
    assert all(r == results[0] for r in results)
    assert source.calls == [9606]


def test_failed_lookup_not_cached():
    source = CountingSource(unknown={1})
    resolver = TaxonomyResolver({"local": source}, default_mode="local")

    with pytest.raises(UnknownTaxonError):
        resolver.resolve(1)
    with pytest.raises(UnknownTaxonError):
        resolver.resolve(1)

    assert source.calls == [1, 1]
    assert resolver.cache_size() == 0


def test_mode_selects_source_per_call():
    local = CountingSource()
    remote = CountingSource()
    resolver = TaxonomyResolver({"local": local, "remote": remote})

    resolver.resolve(9606, "local")
    resolver.resolve(9606, TaxonomyMode.REMOTE)

    assert local.calls == [9606]
    assert remote.calls == [9606]
    assert resolver.cache_size() == 2


def test_unconfigured_mode_rejected():
    resolver = TaxonomyResolver({"remote": CountingSource()})

    with pytest.raises(ValueError):
        resolver.resolve(9606, "local")


def _entrez_record():
    return [{
        "TaxId": "9606",
        "ScientificName": "Homo sapiens",
        "Rank": "species",
        "LineageEx": [
            {"TaxId": "131567", "ScientificName": "cellular organisms", "Rank": "no rank"},
            {"TaxId": "2759", "ScientificName": "Eukaryota", "Rank": "superkingdom"},
            {"TaxId": "33208", "ScientificName": "Metazoa", "Rank": "kingdom"},
            {"TaxId": "7711", "ScientificName": "Chordata", "Rank": "phylum"},
            {"TaxId": "40674", "ScientificName": "Mammalia", "Rank": "class"},
            {"TaxId": "9443", "ScientificName": "Primates", "Rank": "order"},
            {"TaxId": "9604", "ScientificName": "Hominidae", "Rank": "family"},
            {"TaxId": "9605", "ScientificName": "Homo", "Rank": "genus"},
        ],
    }]


def test_remote_source_parses_lineage():
    source = RemoteTaxonomySource(max_retries=2, rate_limiter=RateLimiter(1000))

    with patch.object(Entrez, "efetch", return_value=MagicMock()) as mock_efetch, \
            patch.object(Entrez, "read", return_value=_entrez_record()):
        lineage = source.lookup(9606)

    mock_efetch.assert_called_once_with(db="taxonomy", id="9606", retmode="xml")
    columns = lineage.canonical_columns()
    assert columns["lineage_superkingdom"] == "Eukaryota"
    assert columns["lineage_order"] == "Primates"
    assert columns["lineage_species"] == "Homo sapiens"


def test_remote_source_empty_record_is_unknown():
    source = RemoteTaxonomySource(max_retries=2, rate_limiter=RateLimiter(1000))

    with patch.object(Entrez, "efetch", return_value=MagicMock()), \
            patch.object(Entrez, "read", return_value=[]):
        with pytest.raises(UnknownTaxonError):
            source.lookup(999999999)


def test_remote_source_retries_server_errors():
    source = RemoteTaxonomySource(max_retries=3, rate_limiter=RateLimiter(1000))
    error = HTTPError("https://eutils.ncbi.nlm.nih.gov", 503, "Service Unavailable", {}, None)

    with patch("time.sleep"), \
            patch.object(Entrez, "efetch", side_effect=error) as mock_efetch:
        with pytest.raises(TransientError):
            source.lookup(9606)

    assert mock_efetch.call_count == 3


@pytest.mark.parametrize("error", [
    IncompleteRead(b"<TaxaSet>"),
    ConnectionResetError("connection reset by peer"),
])
def test_remote_source_broken_transfer_is_transient(error):
    source = RemoteTaxonomySource(max_retries=2, rate_limiter=RateLimiter(1000))

    with patch("time.sleep"), \
            patch.object(Entrez, "efetch", return_value=MagicMock()) as mock_efetch, \
            patch.object(Entrez, "read", side_effect=error):
        with pytest.raises(TransientError):
            source.lookup(9606)

    assert mock_efetch.call_count == 2


def test_remote_resolver_through_entrez():
    source = RemoteTaxonomySource(max_retries=2, rate_limiter=RateLimiter(1000))
    resolver = TaxonomyResolver({"remote": source})

    with patch.object(Entrez, "efetch", return_value=MagicMock()) as mock_efetch, \
            patch.object(Entrez, "read", return_value=_entrez_record()):
        resolver.resolve(9606)
        resolver.resolve(9606)

    assert mock_efetch.call_count == 1


def test_resolver_from_config_local_without_index(test_config):
    config = test_config.model_copy(
        update={"taxonomy": test_config.taxonomy.model_copy(update={"mode": "local"})}
    )

    with pytest.raises(ValueError):
        TaxonomyResolver.from_config(config)


def test_resolver_from_config_with_local_index(test_config, tmp_path):
    path = tmp_path / "taxa.parquet"
    HUMAN_TABLE.write_parquet(path)
    config = test_config.model_copy(
        update={"taxonomy": test_config.taxonomy.model_copy(
            update={"mode": "local", "local_index_path": path}
        )}
    )

    resolver = TaxonomyResolver.from_config(config)

    assert set(resolver.modes) == {TaxonomyMode.LOCAL, TaxonomyMode.REMOTE}
    assert resolver.default_mode == TaxonomyMode.LOCAL
    assert resolver.resolve(9606).get("genus") == "Homo"
