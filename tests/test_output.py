"""Tests for dual-format hits/domains export."""

import polars as pl
import pytest
import yaml

from hmmer_pipeline.curation import annotate_domain_support
from hmmer_pipeline.enrichment import Failure, failures_frame
from hmmer_pipeline.errors import ReferentialIntegrityError
from hmmer_pipeline.normalize import normalize
from hmmer_pipeline.output import write_result_tables


@pytest.fixture
def annotated(raw_result):
    hits, domains = normalize(raw_result)
    return annotate_domain_support(hits, domains, threshold=0.001), domains


def test_writes_tsv_and_parquet_pairs(annotated, tmp_path):
    hits, domains = annotated

    paths = write_result_tables(hits, domains, tmp_path / "out")

    for key in ("hits_tsv", "hits_parquet", "domains_tsv", "domains_parquet", "provenance"):
        assert paths[key].exists()
    assert paths["hits_tsv"].name == "curated_hits.tsv"
    assert "failures_tsv" not in paths


def test_formats_hold_identical_data(annotated, tmp_path):
    hits, domains = annotated

    paths = write_result_tables(hits, domains, tmp_path)

    from_parquet = pl.read_parquet(paths["hits_parquet"])
    from_tsv = pl.read_csv(paths["hits_tsv"], separator="\t")
    assert from_parquet.height == from_tsv.height == hits.height
    assert from_parquet.columns == from_tsv.columns == hits.columns
    assert from_tsv["target_accession"].to_list() == hits["target_accession"].to_list()
    assert pl.read_parquet(paths["domains_parquet"]).height == domains.height


def test_rows_sorted_by_keys(annotated, tmp_path):
    hits, domains = annotated

    paths = write_result_tables(hits.reverse(), domains.reverse(), tmp_path)

    assert pl.read_parquet(paths["hits_parquet"])["hit_id"].to_list() == [1, 2, 3]
    assert pl.read_parquet(paths["domains_parquet"])["domain_id"].to_list() == [1, 2, 3]


def test_provenance_statistics(annotated, tmp_path):
    hits, domains = annotated

    paths = write_result_tables(
        hits, domains, tmp_path,
        filename_base="run1",
        extra_provenance={"config_hash": "abc"},
    )

    with open(paths["provenance"]) as f:
        provenance = yaml.safe_load(f)

    assert provenance["statistics"]["total_hits"] == 3
    assert provenance["statistics"]["total_domains"] == 3
    assert provenance["statistics"]["distinct_queries"] == 2
    # P22222 has no domains
    assert provenance["statistics"]["red_flag_hits"] == 1
    assert provenance["config_hash"] == "abc"
    assert "run1_hits.tsv" in provenance["output_files"]
    assert provenance["hit_columns"] == hits.columns


def test_failures_written_when_present(annotated, tmp_path):
    hits, domains = annotated
    failures = failures_frame([Failure("taxonomy", "562", "UnknownTaxonError", "Unknown taxon id 562")])

    paths = write_result_tables(hits, domains, tmp_path, failures=failures)

    assert pl.read_csv(paths["failures_tsv"], separator="\t")["step"].to_list() == ["taxonomy"]


def test_lazyframes_accepted(annotated, tmp_path):
    hits, domains = annotated

    paths = write_result_tables(hits.lazy(), domains.lazy(), tmp_path)

    assert pl.read_parquet(paths["hits_parquet"]).height == 3


def test_orphan_domains_rejected(annotated, tmp_path):
    hits, domains = annotated

    with pytest.raises(ReferentialIntegrityError):
        write_result_tables(hits.filter(pl.col("hit_id") != 1), domains, tmp_path / "bad")

    assert not (tmp_path / "bad").exists()
