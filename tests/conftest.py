"""Shared fixtures: raw search results and pipeline configs."""

import pytest

from hmmer_pipeline.config.loader import load_config


def make_hit(acc, evalue=1e-20, domains=(), **extra):
    hit = {
        "acc": acc,
        "name": f"{acc}_NAME",
        "desc": f"Protein {acc}",
        "species": "Homo sapiens",
        "evalue": evalue,
        "score": 100.0,
        "domains": list(domains),
    }
    hit.update(extra)
    return hit


def make_domain(ievalue=1e-10, start=1, end=50, **extra):
    domain = {
        "ievalue": ievalue,
        "cevalue": ievalue / 10,
        "alisqfrom": start,
        "alisqto": end,
        "ienv": start,
        "jenv": end,
        "bitscore": 50.0,
        "is_included": True,
    }
    domain.update(extra)
    return domain


@pytest.fixture
def raw_result():
    """Two queries; hits with 2, 0 and 1 domains."""
    return {
        "job_id": "job-test",
        "queries": [
            {
                "query_id": "q1",
                "database": "swissprot",
                "hits": [
                    make_hit("P11111", domains=[make_domain(start=1, end=40), make_domain(start=60, end=90)]),
                    make_hit("P22222", evalue=1e-5),
                ],
            },
            {
                "query_id": "q2",
                "database": "swissprot",
                "hits": [
                    make_hit("P33333", domains=[make_domain(start=5, end=5)]),
                ],
            },
        ],
    }


@pytest.fixture
def test_config(tmp_path):
    """Minimal config with all paths under tmp_path."""
    config_path = tmp_path / "test_config.yaml"
    config_path.write_text(f"""
data_dir: {tmp_path / "data"}
cache_dir: {tmp_path / "cache"}
duckdb_path: {tmp_path / "test.duckdb"}
search:
  base_url: https://hmmer.test/Tools/hmmer
  databases:
    - swissprot
api:
  rate_limit_per_second: 5
  max_retries: 2
  max_concurrency: 2
taxonomy:
  mode: remote
curation:
  evalue_threshold: 0.001
""")
    return load_config(config_path)
