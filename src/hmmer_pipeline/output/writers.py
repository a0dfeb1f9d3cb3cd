"""Dual-format TSV+Parquet writer for hits/domains tables with provenance sidecar."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import polars as pl
import yaml

from hmmer_pipeline.normalize.normalizer import check_referential_integrity


def _write_pair(df: pl.DataFrame, base_path: Path) -> tuple[Path, Path]:
    tsv_path = base_path.with_suffix(".tsv")
    parquet_path = base_path.with_suffix(".parquet")
    df.write_csv(tsv_path, separator="\t", include_header=True)
    df.write_parquet(parquet_path, compression="snappy", use_pyarrow=True)
    return tsv_path, parquet_path


def write_result_tables(
    hits: pl.DataFrame | pl.LazyFrame,
    domains: pl.DataFrame | pl.LazyFrame,
    output_dir: Path,
    filename_base: str = "curated",
    failures: Optional[pl.DataFrame] = None,
    extra_provenance: Optional[dict] = None,
) -> dict:
    """
    Write hits and domains tables to TSV and Parquet with a YAML provenance sidecar.

    Args:
        hits: Hits table (one row per hit, keyed by hit_id)
        domains: Domains table (one row per domain, hit_id references hits)
        output_dir: Directory to write output files (created if doesn't exist)
        filename_base: Base filename; files are {base}_hits.tsv,
            {base}_domains.parquet, {base}.provenance.yaml, ...
        failures: Optional enrichment failures table, written as
            {base}_failures.tsv when non-empty
        extra_provenance: Optional mapping merged into the sidecar
            (e.g. config hash, search settings)

    Returns:
        Dictionary with output file paths:
        {
            "hits_tsv", "hits_parquet", "domains_tsv", "domains_parquet",
            "provenance", and "failures_tsv" when failures were written
        }

    Raises:
        ReferentialIntegrityError: If domains reference missing hits; no
            files are written in that case

    Notes:
        - Rows sorted by hit_id / domain_id for deterministic output
        - Parquet uses snappy compression
    """
    if isinstance(hits, pl.LazyFrame):
        hits = hits.collect()
    if isinstance(domains, pl.LazyFrame):
        domains = domains.collect()

    check_referential_integrity(hits, domains)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    hits = hits.sort("hit_id")
    domains = domains.sort(["hit_id", "domain_id"])

    hits_tsv, hits_parquet = _write_pair(hits, output_dir / f"{filename_base}_hits")
    domains_tsv, domains_parquet = _write_pair(domains, output_dir / f"{filename_base}_domains")
    provenance_path = output_dir / f"{filename_base}.provenance.yaml"

    paths = {
        "hits_tsv": hits_tsv,
        "hits_parquet": hits_parquet,
        "domains_tsv": domains_tsv,
        "domains_parquet": domains_parquet,
        "provenance": provenance_path,
    }

    if failures is not None and failures.height > 0:
        failures_tsv = output_dir / f"{filename_base}_failures.tsv"
        failures.write_csv(failures_tsv, separator="\t", include_header=True)
        paths["failures_tsv"] = failures_tsv

    red_flags = 0
    if "red_flag" in hits.columns:
        red_flags = hits.filter(pl.col("red_flag")).height

    provenance = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "output_files": [p.name for key, p in paths.items() if key != "provenance"],
        "statistics": {
            "total_hits": hits.height,
            "total_domains": domains.height,
            "distinct_queries": hits["query_id"].n_unique() if hits.height else 0,
            "red_flag_hits": red_flags,
            "enrichment_failures": failures.height if failures is not None else 0,
        },
        "hit_columns": hits.columns,
        "domain_columns": domains.columns,
    }
    if extra_provenance:
        provenance.update(extra_provenance)

    with open(provenance_path, "w") as f:
        yaml.dump(provenance, f, default_flow_style=False, sort_keys=False)

    return paths
