"""Curate and export commands: filter enriched hits and write final tables."""

import logging
import sys
from pathlib import Path

import click

from hmmer_pipeline.config.loader import load_config_with_overrides
from hmmer_pipeline.curation import curate
from hmmer_pipeline.enrichment import FAILURES_TABLE_NAME
from hmmer_pipeline.output import write_result_tables
from hmmer_pipeline.persistence import PipelineStore, ProvenanceTracker
from hmmer_pipeline.taxonomy import TaxonomyResolver

logger = logging.getLogger(__name__)

SOURCE_STAGE = "enriched"
CURATED_STAGE = "curated"


@click.command('curate')
@click.option(
    '--evalue',
    type=float,
    default=None,
    help='Maximum e-value for hits and domains; overrides curation.evalue_threshold'
)
@click.option(
    '--no-dedup',
    is_flag=True,
    help='Keep repeated (sequence, taxon) hits'
)
@click.option(
    '--reannotate-taxonomy',
    type=click.Choice(['none', 'original', 'filtered']),
    default=None,
    help='Lineage after filtering; overrides curation.reannotate_taxonomy'
)
@click.pass_context
def curate_cmd(ctx, evalue, no_dedup, reannotate_taxonomy):
    """Deduplicate, filter by e-value and flag unsupported hits.

    Loads the "enriched" checkpoint and saves the "curated" checkpoint.
    Hits significant at full-sequence level but without a significant
    domain are marked with red_flag for manual inspection.

    Examples:

        hmmer-pipeline curate --evalue 1e-5
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Curation ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_config_with_overrides(config_path, {
            "curation.evalue_threshold": evalue,
            "curation.deduplicate": False if no_dedup else None,
            "curation.reannotate_taxonomy": reannotate_taxonomy,
        })
        click.echo(f"  E-value threshold: {config.curation.evalue_threshold:g}")
        click.echo(f"  Deduplicate: {config.curation.deduplicate}")
        click.echo(f"  Taxonomy after filtering: {config.curation.reannotate_taxonomy}")
        click.echo()

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        tables = store.load_result_tables(SOURCE_STAGE)
        if tables is None:
            click.echo(click.style(
                "No enriched checkpoint found. Run 'hmmer-pipeline enrich' first.",
                fg='red'
            ), err=True)
            sys.exit(1)
        hits, domains = tables

        resolver = None
        if config.curation.reannotate_taxonomy == "filtered":
            resolver = TaxonomyResolver.from_config(config)

        result = curate(hits, domains, config.curation, resolver=resolver)

        provenance.record_step('curate', {
            'evalue_threshold': config.curation.evalue_threshold,
            'deduplicate': config.curation.deduplicate,
            'reannotate_taxonomy': config.curation.reannotate_taxonomy,
            'hits_in': hits.height,
            'hits_out': result.hits.height,
            'domains_out': result.domains.height,
            'red_flags': result.flagged.height,
        })
        store.save_result_tables(
            CURATED_STAGE, result.hits, result.domains,
            description=f"curated at e-value <= {config.curation.evalue_threshold:g}",
        )
        provenance.save_to_store(store)
        provenance_path = provenance.save_sidecar(Path(config.data_dir) / "curated.json")

        click.echo(click.style("=== Summary ===", bold=True))
        click.echo(f"Hits: {hits.height} -> {result.hits.height}")
        click.echo(f"Domains: {domains.height} -> {result.domains.height}")
        if result.flagged.height:
            click.echo(click.style(
                f"Red-flag hits (no significant domain): {result.flagged.height}",
                fg='yellow'
            ))
        if result.failures:
            click.echo(click.style(
                f"Taxonomy re-annotation failures: {len(result.failures)}",
                fg='yellow'
            ))
        click.echo(f"Provenance: {provenance_path}")
        click.echo()
        click.echo(click.style("Curation complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Curate command failed: {e}", fg='red'), err=True)
        logger.exception("Curate command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()


@click.command('export')
@click.option(
    '--stage',
    type=click.Choice(['search', 'enriched', 'curated']),
    default=CURATED_STAGE,
    help='Checkpoint to export (default: curated)'
)
@click.option(
    '--output-dir',
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help='Output directory (default: {data_dir}/export)'
)
@click.pass_context
def export(ctx, stage, output_dir):
    """Export a checkpoint's hits and domains tables as TSV and Parquet.

    Writes {stage}_hits and {stage}_domains in both formats plus a YAML
    provenance sidecar. Enrichment failures are written alongside when the
    store has any.
    """
    config_path = ctx.obj['config_path']

    store = None
    try:
        config = load_config_with_overrides(config_path, {})
        store = PipelineStore.from_config(config)

        tables = store.load_result_tables(stage)
        if tables is None:
            click.echo(click.style(f"No '{stage}' checkpoint found.", fg='red'), err=True)
            sys.exit(1)
        hits, domains = tables

        failures = None
        if stage != "search":
            failures = store.load_dataframe(FAILURES_TABLE_NAME)

        if output_dir is None:
            output_dir = Path(config.data_dir) / "export"

        provenance = ProvenanceTracker.from_config(config)
        paths = write_result_tables(
            hits,
            domains,
            output_dir,
            filename_base=stage,
            failures=failures,
            extra_provenance={
                "pipeline_version": provenance.pipeline_version,
                "config_hash": provenance.config_hash,
                "search_settings": provenance.search_settings,
            },
        )

        click.echo(click.style(f"=== Export: {stage} ===", bold=True))
        for key, path in paths.items():
            click.echo(f"  {key}: {path}")
        click.echo()
        click.echo(click.style("Export complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Export command failed: {e}", fg='red'), err=True)
        logger.exception("Export command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
