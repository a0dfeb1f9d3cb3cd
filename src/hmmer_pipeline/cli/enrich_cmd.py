"""Enrich command: attach sequences, lineage and property profiles to search hits."""

import logging
import sys
from pathlib import Path

import click

from hmmer_pipeline.config.loader import load_config_with_overrides
from hmmer_pipeline.enrichment import FAILURES_TABLE_NAME, enrich, failures_frame
from hmmer_pipeline.persistence import PipelineStore, ProvenanceTracker
from hmmer_pipeline.properties import PropertyCalculator
from hmmer_pipeline.sequences import FastaSequenceSource, UniProtSequenceFetcher
from hmmer_pipeline.taxonomy import TaxonomyResolver

logger = logging.getLogger(__name__)

SOURCE_STAGE = "search"
ENRICHED_STAGE = "enriched"


@click.command('enrich')
@click.option(
    '--taxonomy-mode',
    type=click.Choice(['local', 'remote']),
    default=None,
    help='Taxonomy backend for this run; overrides taxonomy.mode'
)
@click.option(
    '--taxonomy-index',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help='Local lineage index (TSV or Parquet); overrides taxonomy.local_index_path'
)
@click.option(
    '--sequences-fasta',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help='Read target sequences from a local FASTA instead of UniProt'
)
@click.option(
    '--max-workers',
    type=int,
    default=None,
    help='Concurrent remote calls; overrides api.max_concurrency'
)
@click.option(
    '--force',
    is_flag=True,
    help='Re-run enrichment even if an enriched checkpoint exists'
)
@click.pass_context
def enrich_cmd(ctx, taxonomy_mode, taxonomy_index, sequences_fasta, max_workers, force):
    """Enrich searched hits with full sequences, lineage and properties.

    Loads the "search" checkpoint, fetches missing target sequences,
    resolves each taxon id to a canonical lineage and computes
    physicochemical indices per distinct sequence. Row-level failures are
    saved to the enrichment_failures table instead of stopping the run.

    Examples:

        # Remote taxonomy via NCBI Entrez
        hmmer-pipeline enrich

        # Offline: local lineage index and local target sequences
        hmmer-pipeline enrich --taxonomy-mode local \\
            --taxonomy-index taxa.tsv --sequences-fasta targets.fasta
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Hit Enrichment ===", bold=True))
    click.echo()

    store = None
    fetcher = None
    try:
        click.echo("Loading configuration...")
        config = load_config_with_overrides(config_path, {
            "taxonomy.mode": taxonomy_mode,
            "taxonomy.local_index_path": taxonomy_index,
            "api.max_concurrency": max_workers,
        })
        click.echo(click.style(f"  Config loaded: {config_path}", fg='green'))
        click.echo(f"  Taxonomy mode: {config.taxonomy.mode}")
        click.echo(f"  Indices: {', '.join(config.properties.indices)}")
        click.echo()

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        if store.has_stage(ENRICHED_STAGE) and not force:
            click.echo(click.style(
                "Enriched checkpoint exists. Skipping enrichment (use --force to re-run).",
                fg='yellow'
            ))
            return

        tables = store.load_result_tables(SOURCE_STAGE)
        if tables is None:
            click.echo(click.style(
                "No search checkpoint found. Run 'hmmer-pipeline search' first.",
                fg='red'
            ), err=True)
            sys.exit(1)
        hits, domains = tables
        click.echo(f"Loaded {hits.height} hits, {domains.height} domains")
        click.echo()

        if sequences_fasta is not None:
            fetcher = FastaSequenceSource.from_fasta(sequences_fasta)
            sequence_source = f"fasta:{sequences_fasta}"
        else:
            fetcher = UniProtSequenceFetcher.from_config(config)
            sequence_source = fetcher.base_url

        resolver = TaxonomyResolver.from_config(config)
        calculator = PropertyCalculator.from_config(config)

        click.echo("Enriching hits...")
        result = enrich(
            hits,
            domains,
            sequence_fetcher=fetcher,
            taxonomy_mode=config.taxonomy.mode,
            resolver=resolver,
            calculator=calculator,
            max_workers=config.api.max_concurrency,
        )
        click.echo(click.style("  Enrichment finished", fg='green'))
        click.echo()

        provenance.record_step('enrich', {
            'sequence_source': sequence_source,
            'taxonomy_mode': config.taxonomy.mode,
            'indices': calculator.index_names,
            'failures': len(result.failures),
            'cancelled': result.cancelled,
        })

        store.save_result_tables(
            ENRICHED_STAGE, result.hits, result.domains,
            description=f"hits enriched with {config.taxonomy.mode} taxonomy",
        )
        store.save_dataframe(
            failures_frame(result.failures),
            FAILURES_TABLE_NAME,
            description="row-level enrichment failures",
        )
        provenance.save_to_store(store)
        provenance_path = provenance.save_sidecar(Path(config.data_dir) / "enriched.json")

        with_sequence = result.hits.filter(result.hits['full_sequence'].is_not_null()).height
        click.echo(click.style("=== Summary ===", bold=True))
        click.echo(f"Hits: {result.hits.height}")
        click.echo(f"  With sequence: {with_sequence}")
        click.echo(f"  Lineages resolved: {resolver.cache_size()}")
        click.echo(f"  Profiles computed: {calculator.memo_size()}")
        for step, step_failures in result.failures_by_step().items():
            click.echo(click.style(f"  {step} failures: {len(step_failures)}", fg='yellow'))
        click.echo(f"DuckDB Path: {config.duckdb_path}")
        click.echo(f"Provenance: {provenance_path}")
        click.echo()
        click.echo(click.style("Enrichment complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Enrich command failed: {e}", fg='red'), err=True)
        logger.exception("Enrich command failed")
        sys.exit(1)
    finally:
        if fetcher is not None and hasattr(fetcher, 'client'):
            fetcher.client.close()
        if store is not None:
            store.close()
