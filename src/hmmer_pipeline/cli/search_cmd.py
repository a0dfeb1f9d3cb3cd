"""Search command: submit queries to the HMMER service and checkpoint normalized tables.

Runs submit -> poll -> fetch -> normalize and saves the resulting hits and
domains tables as the "search" stage in DuckDB.
"""

import logging
import sys
from pathlib import Path

import click

from hmmer_pipeline.config.loader import load_config_with_overrides
from hmmer_pipeline.errors import SearchCancelledError, SearchTimeoutError
from hmmer_pipeline.normalize import normalize
from hmmer_pipeline.persistence import PipelineStore, ProvenanceTracker
from hmmer_pipeline.search import SearchClient, read_queries

logger = logging.getLogger(__name__)

SEARCH_STAGE = "search"


def _echo_table_summary(hits, domains) -> None:
    click.echo(click.style("=== Summary ===", bold=True))
    click.echo(f"Hits: {hits.height}")
    click.echo(f"Domains: {domains.height}")
    if hits.height:
        click.echo(f"Queries with hits: {hits['query_id'].n_unique()}")


@click.command('search')
@click.option(
    '--fasta',
    'fasta_path',
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='FASTA file of query sequences'
)
@click.option(
    '--db',
    'databases',
    multiple=True,
    help='Target database (repeatable); overrides search.databases'
)
@click.option(
    '--algorithm',
    type=click.Choice(['phmmer', 'jackhmmer', 'hmmscan']),
    default=None,
    help='Search algorithm endpoint; overrides search.algorithm'
)
@click.option(
    '--max-wait',
    type=float,
    default=None,
    help='Give up polling after this many seconds'
)
@click.option(
    '--force',
    is_flag=True,
    help='Re-run the search even if a search checkpoint exists'
)
@click.pass_context
def search(ctx, fasta_path, databases, algorithm, max_wait, force):
    """Search query sequences against remote sequence databases.

    Submits one remote search per (query, database) pair, polls until all
    complete, normalizes the nested result into hits and domains tables and
    saves them to DuckDB as the "search" checkpoint.

    Examples:

        # Search against the configured databases
        hmmer-pipeline search --fasta queries.fasta

        # Search two databases, re-running an existing search
        hmmer-pipeline search --fasta queries.fasta --db swissprot --db pdb --force
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== HMMER Search ===", bold=True))
    click.echo()

    store = None
    try:
        click.echo("Loading configuration...")
        config = load_config_with_overrides(config_path, {
            "search.databases": list(databases) or None,
            "search.algorithm": algorithm,
            "search.max_wait_seconds": max_wait,
        })
        click.echo(click.style(f"  Config loaded: {config_path}", fg='green'))
        click.echo(f"  Algorithm: {config.search.algorithm}")
        click.echo(f"  Databases: {', '.join(config.search.databases)}")
        click.echo()

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        if store.has_stage(SEARCH_STAGE) and not force:
            click.echo(click.style(
                "Search checkpoint exists. Skipping search (use --force to re-run).",
                fg='yellow'
            ))
            click.echo()
            tables = store.load_result_tables(SEARCH_STAGE)
            if tables is not None:
                _echo_table_summary(*tables)
            return

        click.echo("Reading queries...")
        queries = read_queries(fasta_path)
        click.echo(click.style(f"  {len(queries)} queries from {fasta_path}", fg='green'))
        click.echo()

        click.echo("Submitting and polling...")
        try:
            with SearchClient.from_config(config) as client:
                job = client.submit(queries, config.search.databases)
                click.echo(f"  Job: {job.job_id} ({len(job.tasks)} remote tasks)")
                client.wait(job)
                raw = client.fetch_results(job)
        except (SearchTimeoutError, SearchCancelledError) as e:
            click.echo(click.style(f"  Search did not complete: {e}", fg='red'), err=True)
            if e.job is not None:
                click.echo(f"  Remote ids: {', '.join(e.job.remote_ids)}", err=True)
            logger.exception("Search did not complete")
            sys.exit(1)
        click.echo(click.style("  Search complete", fg='green'))
        click.echo()
        provenance.record_step('search', {
            'fasta': str(fasta_path),
            'queries': len(queries),
            'job_id': job.job_id,
            'remote_ids': job.remote_ids,
        })

        click.echo("Normalizing results...")
        hits, domains = normalize(raw)
        provenance.record_step('normalize', {
            'hits': hits.height,
            'domains': domains.height,
        })

        store.save_result_tables(
            SEARCH_STAGE, hits, domains,
            description=f"{config.search.algorithm} search of {len(queries)} queries",
        )
        provenance.save_to_store(store)
        provenance_path = provenance.save_sidecar(Path(config.data_dir) / "search.json")
        click.echo(click.style("  Saved 'search_hits' and 'search_domains' tables", fg='green'))
        click.echo()

        _echo_table_summary(hits, domains)
        click.echo(f"DuckDB Path: {config.duckdb_path}")
        click.echo(f"Provenance: {provenance_path}")
        click.echo()
        click.echo(click.style("Search complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Search command failed: {e}", fg='red'), err=True)
        logger.exception("Search command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
