"""Main CLI entry point for hmmer-pipeline.

Provides command group with global options and subcommands for pipeline operations.
"""

import logging
from pathlib import Path

import click

from hmmer_pipeline import __version__
from hmmer_pipeline.config.loader import load_config
from hmmer_pipeline.cli.search_cmd import search
from hmmer_pipeline.cli.enrich_cmd import enrich_cmd
from hmmer_pipeline.cli.curate_cmd import curate_cmd, export


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@click.group()
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Path to pipeline configuration YAML file'
)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable verbose logging (DEBUG level)'
)
@click.pass_context
def cli(ctx, config, verbose):
    """hmmer-pipeline: remote profile-HMM search, enrichment and curation.

    Searches query sequences against remote databases, flattens results into
    linked hits/domains tables, enriches them with lineage and
    physicochemical properties, and filters them for downstream analysis.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Verbose logging enabled")


@cli.command()
@click.pass_context
def info(ctx):
    """Display pipeline information and configuration summary."""
    config_path = ctx.obj['config_path']

    click.echo(f"HMMER Pipeline v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)

        config_hash = config.config_hash()
        click.echo(f"Config Hash: {config_hash[:16]}...")
        click.echo()

        click.echo(click.style("Search Service:", bold=True))
        click.echo(f"  Base URL:   {config.search.base_url}")
        click.echo(f"  Algorithm:  {config.search.algorithm}")
        click.echo(f"  Databases:  {', '.join(config.search.databases)}")
        click.echo(f"  Max Wait:   {config.search.max_wait_seconds}s")
        click.echo()

        click.echo(click.style("Paths:", bold=True))
        click.echo(f"  Data Directory: {config.data_dir}")
        click.echo(f"  Cache Directory: {config.cache_dir}")
        click.echo(f"  DuckDB Path: {config.duckdb_path}")
        click.echo()

        click.echo(click.style("Enrichment:", bold=True))
        click.echo(f"  Taxonomy Mode: {config.taxonomy.mode}")
        click.echo(f"  Property Indices: {', '.join(config.properties.indices)}")
        click.echo(f"  Max Concurrency: {config.api.max_concurrency}")
        click.echo()

        click.echo(click.style("Curation:", bold=True))
        click.echo(f"  E-value Threshold: {config.curation.evalue_threshold:g}")
        click.echo(f"  Deduplicate: {config.curation.deduplicate}")
        click.echo(f"  Reannotate Taxonomy: {config.curation.reannotate_taxonomy}")
        click.echo()

        click.echo(click.style("API Configuration:", bold=True))
        click.echo(f"  Rate Limit: {config.api.rate_limit_per_second} req/s")
        click.echo(f"  Max Retries: {config.api.max_retries}")
        click.echo(f"  Cache TTL: {config.api.cache_ttl_seconds}s")
        click.echo(f"  Timeout: {config.api.timeout_seconds}s")

    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)


# Register commands
cli.add_command(search)
cli.add_command(enrich_cmd)
cli.add_command(curate_cmd)
cli.add_command(export)


if __name__ == '__main__':
    cli()
