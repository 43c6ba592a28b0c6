import logging

import click

from chain_crawler.cli.utils import (
    batch_delay_option,
    batch_size_option,
    cli_logger_config,
    contract_config_option,
    days_option,
    db_url_option,
    from_block_option,
    group_options,
    json_rpc_option,
    limit_option,
    to_block_option,
)
from chain_crawler.exceptions import BackfillHostError, ConfigError, DatabaseError

# pylint: disable=too-many-arguments,import-outside-toplevel,too-many-locals

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("cli")


@click.group()
def crawler_cli():
    """Command Line Interface for the EVM Chain Crawler"""


@crawler_cli.command(name="migrate-up")
@group_options(db_url_option)
def cli_migrate_up(db_url):
    """
    Create the crawler tables if they do not exist
    """
    from chain_crawler.database.migrations import migrate_up
    from chain_crawler.database.utils import create_db_engine

    cli_logger_config(package_logger)
    if not db_url:
        raise click.UsageError("Database URL not specified... Set with '--db-url' or the DB_URL environment variable")

    click.echo("Starting Database Migrations")
    try:
        migrate_up(create_db_engine(db_url))
    except DatabaseError as e:
        logger.error(e)
        raise click.exceptions.Exit(1)

    click.echo("Database Migration Complete")


@crawler_cli.command(name="crawl")
@group_options(
    json_rpc_option,
    db_url_option,
    from_block_option,
    to_block_option,
    batch_size_option,
    batch_delay_option,
    contract_config_option,
)
def cli_crawl(
    json_rpc: str | None,
    db_url: str | None,
    from_block: int,
    to_block: int,
    batch_size: int,
    batch_delay: float,
    contract_config: str | None,
):
    """Crawls blocks, transactions, token transfers, and contract events for an inclusive block range"""
    from rich.progress import Progress

    from chain_crawler.backfill import BlockchainCrawler
    from chain_crawler.backfill.utils import progress_defaults
    from chain_crawler.config import CrawlerConfig
    from chain_crawler.types.backfill import BatchResult, EntityType

    console = cli_logger_config(package_logger)

    try:
        config = CrawlerConfig(
            json_rpc=json_rpc or "",
            db_url=db_url or "",
            start_block=from_block,
            end_block=to_block,
            batch_size=batch_size,
            contract_config_path=contract_config,
            batch_delay=batch_delay,
        )
        crawler = BlockchainCrawler.from_config(config)
    except (ConfigError, BackfillHostError, DatabaseError) as e:
        logger.error(e)
        raise click.exceptions.Exit(1)

    with Progress(*progress_defaults, console=console) as progress:
        crawl_task = progress.add_task(
            description="Crawling Blocks",
            total=config.end_block - config.start_block + 1,
            failed_batches=0,
        )
        failed_batches = []

        def _update_progress(batch_result: BatchResult):
            if not batch_result.succeeded:
                failed_batches.append(batch_result)
            progress.update(
                crawl_task,
                advance=batch_result.to_block - batch_result.from_block + 1,
                failed_batches=len(failed_batches),
            )

        summary = crawler.crawl(
            start_block=config.start_block,
            end_block=config.end_block,
            batch_size=config.batch_size,
            batch_delay=config.batch_delay,
            on_batch_complete=_update_progress,
        )

    written = ", ".join(f"{summary.total(entity)} {entity.pretty()}" for entity in EntityType)
    logger.info(f"Crawl Complete.  Wrote {written}")

    if summary.failed:
        for batch in summary.failed:
            console.print(f"[red]Failed blocks {batch.from_block} - {batch.to_block}: {batch.reason}")
        raise click.exceptions.Exit(1)


@crawler_cli.command(name="top-tokens")
@group_options(db_url_option, limit_option, days_option)
def cli_top_tokens(db_url: str | None, limit: int, days: int):
    """Lists the tokens with the highest transfer volume over the trailing window"""
    from rich.table import Table

    from chain_crawler.database.readers import get_top_tokens_by_volume
    from chain_crawler.database.utils import create_db_engine, create_session

    console = cli_logger_config(package_logger)
    if not db_url:
        raise click.UsageError("Database URL not specified... Set with '--db-url' or the DB_URL environment variable")

    try:
        db_session = create_session(create_db_engine(db_url))
    except DatabaseError as e:
        logger.error(e)
        raise click.exceptions.Exit(1)

    try:
        token_stats = get_top_tokens_by_volume(db_session, limit=limit, days=days)
    except ValueError as e:
        raise click.BadParameter(str(e))
    finally:
        db_session.close()

    stats_table = Table(title=f"Top {limit} Tokens by Volume over {days} Days")
    stats_table.add_column("Token Address", style="bold", no_wrap=True, min_width=42)
    stats_table.add_column("Transfers", justify="right")
    stats_table.add_column("Senders", justify="right")
    stats_table.add_column("Receivers", justify="right")
    stats_table.add_column("Total Volume", justify="right", style="green")

    for stats in token_stats:
        stats_table.add_row(
            stats.token_address,
            str(stats.transfer_count),
            str(stats.unique_senders),
            str(stats.unique_receivers),
            str(stats.total_volume),
        )

    console.print(stats_table)
