import logging
import os
from logging import Logger

import click
from rich.console import Console
from rich.logging import RichHandler

from chain_crawler.config import DEFAULT_BATCH_DELAY


def cli_logger_config(instrument_logger: Logger) -> Console:
    rich_console = Console()
    instrument_logger.handlers.clear()

    instrument_logger.addHandler(RichHandler(show_path=False, console=rich_console))
    instrument_logger.setLevel(logging.INFO)
    return rich_console


def group_options(*options):
    """Decorator to group multiple click options together"""

    def wrapper(function):
        for option in reversed(options):
            function = option(function)
        return function

    return wrapper


# -------------------------------------------------------
#    CLI Secrets, Connections, and Configurations
# -------------------------------------------------------
json_rpc_option = click.option(
    "--json-rpc",
    "-rpc",
    "json_rpc",
    default=os.environ.get("JSON_RPC"),
    help="RPC url to crawl blocks from.  If not provided, will use the JSON_RPC environment variable",
)
db_url_option = click.option(
    "--db-url",
    "-db",
    "db_url",
    default=os.environ.get("DB_URL"),
    help="SQLAlchemy DB URL to write crawled data to.  If not provided, will use the DB_URL environment variable",
)
contract_config_option = click.option(
    "--contract-config",
    "-c",
    "contract_config",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to the contract configuration JSON file.  If not provided, contract events are not crawled",
)


# -------------------------------------------------------
#    Crawl Range Parameters
# -------------------------------------------------------
from_block_option = click.option(
    "--from-block",
    "-from",
    "from_block",
    type=int,
    required=True,
    help="First block to crawl (inclusive)",
)
to_block_option = click.option(
    "--to-block",
    "-to",
    "to_block",
    type=int,
    required=True,
    help="Last block to crawl (inclusive)",
)
batch_size_option = click.option(
    "--batch-size",
    "batch_size",
    type=int,
    default=10,
    show_default=True,
    help="Number of blocks processed in each batch",
)
batch_delay_option = click.option(
    "--batch-delay",
    "batch_delay",
    type=float,
    default=DEFAULT_BATCH_DELAY,
    show_default=True,
    help="Seconds to pause between batches, to limit the request rate against the RPC node",
)


# -------------------------------------------------------
#    Query Parameters
# -------------------------------------------------------
limit_option = click.option(
    "--limit",
    "limit",
    type=int,
    default=10,
    show_default=True,
    help="Number of tokens to return",
)
days_option = click.option(
    "--days",
    "days",
    type=int,
    default=7,
    show_default=True,
    help="Length of the trailing window in days",
)
