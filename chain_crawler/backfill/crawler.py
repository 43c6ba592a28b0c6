import logging
from typing import Callable

from eth_utils import is_address, to_checksum_address

from chain_crawler.config import ContractRegistry, CrawlerConfig, load_contract_config
from chain_crawler.database.migrations import migrate_up
from chain_crawler.database.models import Block, ContractEvent
from chain_crawler.database.utils import create_db_engine
from chain_crawler.database.writers import Persister
from chain_crawler.decoding import ContractEventDecoder
from chain_crawler.exceptions import BackfillHostError, DecodingError
from chain_crawler.types.backfill import BatchResult, BlockResult, CrawlSummary, EntityType, ProcessingResult
from chain_crawler.utils import maybe_hex_to_int, to_hex

from .chain_client import ChainClient, RPCResponse, Web3ChainClient
from .normalizer import rpc_response_to_block_model, rpc_response_to_transaction_model
from .ranges import RangeScheduler
from .transfers import extract_transfers

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("backfill").getChild("crawler")


class BlockchainCrawler:
    """
    Crawls blocks from an RPC node into the database.  For each block, the block row is written first, followed by
    its transactions, the ERC20 transfers emitted by those transactions, and finally the configured contract events.

    Blocks, batches, and transactions are processed sequentially.  The chain client and database session are owned
    by the crawler, and the contract registry is shared read-only.
    """

    client: ChainClient
    persister: Persister
    contracts: ContractRegistry
    event_decoders: dict[str, ContractEventDecoder]

    def __init__(self, client: ChainClient, persister: Persister, contracts: ContractRegistry | None = None):
        self.client = client
        self.persister = persister
        self.contracts = contracts if contracts is not None else ContractRegistry()
        self.event_decoders = {address: ContractEventDecoder(config) for address, config in self.contracts.items()}

    @classmethod
    def from_config(cls, config: CrawlerConfig) -> "BlockchainCrawler":
        """
        Connects to the RPC node and database, creates the crawler tables, and loads the contract configuration.
        Raises BackfillHostError, DatabaseError, or ConfigError if any of these steps fail.
        """
        client = Web3ChainClient(config.json_rpc)
        client.verify_connection()

        db_engine = create_db_engine(config.db_url)
        migrate_up(db_engine)

        contracts = load_contract_config(config.contract_config_path)
        return cls(client, Persister(db_engine), contracts)

    def process_block(self, block_number: int) -> BlockResult:
        """
        Fetches a block and writes all of its rows.  Failures to fetch the block propagate to the caller.  If the
        block row cannot be written, the block result contains a fatal result and no further rows are written.
        """
        block_result = BlockResult(block_number)

        raw_block = self.client.get_block(block_number)
        block = rpc_response_to_block_model(raw_block)
        block_result.add(self.persister.save_block(block))
        if block_result.fatal_result:
            return block_result

        transfers = []
        for transaction in raw_block.get("transactions") or []:
            tx_result, tx_transfers = self._process_transaction(transaction, block)
            block_result.add(tx_result)
            transfers.extend(tx_transfers)

        block_result.add([self.persister.save_transfer(transfer) for transfer in transfers])

        if self.event_decoders:
            block_result.add(self._process_events(block))

        logger.debug(
            f"Block {block_number}: {block_result.count(EntityType.transactions)} transactions, "
            f"{block_result.count(EntityType.transfers)} transfers, {block_result.count(EntityType.events)} events"
        )
        return block_result

    def _process_transaction(self, transaction: RPCResponse, block: Block) -> tuple[ProcessingResult, list]:
        tx_hash = to_hex(transaction["hash"])

        try:
            receipt = self.client.get_receipt(tx_hash)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error(f"Failed to fetch receipt for transaction {tx_hash}: {e}")
            return ProcessingResult.skipped(EntityType.transactions, tx_hash, "receipt fetch failed"), []

        try:
            tx_model = rpc_response_to_transaction_model(transaction, receipt, block)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed transaction or receipt for {tx_hash}: {e}")
            return ProcessingResult.skipped(EntityType.transactions, tx_hash, "malformed response"), []

        try:
            transfers = extract_transfers(receipt, block)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed receipt logs for {tx_hash}, no token transfers extracted: {e}")
            transfers = []

        return self.persister.save_transaction(tx_model), transfers

    def _process_events(self, block: Block) -> list[ProcessingResult]:
        try:
            logs = self.client.get_logs(block.number, block.number, self.contracts.addresses)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error(f"Failed to query contract events for block {block.number}: {e}")
            return [ProcessingResult.skipped(EntityType.events, str(block.number), "log query failed")]

        results = []
        for log in logs:
            address = log.get("address")
            decoder = self.event_decoders.get(to_checksum_address(address)) if is_address(address) else None
            if decoder is None:
                continue

            event_key = f"{to_hex(log['transactionHash'])}:{maybe_hex_to_int(log['logIndex'])}"
            try:
                decoded = decoder.decode_log(log)
            except DecodingError as e:
                logger.error(f"Failed to decode event {event_key} from {decoder.contract_address}: {e}")
                results.append(ProcessingResult.skipped(EntityType.events, event_key, "decode failed"))
                continue

            if decoded is None:
                continue

            event = ContractEvent(
                tx_hash=to_hex(log["transactionHash"]),
                log_index=maybe_hex_to_int(log["logIndex"]),
                contract_address=to_checksum_address(log["address"]),
                event_name=decoded.name,
                block_number=block.number,
                timestamp=block.timestamp,
                event_data=decoded.data_to_json(),
            )
            results.append(self.persister.save_event(event))

        return results

    def process_batch(self, from_block: int, to_block: int) -> BatchResult:
        """
        Processes an inclusive block range in order.  The batch is abandoned at the first block that cannot be
        fetched, or whose block row cannot be written.  Rows written before the failure are kept.
        """
        batch_result = BatchResult(from_block, to_block)

        for block_number in range(from_block, to_block + 1):
            try:
                block_result = self.process_block(block_number)
            except BackfillHostError as e:
                batch_result.failed_block = block_number
                batch_result.reason = str(e)
                return batch_result

            batch_result.block_results.append(block_result)
            if fatal := block_result.fatal_result:
                batch_result.failed_block = block_number
                batch_result.reason = f"Failed to write {fatal.entity.value} row {fatal.key}: {fatal.reason}"
                return batch_result

        return batch_result

    def crawl(
        self,
        start_block: int,
        end_block: int,
        batch_size: int,
        batch_delay: float = 0.1,
        sleep: Callable[[float], None] | None = None,
        on_batch_complete: Callable[[BatchResult], None] | None = None,
    ) -> CrawlSummary:
        """
        Crawls the inclusive range start_block to end_block in batches of batch_size blocks.

        :param start_block: first block to crawl
        :param end_block: last block to crawl
        :param batch_size: number of blocks per batch
        :param batch_delay: seconds to pause between batches
        :param sleep: sleep function used between batches.  Defaults to time.sleep
        :param on_batch_complete: callback invoked with each BatchResult
        :return: :class:`CrawlSummary` with completed and failed batches
        """
        scheduler_kwargs = {"sleep": sleep} if sleep is not None else {}
        scheduler = RangeScheduler(start_block, end_block, batch_size, batch_delay, **scheduler_kwargs)

        logger.info(
            f"Crawling blocks {start_block} to {end_block} in {scheduler.batch_count} batches, "
            f"with events for {len(self.contracts)} contracts"
        )
        summary = scheduler.run(self.process_batch, on_batch_complete)
        self.persister.finish()

        for from_block, to_block in summary.failed_ranges:
            logger.warning(f"Blocks {from_block} - {to_block} were not fully crawled and can be re-submitted")

        return summary

