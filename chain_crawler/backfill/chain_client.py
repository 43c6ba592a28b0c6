import logging
from typing import Any, Protocol, Sequence

from web3 import Web3

from chain_crawler.exceptions import BackfillHostError
from chain_crawler.utils import to_hex

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("backfill").getChild("chain_client")

# Blocks, receipts, and logs are mappings in JSON-RPC shape (camelCase keys).  web3 returns AttributeDicts
# with HexBytes and int values, while raw JSON-RPC returns hex strings.  Both are accepted by the normalizers.
RPCResponse = Any


class ChainClient(Protocol):
    """
    Capability used by the crawler to read chain data.  Implementations may raise any exception on failure, which is
    handled by the crawler according to the entity that was being fetched.
    """

    def get_block(self, block_number: int) -> RPCResponse:
        """Returns the block with full transaction objects"""
        ...

    def get_receipt(self, transaction_hash: str) -> RPCResponse:
        """Returns the receipt for a transaction hash"""
        ...

    def get_logs(self, from_block: int, to_block: int, addresses: Sequence[str]) -> list[RPCResponse]:
        """Returns all logs emitted by addresses in the inclusive block range"""
        ...


class Web3ChainClient:
    """
    :class:`ChainClient` backed by a :class:`~web3.Web3` HTTP connection.  Requests are blocking, and are made
    without retries.  Errors are re-raised as :class:`~chain_crawler.exceptions.BackfillHostError`
    """

    w3: Web3  # pylint: disable=invalid-name

    def __init__(self, json_rpc: str, w3: Web3 | None = None):  # pylint: disable=invalid-name
        self.json_rpc = json_rpc
        self.w3 = w3 if w3 is not None else Web3(Web3.HTTPProvider(json_rpc))

    def verify_connection(self) -> int:
        """
        Checks that the RPC node is reachable, returning the chain id.  Raises BackfillHostError if the node cannot
        be reached.
        """
        if not self.w3.is_connected():
            raise BackfillHostError(f"Could not connect to RPC endpoint {self.json_rpc}")

        chain_id = self.w3.eth.chain_id
        logger.info(f"Connected to RPC endpoint with chain id {chain_id}")
        return chain_id

    def get_block(self, block_number: int) -> RPCResponse:
        try:
            return self.w3.eth.get_block(block_number, full_transactions=True)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise BackfillHostError(f"Failed to fetch block {block_number}: {e}") from e

    def get_receipt(self, transaction_hash: str) -> RPCResponse:
        try:
            return self.w3.eth.get_transaction_receipt(to_hex(transaction_hash))  # type: ignore[arg-type]
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise BackfillHostError(f"Failed to fetch receipt for transaction {transaction_hash}: {e}") from e

    def get_logs(self, from_block: int, to_block: int, addresses: Sequence[str]) -> list[RPCResponse]:
        filter_params = {
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": list(addresses),
        }
        try:
            return list(self.w3.eth.get_logs(filter_params))  # type: ignore[arg-type]
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise BackfillHostError(f"Failed to fetch logs for blocks {from_block} - {to_block}: {e}") from e
