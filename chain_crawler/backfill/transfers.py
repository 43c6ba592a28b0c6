import logging

from eth_utils import to_checksum_address

from chain_crawler.database.models import Block, TokenTransfer
from chain_crawler.utils import maybe_hex_to_int, to_bytes, to_hex, topic_to_address

from .chain_client import RPCResponse

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("backfill").getChild("transfers")

ERC20_TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def is_erc20_transfer(log: RPCResponse) -> bool:
    """
    Returns True if the log is an ERC20 ``Transfer(address indexed, address indexed, uint256)`` event.

    ERC721 transfers share the same selector, but index the token id and carry no data, so they are excluded by
    requiring three topics and a single 32 byte data word.  Logs with topics or data that are not valid hex are
    never transfers.
    """
    topics = log.get("topics") or []
    try:
        if len(topics) != 3 or to_hex(topics[0]).lower() != ERC20_TRANSFER_TOPIC:
            return False
        return len(to_bytes(log.get("data") or "0x")) == 32
    except (TypeError, ValueError):
        return False


def extract_transfers(receipt: RPCResponse, block: Block) -> list[TokenTransfer]:
    """
    Extracts ERC20 token transfers from the logs of a transaction receipt.  Logs that are not ERC20 transfers are
    ignored, and a transfer log with malformed fields is skipped without affecting the other logs.

    :param receipt: receipt from eth_getTransactionReceipt
    :param block: Block model the transaction is included in
    :return: TokenTransfer models in log order
    """
    tx_hash = to_hex(receipt["transactionHash"])
    transfers = []
    for log in receipt.get("logs") or []:
        if not is_erc20_transfer(log):
            continue

        topics = log["topics"]
        try:
            transfer = TokenTransfer(
                tx_hash=tx_hash,
                log_index=maybe_hex_to_int(log["logIndex"]),
                from_address=topic_to_address(topics[1]),
                to_address=topic_to_address(topics[2]),
                value=str(int.from_bytes(to_bytes(log["data"]), "big")),
                token_address=to_checksum_address(log["address"]),
                block_number=block.number,
                timestamp=block.timestamp,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed transfer log in transaction {tx_hash}: {e}")
            continue

        transfers.append(transfer)

    if transfers:
        logger.debug(f"Extracted {len(transfers)} token transfers from transaction {tx_hash}")
    return transfers
