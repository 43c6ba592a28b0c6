import logging
from typing import Any

import rlp
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as SignatureValidationError
from eth_typing import ChecksumAddress
from eth_utils import keccak, to_checksum_address

from chain_crawler.database.models import Block, Transaction
from chain_crawler.exceptions import DecodingError
from chain_crawler.utils import maybe_hex_to_int, to_bytes, to_hex, unix_to_datetime

from .chain_client import RPCResponse

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("backfill").getChild("normalizer")


# ----------------------------------------
# Sender Recovery
# ----------------------------------------


def _encode_access_list(access_list: list[Any] | None) -> list[list[Any]]:
    return [
        [to_bytes(entry["address"]), [to_bytes(key) for key in entry.get("storageKeys", [])]]
        for entry in access_list or []
    ]


def _encode_authorization_list(authorization_list: list[Any] | None) -> list[list[Any]]:
    return [
        [
            maybe_hex_to_int(authorization["chainId"]),
            to_bytes(authorization["address"]),
            maybe_hex_to_int(authorization["nonce"]),
            maybe_hex_to_int(authorization["yParity"]),
            maybe_hex_to_int(authorization["r"]),
            maybe_hex_to_int(authorization["s"]),
        ]
        for authorization in authorization_list or []
    ]


def _signing_payload(transaction: RPCResponse) -> tuple[bytes, int]:
    """
    Rebuilds the payload that was signed by the sender, returning (payload, recovery_id).

    Supports legacy transactions (with and without EIP-155 replay protection), EIP-2930 access list transactions,
    EIP-1559 dynamic fee transactions, EIP-4844 blob transactions, and EIP-7702 set code transactions.
    """
    tx_type = maybe_hex_to_int(transaction.get("type") or 0)
    v = maybe_hex_to_int(transaction["v"])  # pylint: disable=invalid-name

    to_address = to_bytes(transaction["to"]) if transaction.get("to") else b""
    common_fields = [
        to_address,
        maybe_hex_to_int(transaction["value"]),
        to_bytes(transaction.get("input") or "0x"),
    ]
    nonce = maybe_hex_to_int(transaction["nonce"])
    gas = maybe_hex_to_int(transaction["gas"])

    match tx_type:
        case 0:
            unsigned = [nonce, maybe_hex_to_int(transaction["gasPrice"]), gas, *common_fields]
            if v in (27, 28):
                return rlp.encode(unsigned), v - 27
            if v >= 35:
                # EIP-155: v = recovery_id + chain_id * 2 + 35
                chain_id, recovery_id = divmod(v - 35, 2)
                return rlp.encode([*unsigned, chain_id, 0, 0]), recovery_id
            raise DecodingError(f"Invalid legacy signature v value: {v}")

        case 1:
            payload = rlp.encode(
                [
                    maybe_hex_to_int(transaction["chainId"]),
                    nonce,
                    maybe_hex_to_int(transaction["gasPrice"]),
                    gas,
                    *common_fields,
                    _encode_access_list(transaction.get("accessList")),
                ]
            )
            return b"\x01" + payload, maybe_hex_to_int(transaction.get("yParity", v))

        case 2:
            payload = rlp.encode(
                [
                    maybe_hex_to_int(transaction["chainId"]),
                    nonce,
                    maybe_hex_to_int(transaction["maxPriorityFeePerGas"]),
                    maybe_hex_to_int(transaction["maxFeePerGas"]),
                    gas,
                    *common_fields,
                    _encode_access_list(transaction.get("accessList")),
                ]
            )
            return b"\x02" + payload, maybe_hex_to_int(transaction.get("yParity", v))

        case 3:
            payload = rlp.encode(
                [
                    maybe_hex_to_int(transaction["chainId"]),
                    nonce,
                    maybe_hex_to_int(transaction["maxPriorityFeePerGas"]),
                    maybe_hex_to_int(transaction["maxFeePerGas"]),
                    gas,
                    *common_fields,
                    _encode_access_list(transaction.get("accessList")),
                    maybe_hex_to_int(transaction["maxFeePerBlobGas"]),
                    [to_bytes(blob_hash) for blob_hash in transaction.get("blobVersionedHashes", [])],
                ]
            )
            return b"\x03" + payload, maybe_hex_to_int(transaction.get("yParity", v))

        case 4:
            payload = rlp.encode(
                [
                    maybe_hex_to_int(transaction["chainId"]),
                    nonce,
                    maybe_hex_to_int(transaction["maxPriorityFeePerGas"]),
                    maybe_hex_to_int(transaction["maxFeePerGas"]),
                    gas,
                    *common_fields,
                    _encode_access_list(transaction.get("accessList")),
                    _encode_authorization_list(transaction.get("authorizationList")),
                ]
            )
            return b"\x04" + payload, maybe_hex_to_int(transaction.get("yParity", v))

        case _:
            raise DecodingError(f"Sender recovery not supported for transaction type {tx_type}")


def recover_sender(transaction: RPCResponse) -> ChecksumAddress:
    """
    Recovers the sender of a transaction from its signature.  Raises DecodingError if the signature is malformed,
    or the transaction type is not supported.

    :param transaction: transaction object from eth_getBlockByNumber
    :return: checksummed sender address
    """
    try:
        payload, recovery_id = _signing_payload(transaction)
        signature = keys.Signature(
            vrs=(recovery_id, maybe_hex_to_int(transaction["r"]), maybe_hex_to_int(transaction["s"]))
        )
        public_key = signature.recover_public_key_from_msg_hash(keccak(payload))
    except (BadSignature, SignatureValidationError, KeyError, TypeError, ValueError) as e:
        raise DecodingError(f"Could not recover sender: {e}") from e

    return public_key.to_checksum_address()


# ----------------------------------------
# Parsing RPC Responses to DB Models
# ----------------------------------------


def rpc_response_to_block_model(block: RPCResponse) -> Block:
    """
    Parse a block from a JSON RPC response into a Block model.

    Total difficulty is only stored if the node includes it in the response.  Post-merge nodes may omit it, in which
    case the column is left NULL.

    :param block: block object from eth_getBlockByNumber
    :return: Block
    """
    total_difficulty = block.get("totalDifficulty")
    return Block(
        number=maybe_hex_to_int(block["number"]),
        hash=to_hex(block["hash"]),
        parent_hash=to_hex(block["parentHash"]),
        timestamp=unix_to_datetime(maybe_hex_to_int(block["timestamp"])),
        gas_limit=maybe_hex_to_int(block["gasLimit"]),
        gas_used=maybe_hex_to_int(block["gasUsed"]),
        miner=to_checksum_address(block["miner"]),
        difficulty=str(maybe_hex_to_int(block.get("difficulty") or 0)),
        total_difficulty=str(maybe_hex_to_int(total_difficulty)) if total_difficulty is not None else None,
        size_bytes=maybe_hex_to_int(block.get("size") or 0),
        tx_count=len(block.get("transactions") or []),
    )


def rpc_response_to_transaction_model(
    transaction: RPCResponse,
    receipt: RPCResponse,
    block: Block,
) -> Transaction:
    """
    Parse a transaction and its receipt into a Transaction model.

    If the sender cannot be recovered from the signature, from_address is left empty and the transaction is
    still saved.  Contract creation transactions have no to_address.

    :param transaction: transaction object from eth_getBlockByNumber
    :param receipt: receipt from eth_getTransactionReceipt
    :param block: Block model the transaction is included in
    :return: Transaction
    """
    tx_hash = to_hex(transaction["hash"])

    try:
        from_address = recover_sender(transaction)
    except DecodingError as e:
        logger.warning(f"Failed to recover sender for transaction {tx_hash}: {e}")
        from_address = ""

    # Dynamic fee transactions may omit gasPrice, in which case the effective price is read from the receipt
    gas_price = transaction.get("gasPrice")
    if gas_price is None:
        gas_price = receipt.get("effectiveGasPrice") or 0

    # Pre-byzantium receipts contain a state root instead of a status code
    status = receipt.get("status")

    return Transaction(
        hash=tx_hash,
        from_address=from_address,
        to_address=to_checksum_address(transaction["to"]) if transaction.get("to") else None,
        value=str(maybe_hex_to_int(transaction["value"])),
        gas_price=str(maybe_hex_to_int(gas_price)),
        gas_used=maybe_hex_to_int(receipt["gasUsed"]),
        block_number=block.number,
        timestamp=block.timestamp,
        status=maybe_hex_to_int(status) if status is not None else None,
        input_data=to_hex(transaction.get("input") or "0x"),
    )
