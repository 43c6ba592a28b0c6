import json
import random
from typing import Any, Sequence

import pytest
from eth_account import Account
from eth_utils import to_checksum_address
from sqlalchemy import create_engine

from chain_crawler.database.migrations import migrate_up
from chain_crawler.database.writers import Persister
from chain_crawler.exceptions import BackfillHostError

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

ERC20_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "owner", "type": "address"},
            {"indexed": True, "name": "spender", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Approval",
        "type": "event",
    },
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

TEST_PRIVATE_KEY = "0x" + "4c" * 32


class FakeChainClient:
    """In-process chain client serving JSON-RPC shaped dictionaries"""

    def __init__(self):
        self.blocks: dict[int, dict[str, Any]] = {}
        self.receipts: dict[str, dict[str, Any]] = {}
        self.logs: list[dict[str, Any]] = []

        self.failing_blocks: set[int] = set()
        self.failing_receipts: set[str] = set()
        self.failing_log_blocks: set[int] = set()

        self.requested_blocks: list[int] = []
        self.log_queries: list[tuple[int, int, list[str]]] = []

    def add_block(self, block: dict[str, Any], receipts: Sequence[dict[str, Any]] = ()):
        self.blocks[int(block["number"], 16)] = block
        for receipt in receipts:
            self.receipts[receipt["transactionHash"]] = receipt
            self.logs.extend(receipt["logs"])

    def get_block(self, block_number: int) -> dict[str, Any]:
        self.requested_blocks.append(block_number)
        if block_number in self.failing_blocks or block_number not in self.blocks:
            raise BackfillHostError(f"Failed to fetch block {block_number}: connection reset")
        return self.blocks[block_number]

    def get_receipt(self, transaction_hash: str) -> dict[str, Any]:
        if transaction_hash in self.failing_receipts:
            raise BackfillHostError(f"Failed to fetch receipt for transaction {transaction_hash}: timeout")
        return self.receipts[transaction_hash]

    def get_logs(self, from_block: int, to_block: int, addresses: Sequence[str]) -> list[dict[str, Any]]:
        self.log_queries.append((from_block, to_block, list(addresses)))
        if from_block in self.failing_log_blocks:
            raise BackfillHostError(f"Failed to fetch logs for blocks {from_block} - {to_block}: timeout")

        checksum_addresses = {to_checksum_address(a) for a in addresses}
        return [
            log
            for log in self.logs
            if from_block <= int(log["blockNumber"], 16) <= to_block
            and to_checksum_address(log["address"]) in checksum_addresses
        ]


@pytest.fixture(name="random_address")
def fixture_random_address():
    def _generate_random_address():
        return to_checksum_address(random.randbytes(20).hex())

    return _generate_random_address


@pytest.fixture(name="erc20_abi")
def fixture_erc20_abi() -> str:
    return json.dumps(ERC20_ABI)


@pytest.fixture(name="db_engine")
def fixture_db_engine():
    engine = create_engine("sqlite://")
    migrate_up(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="persister")
def fixture_persister(db_engine):
    persister = Persister(db_engine)
    yield persister
    persister.db_session.close()


@pytest.fixture(name="chain_client")
def fixture_chain_client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture(name="test_account")
def fixture_test_account():
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture(name="sign_transaction")
def fixture_sign_transaction(test_account):
    """Signs a transaction with the test account, returning it in eth_getBlockByNumber format"""

    def _sign_transaction(tx_fields: dict[str, Any], block_number: int = 1) -> dict[str, Any]:
        signed = test_account.sign_transaction(tx_fields)
        tx_type = tx_fields.get("type", 0)

        rpc_transaction = {
            "hash": "0x" + bytes(signed.hash).hex(),
            "blockNumber": hex(block_number),
            "from": test_account.address,
            "to": tx_fields.get("to"),
            "nonce": hex(tx_fields["nonce"]),
            "gas": hex(tx_fields["gas"]),
            "value": hex(tx_fields.get("value", 0)),
            "input": tx_fields.get("data", "0x") or "0x",
            "type": hex(tx_type),
            "v": hex(signed.v),
            "r": hex(signed.r),
            "s": hex(signed.s),
        }
        if "gasPrice" in tx_fields:
            rpc_transaction["gasPrice"] = hex(tx_fields["gasPrice"])
        if tx_type != 0:
            rpc_transaction["chainId"] = hex(tx_fields["chainId"])
            rpc_transaction["yParity"] = hex(signed.v)
            rpc_transaction["accessList"] = tx_fields.get("accessList", [])
        if tx_type in (2, 3, 4):
            rpc_transaction["maxFeePerGas"] = hex(tx_fields["maxFeePerGas"])
            rpc_transaction["maxPriorityFeePerGas"] = hex(tx_fields["maxPriorityFeePerGas"])
        if tx_type == 3:
            rpc_transaction["maxFeePerBlobGas"] = hex(tx_fields["maxFeePerBlobGas"])
            rpc_transaction["blobVersionedHashes"] = tx_fields["blobVersionedHashes"]
        if tx_type == 4:
            rpc_transaction["authorizationList"] = [
                {
                    "chainId": hex(authorization.chain_id),
                    "address": to_checksum_address(authorization.address),
                    "nonce": hex(authorization.nonce),
                    "yParity": hex(authorization.y_parity),
                    "r": hex(authorization.r),
                    "s": hex(authorization.s),
                }
                for authorization in tx_fields["authorizationList"]
            ]
        return rpc_transaction

    return _sign_transaction


@pytest.fixture(name="make_transfer_log")
def fixture_make_transfer_log():
    def _make_transfer_log(
        token: str,
        from_address: str,
        to_address: str,
        value: int,
        tx_hash: str,
        log_index: int,
        block_number: int,
    ) -> dict[str, Any]:
        return {
            "address": token.lower(),
            "topics": [
                TRANSFER_TOPIC,
                "0x" + "00" * 12 + from_address[2:].lower(),
                "0x" + "00" * 12 + to_address[2:].lower(),
            ],
            "data": "0x" + value.to_bytes(32, "big").hex(),
            "logIndex": hex(log_index),
            "transactionHash": tx_hash,
            "blockNumber": hex(block_number),
        }

    return _make_transfer_log


@pytest.fixture(name="make_receipt")
def fixture_make_receipt():
    def _make_receipt(
        transaction: dict[str, Any],
        logs: Sequence[dict[str, Any]] = (),
        status: int = 1,
        gas_used: int = 21000,
    ) -> dict[str, Any]:
        return {
            "transactionHash": transaction["hash"],
            "blockNumber": transaction["blockNumber"],
            "gasUsed": hex(gas_used),
            "effectiveGasPrice": hex(1_500_000_000),
            "status": hex(status),
            "logs": list(logs),
        }

    return _make_receipt


@pytest.fixture(name="make_block")
def fixture_make_block():
    def _make_block(
        number: int,
        transactions: Sequence[dict[str, Any]] = (),
        timestamp: int = 1_700_000_000,
        total_difficulty: int | None = None,
    ) -> dict[str, Any]:
        block = {
            "number": hex(number),
            "hash": "0x" + number.to_bytes(32, "big").hex(),
            "parentHash": "0x" + (number - 1).to_bytes(32, "big").hex() if number > 0 else "0x" + "00" * 32,
            "timestamp": hex(timestamp + number * 12),
            "gasLimit": hex(30_000_000),
            "gasUsed": hex(21_000 * len(transactions)),
            "miner": "0x95222290dd7278aa3ddd389cc1e1d165cc4bafe5",
            "difficulty": "0x0",
            "size": hex(1_000 + 100 * len(transactions)),
            "transactions": list(transactions),
        }
        if total_difficulty is not None:
            block["totalDifficulty"] = hex(total_difficulty)
        return block

    return _make_block
