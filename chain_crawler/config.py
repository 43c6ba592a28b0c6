import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chain_crawler.exceptions import ConfigError

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("config")

DEFAULT_BATCH_DELAY = 0.1


@dataclass(frozen=True)
class CrawlerConfig:
    """
    Entry parameters for a crawl.  Any front-end (CLI, script, notebook) must supply these values.

    .. note::
        Block ranges are inclusive on both ends, so ``CrawlerConfig(start_block=100, end_block=100)``
        crawls a single block.
    """

    json_rpc: str
    db_url: str
    start_block: int
    end_block: int
    batch_size: int = 10
    contract_config_path: str | None = None
    batch_delay: float = DEFAULT_BATCH_DELAY

    def __post_init__(self):
        if not self.json_rpc:
            raise ConfigError(
                "RPC endpoint not specified... Set with '--json-rpc' or the JSON_RPC environment variable"
            )
        if not self.db_url:
            raise ConfigError("Database URL not specified... Set with '--db-url' or the DB_URL environment variable")
        if self.start_block < 0:
            raise ConfigError(f"Invalid block range. start_block ({self.start_block}) must be >= 0")
        if self.end_block < self.start_block:
            raise ConfigError(
                f"Invalid block range. start_block must be less than or equal to end_block "
                f"({self.start_block} - {self.end_block})"
            )
        if self.batch_size <= 0:
            raise ConfigError(f"batch_size must be positive, got {self.batch_size}")
        if self.batch_delay < 0:
            raise ConfigError(f"batch_delay cannot be negative, got {self.batch_delay}")


class EventConfig(BaseModel):
    """Topic signature and ordered field descriptors for a single contract event"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    signature: str
    field_types: dict[str, str] = Field(default_factory=dict, alias="fields")

    @field_validator("signature")
    @classmethod
    def _normalize_signature(cls, value: str) -> str:
        value = value.lower()
        if not value.startswith("0x"):
            value = "0x" + value
        if len(value) != 66:
            raise ValueError(f"Event signature {value} is not a 32 byte topic hash")
        int(value, 16)
        return value


class ContractConfig(BaseModel):
    """
    ABI and event definitions for a single contract.  The ``abi`` field holds the contract ABI as a JSON string,
    matching the format of ABIs exported by Etherscan and solc.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    abi: str
    events: dict[str, EventConfig] = {}

    @field_validator("address")
    @classmethod
    def _checksum_address(cls, value: str) -> str:
        if not is_address(value):
            raise ValueError(f"Address {value} could not be checksummed...  Double check that addresses are valid")
        return to_checksum_address(value)

    @field_validator("abi")
    @classmethod
    def _validate_abi(cls, value: str) -> str:
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Contract ABI is not valid JSON: {e}") from e
        if not isinstance(parsed, list):
            raise ValueError("Contract ABI must be a JSON array of ABI entries")
        return value

    def abi_entries(self) -> list[dict[str, Any]]:
        """Parsed ABI JSON"""
        return json.loads(self.abi)


class ContractRegistry:
    """
    Read-only mapping from checksummed contract address to :class:`ContractConfig`.  Constructed once at startup
    and shared by reference with the crawler.
    """

    _contracts: Mapping[ChecksumAddress, ContractConfig]

    def __init__(self, contracts: Mapping[str, ContractConfig] | None = None):
        self._contracts = MappingProxyType({to_checksum_address(a): c for a, c in (contracts or {}).items()})

    def __len__(self) -> int:
        return len(self._contracts)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and is_address(address) and to_checksum_address(address) in self._contracts

    def get(self, address: str) -> ContractConfig | None:
        if not is_address(address):
            return None
        return self._contracts.get(to_checksum_address(address))

    def items(self):
        return self._contracts.items()

    @property
    def addresses(self) -> list[ChecksumAddress]:
        return list(self._contracts.keys())

    @classmethod
    def from_dict(cls, raw_config: dict[str, Any]) -> "ContractRegistry":
        """
        Parses the contract configuration format:

        .. code-block:: json

            {
                "0xA0b8...eB48": {
                    "address": "0xA0b8...eB48",
                    "abi": "[...]",
                    "events": {"Transfer": {"signature": "0xddf2...", "fields": {"from": "address", ...}}}
                }
            }

        The mapping key is authoritative.  If the ``address`` field is missing it is filled from the key.
        """
        if not isinstance(raw_config, dict):
            raise ConfigError("Contract configuration must be a JSON object keyed by contract address")

        contracts: dict[str, ContractConfig] = {}
        for key, contract_data in raw_config.items():
            if not is_address(key):
                raise ConfigError(f"Contract configuration key {key} is not a valid address")
            if not isinstance(contract_data, dict):
                raise ConfigError(f"Contract configuration for {key} must be a JSON object")

            try:
                contract = ContractConfig(**{"address": key, **contract_data})
            except ValidationError as e:
                raise ConfigError(f"Invalid contract configuration for {key}: {e}") from e

            if contract.address != to_checksum_address(key):
                logger.warning(
                    f"Contract configuration key {key} does not match address field {contract.address}.  "
                    f"Using {key} for log filters"
                )
            contracts[key] = contract

        logger.info(f"Loaded {len(contracts)} contract configurations")
        return cls(contracts)


def load_contract_config(config_path: str | Path | None) -> ContractRegistry:
    """
    Loads the contract configuration JSON file.  If config_path is None, returns an empty registry and only
    blocks, transactions, and token transfers are crawled.

    :param config_path: Path to the contract configuration JSON file
    :return: :class:`ContractRegistry`
    """
    if config_path is None:
        return ContractRegistry()

    try:
        with open(config_path, "rt", encoding="utf-8") as config_file:
            raw_config = json.load(config_file)
    except OSError as e:
        raise ConfigError(f"Could not read contract configuration file {config_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Contract configuration file {config_path} is not valid JSON") from e

    logger.info(f"Loading contract configuration from {config_path}")
    return ContractRegistry.from_dict(raw_config)
