from .chain_client import ChainClient, Web3ChainClient
from .crawler import BlockchainCrawler
from .ranges import RangeScheduler

__all__ = ["BlockchainCrawler", "ChainClient", "RangeScheduler", "Web3ChainClient"]
