from .base import Base
from .ethereum import Block, ContractEvent, TokenTransfer, Transaction
