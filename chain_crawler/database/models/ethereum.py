from typing import Any

from sqlalchemy import JSON, BigInteger, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import (
    Address,
    Base,
    BlockNumberPK,
    CreatedAt,
    DecimalString,
    Hash32,
    Hash32PK,
    IndexedAddress,
    IndexedBlockNumber,
    IndexedNullableAddress,
    IndexedTimestamp,
    NullableDecimalString,
    SurrogatePK,
    Timestamp,
)

# pylint: disable=missing-class-docstring


class Block(Base):
    __tablename__ = "blocks"

    number: Mapped[BlockNumberPK]
    hash: Mapped[str] = mapped_column(String(66), unique=True, nullable=False)
    parent_hash: Mapped[Hash32]
    timestamp: Mapped[Timestamp]
    gas_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    gas_used: Mapped[int] = mapped_column(BigInteger, nullable=False)
    miner: Mapped[Address]
    difficulty: Mapped[DecimalString]

    # Not every node reports total difficulty.  NULL when unknown
    total_difficulty: Mapped[NullableDecimalString]

    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tx_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[CreatedAt]


class Transaction(Base):
    __tablename__ = "transactions"

    hash: Mapped[Hash32PK]

    # Empty string if the sender could not be recovered from the signature
    from_address: Mapped[IndexedAddress]
    to_address: Mapped[IndexedNullableAddress]

    value: Mapped[DecimalString]
    gas_price: Mapped[DecimalString]
    gas_used: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_number: Mapped[IndexedBlockNumber]
    timestamp: Mapped[IndexedTimestamp]
    status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    input_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[CreatedAt]


class TokenTransfer(Base):
    __tablename__ = "token_transfers"

    id: Mapped[SurrogatePK]
    tx_hash: Mapped[Hash32]
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    from_address: Mapped[IndexedAddress]
    to_address: Mapped[IndexedAddress]
    value: Mapped[DecimalString]
    token_address: Mapped[IndexedAddress]
    block_number: Mapped[IndexedBlockNumber]
    timestamp: Mapped[Timestamp]
    created_at: Mapped[CreatedAt]

    __table_args__ = (UniqueConstraint("tx_hash", "log_index"),)


class ContractEvent(Base):
    __tablename__ = "contract_events"

    id: Mapped[SurrogatePK]
    tx_hash: Mapped[Hash32]
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    contract_address: Mapped[IndexedAddress]
    event_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    block_number: Mapped[IndexedBlockNumber]
    timestamp: Mapped[Timestamp]
    event_data: Mapped[dict[str, Any]] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    created_at: Mapped[CreatedAt]

    __table_args__ = (UniqueConstraint("tx_hash", "log_index"),)
