import datetime
from typing import Annotated

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, mapped_column

# Binary Data is Represented as a String of 0x prefixed Hex Digits, and addresses are stored checksummed.
# -- Values that can exceed 64 bits (value, gas_price, difficulty) are stored as decimal strings

BlockNumberPK = Annotated[int, mapped_column(BigInteger, primary_key=True, autoincrement=False)]
Hash32PK = Annotated[str, mapped_column(String(66), primary_key=True)]
SurrogatePK = Annotated[int, mapped_column(Integer, primary_key=True, autoincrement=True)]

IndexedAddress = Annotated[str, mapped_column(String(42), index=True, nullable=False)]
IndexedNullableAddress = Annotated[str, mapped_column(String(42), index=True, nullable=True)]
IndexedBlockNumber = Annotated[int, mapped_column(BigInteger, nullable=False, index=True)]
Timestamp = Annotated[datetime.datetime, mapped_column(DateTime, nullable=False)]
IndexedTimestamp = Annotated[datetime.datetime, mapped_column(DateTime, nullable=False, index=True)]
CreatedAt = Annotated[datetime.datetime, mapped_column(DateTime, server_default=func.now())]

Hash32 = Annotated[str, mapped_column(String(66), nullable=False)]
Address = Annotated[str, mapped_column(String(42), nullable=False)]
DecimalString = Annotated[str, mapped_column(String(100), nullable=False)]
NullableDecimalString = Annotated[str, mapped_column(String(100), nullable=True)]


class Base(DeclarativeBase):
    """Base class for crawler tables"""
