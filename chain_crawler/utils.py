import datetime

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from hexbytes import HexBytes


def to_hex(data: str | bytes | HexBytes) -> str:
    """Converts binary data to 0x prefixed hex string"""
    if isinstance(data, str):
        return data if data.startswith("0x") else "0x" + data
    if isinstance(data, (bytes, HexBytes)):
        return "0x" + bytes(data).hex()
    raise TypeError(f"Invalid type for to_hex:  {type(data)}")


def to_bytes(data: str | HexBytes | bytes) -> bytes:
    """
    Converts hex string to bytes

    :param data:
    :return:
    """
    if isinstance(data, str):
        return bytes.fromhex(data.removeprefix("0x"))
    if isinstance(data, (HexBytes, bytes)):
        return bytes(data)
    raise TypeError(f"Invalid type for to_bytes: {type(data)}")


def maybe_hex_to_int(value: str | bytes | HexBytes | int) -> int:
    """
    Converts 0x prefixed hex strings to int, converts bytes to ints with big endian encoding, and returns
    ints as is

    :param value:
    :return:
    """
    if isinstance(value, str):
        return int(value, 16)
    if isinstance(value, bytes):
        return int.from_bytes(value, "big")
    return value


def topic_to_address(topic: str | bytes | HexBytes) -> ChecksumAddress:
    """
    Converts a 32 byte log topic into the checksummed address held in its low 20 bytes
    """
    return to_checksum_address(to_bytes(topic)[-20:])


def unix_to_datetime(timestamp: int) -> datetime.datetime:
    """Converts a unix timestamp to a naive UTC datetime, the representation stored in the database"""
    return datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc).replace(tzinfo=None)


def utc_now() -> datetime.datetime:
    """Returns the current time as a naive UTC datetime"""
    return datetime.datetime.now(tz=datetime.timezone.utc).replace(tzinfo=None)
