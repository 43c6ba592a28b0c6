import logging
import traceback
from typing import Any

from eth_abi import decode as eth_abi_decode
from eth_abi.exceptions import InsufficientDataBytes, NonEmptyPaddingBytes
from eth_typing.abi import ABIEvent

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("decoding")


def abi_to_signature(abi: ABIEvent) -> str:
    """
    Converts an event ABI to its signature.

    >>> abi_to_signature({"name": "Transfer", "type": "event", "inputs": [
    ...     {"name": "from", "type": "address", "indexed": True},
    ...     {"name": "to", "type": "address", "indexed": True},
    ...     {"name": "value", "type": "uint256", "indexed": False},
    ... ]})
    'Transfer(address,address,uint256)'

    """
    collapsed = [collapse_if_tuple(abi_input) for abi_input in abi.get("inputs", [])]
    return f"{abi['name']}({','.join(collapsed)})"


def collapse_if_tuple(abi_params: dict[str, Any]) -> str:
    """
    Converts a tuple from a dict to a parenthesized list of its types.

    >>> collapse_if_tuple(
    ...     {
    ...         'components': [
    ...             {'name': 'anAddress', 'type': 'address'},
    ...             {'name': 'anInt', 'type': 'uint256'},
    ...             {'name': 'someBytes', 'type': 'bytes'},
    ...         ],
    ...         'type': 'tuple[]',
    ...     }
    ... )
    '(address,uint256,bytes)[]'
    """

    typ = abi_params["type"]
    if not isinstance(typ, str):
        raise TypeError(f"The 'type' must be a string, but got {typ} of type {type(typ)}")

    if not typ.startswith("tuple"):
        return typ

    delimited = ",".join(collapse_if_tuple(c) for c in abi_params["components"])  # type: ignore
    # Whatever comes after "tuple" is the array dims.  The ABI spec states that
    # this will have the form "", "[]", or "[k]".
    array_dim = typ[5:]
    return f"({delimited}){array_dim}"


def filter_events(contract_abi: list[dict[str, Any]]) -> list[ABIEvent]:
    """Filters out all non-event ABIs"""
    return [abi for abi in contract_abi if abi.get("type") == "event"]  # type: ignore[misc]


def is_topic_decodable(abi_type: str) -> bool:
    """
    Returns True if an indexed input of this type is stored in its topic as an ABI encoded value.  Dynamic types,
    arrays, and tuples are stored as the keccak hash of their encoding, and cannot be recovered from the topic.

    >>> is_topic_decodable("address")
    True
    >>> is_topic_decodable("string")
    False
    >>> is_topic_decodable("uint256[2]")
    False
    """
    if abi_type in ("string", "bytes"):
        return False
    return not (abi_type.endswith("]") or abi_type.startswith("("))


def decode_evm_abi_from_types(types: list[str], data: bytes | bytearray) -> tuple[Any, ...] | None:
    """
    Decodes ABI data from types and data bytes.  Properly Handles various decoding errors by logging and
    returning none.

    :param types: ABI type strings, with tuples collapsed
    :param data: ABI encoded data
    :return: Decoded values, or None if the data could not be decoded
    """
    try:
        return eth_abi_decode(types, data)
    except InsufficientDataBytes:
        logger.debug(f"Insufficient data bytes while decoding {data.hex()} for types {types}")
        return None
    except NonEmptyPaddingBytes:
        logger.debug(f"Non-empty padding bytes while decoding {data.hex()} for types {types}")
        return None
    except OverflowError:
        logger.debug(f"Overflow error while decoding {data.hex()} for types {types}")
        return None
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error(
            f"Unknown error while decoding {data.hex()} for types {types}: "
            f"{traceback.format_exception(type(e), e, e.__traceback__)}"
        )
        return None
