from dataclasses import dataclass
from enum import Enum
from typing import Any

from eth_utils import to_checksum_address

# pylint: disable=invalid-name


class EventValueKind(Enum):
    """Variants of a decoded event field"""

    string = "string"
    integer = "integer"
    address = "address"
    bytes = "bytes"
    boolean = "boolean"
    array = "array"


@dataclass(frozen=True)
class EventValue:
    """
    Tagged value for a single decoded event field.  The ABI type of the field selects the kind, and
    :meth:`from_abi` converts the raw eth_abi decoding result into the matching variant.
    """

    kind: EventValueKind
    value: Any

    @classmethod
    def from_abi(cls, abi_type: str, value: Any) -> "EventValue":
        """
        Wraps a value returned from eth_abi decoding using its ABI type string

        >>> EventValue.from_abi("uint256", 100)
        EventValue(kind=<EventValueKind.integer: 'integer'>, value=100)
        """
        if abi_type.endswith("]"):
            inner_type = abi_type[: abi_type.rfind("[")]
            return cls(EventValueKind.array, [cls.from_abi(inner_type, v) for v in value])

        if abi_type.startswith("("):
            component_types = split_tuple_type(abi_type)
            return cls(
                EventValueKind.array,
                [cls.from_abi(t, v) for t, v in zip(component_types, value, strict=True)],
            )

        if abi_type == "address":
            return cls(EventValueKind.address, to_checksum_address(value))
        if abi_type == "bool":
            return cls(EventValueKind.boolean, bool(value))
        if abi_type == "string":
            return cls(EventValueKind.string, value)
        if abi_type.startswith(("uint", "int")):
            return cls(EventValueKind.integer, int(value))
        if abi_type.startswith("bytes"):
            return cls(EventValueKind.bytes, bytes(value))

        # fixed point and function types have no dedicated variant
        return cls(EventValueKind.string, str(value))

    def to_json(self) -> Any:
        """
        Returns a JSON safe representation.  Integers are encoded as decimal strings since uint256 values
        exceed the precision of JSON numbers.
        """
        match self.kind:
            case EventValueKind.integer:
                return str(self.value)
            case EventValueKind.bytes:
                return "0x" + self.value.hex()
            case EventValueKind.array:
                return [v.to_json() for v in self.value]
            case _:
                return self.value


@dataclass
class DecodedEvent:
    """Event Decoding Result"""

    contract_address: str
    name: str
    event_signature: str

    data: dict[str, EventValue]

    def data_to_json(self) -> dict[str, Any]:
        return {name: value.to_json() for name, value in self.data.items()}


def split_tuple_type(tuple_type: str) -> list[str]:
    """
    Splits a collapsed tuple type into its component types

    >>> split_tuple_type("(address,(uint256,bytes32)[],bool)")
    ['address', '(uint256,bytes32)[]', 'bool']
    """
    inner = tuple_type[1 : tuple_type.rfind(")")]
    components, depth, current = [], 0, ""
    for char in inner:
        if char == "," and depth == 0:
            components.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        current += char
    if current:
        components.append(current)
    return components
