import logging
from typing import Any, Sequence

from eth_typing.abi import ABIEvent
from eth_utils import to_checksum_address
from eth_utils.abi import event_signature_to_log_topic

from chain_crawler.config import ContractConfig, EventConfig
from chain_crawler.exceptions import ConfigError, DecodingError
from chain_crawler.types.decoding import DecodedEvent, EventValue, EventValueKind
from chain_crawler.utils import to_bytes, to_hex

from .utils import abi_to_signature, collapse_if_tuple, decode_evm_abi_from_types, filter_events, is_topic_decodable

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("decoding").getChild("events")


class EVMEventDecoder:
    """
    Stores precomputed data for Efficiently Decoding EVM Events
    """

    name: str
    event_signature: str
    signature: str
    indexed_params: int

    _data_types: list[str]
    _data_names: list[str]
    _topic_types: list[str]
    _topic_names: list[str]

    def __init__(self, name: str, topic_inputs: Sequence[tuple[str, str]], data_inputs: Sequence[tuple[str, str]]):
        self._topic_names = [input_name for input_name, _ in topic_inputs]
        self._topic_types = [input_type for _, input_type in topic_inputs]
        self._data_names = [input_name for input_name, _ in data_inputs]
        self._data_types = [input_type for _, input_type in data_inputs]

        duplicate_names = set(self._topic_names).intersection(self._data_names)
        if duplicate_names:
            raise DecodingError(
                f"Cannot have overlapping names between topics and data.  {name} "
                f"Has duplicate names: {list(duplicate_names)}"
            )

        self.name = name
        self.indexed_params = len(self._topic_names)
        if self.indexed_params > 3:
            raise DecodingError(f"Event {name} has {self.indexed_params} indexed inputs.  At most 3 are allowed")

        self.event_signature = f"{name}({','.join([*self._topic_types, *self._data_types])})"
        self.signature = to_hex(event_signature_to_log_topic(self.event_signature))

        logger.debug(
            f"Adding Event Decoder for {self.event_signature} with Topic Types: {self._topic_types} and "
            f"Data Types: {self._data_types}"
        )

    @classmethod
    def from_abi(cls, abi_event: ABIEvent) -> "EVMEventDecoder":
        """
        Creates a decoder from an ABI event definition.  Inputs without a name are named ``field_<position>``.
        """
        topic_inputs, data_inputs = [], []
        for position, abi_input in enumerate(abi_event.get("inputs", [])):
            input_def = (abi_input.get("name") or f"field_{position}", collapse_if_tuple(abi_input))  # type: ignore
            if abi_input.get("indexed", False):
                topic_inputs.append(input_def)
            else:
                data_inputs.append(input_def)

        decoder = cls(abi_event["name"], topic_inputs, data_inputs)

        # Signature is derived from inputs in ABI order, which can interleave indexed and data inputs
        decoder.event_signature = abi_to_signature(abi_event)
        decoder.signature = to_hex(event_signature_to_log_topic(decoder.event_signature))
        return decoder

    def decode(self, data: bytes, topics: list[bytes]) -> dict[str, EventValue]:
        """
        Decodes Event data and topics.  Indexed inputs with static types are decoded from their topics, and dynamic
        indexed inputs are omitted, since only their hash is stored in the log.

        :param data: log data bytes
        :param topics: log topics, including the event selector at topics[0]
        :return: Mapping of input names to decoded values
        """
        if len(topics) - 1 != self.indexed_params:
            raise DecodingError(
                f"Event {self.event_signature} expects {self.indexed_params} indexed topics, got {len(topics) - 1}"
            )

        decoded_data = decode_evm_abi_from_types(self._data_types, data)
        if decoded_data is None:
            raise DecodingError(f"Error Decoding Event {self.event_signature} for data {to_hex(data)}")

        decoded: dict[str, EventValue] = {}
        for topic_name, topic_type, topic in zip(self._topic_names, self._topic_types, topics[1:]):
            if not is_topic_decodable(topic_type):
                continue
            decoded_topic = decode_evm_abi_from_types([topic_type], topic)
            if decoded_topic is None:
                raise DecodingError(f"Error Decoding topic {to_hex(topic)} of {self.event_signature} as {topic_type}")
            decoded[topic_name] = EventValue.from_abi(topic_type, decoded_topic[0])

        for data_name, data_type, value in zip(self._data_names, self._data_types, decoded_data, strict=True):
            decoded[data_name] = EventValue.from_abi(data_type, value)

        return decoded


class ContractEventDecoder:
    """
    Decodes the configured events of a single contract.  Each configured event is decoded with the matching event
    definition from the contract ABI.  If the ABI does not define the event, the configured fields are used in
    order, with the first fields assigned to the indexed topics of each log.

    Decoders are built once per contract, and are reused for every block.
    """

    contract_address: str
    _events: list[tuple[str, EventConfig, EVMEventDecoder | None]]
    _fallback_decoders: dict[tuple[str, int], EVMEventDecoder]

    def __init__(self, contract: ContractConfig):
        self.contract_address = contract.address

        abi_events = [e for e in filter_events(contract.abi_entries()) if not e.get("anonymous", False)]
        self._events = []
        self._fallback_decoders = {}
        for event_name, event_config in contract.events.items():
            decoder = self._find_abi_decoder(abi_events, event_name, event_config)
            if decoder is None:
                logger.warning(
                    f"ABI for {contract.address} does not define event {event_name}...  Decoding with configured "
                    f"fields {list(event_config.field_types.items())}"
                )
            self._events.append((event_name, event_config, decoder))

    def _find_abi_decoder(
        self,
        abi_events: list[ABIEvent],
        event_name: str,
        event_config: EventConfig,
    ) -> EVMEventDecoder | None:
        try:
            candidates = [EVMEventDecoder.from_abi(e) for e in abi_events if e["name"] == event_name]
        except (DecodingError, KeyError, TypeError) as e:
            raise ConfigError(f"Invalid ABI definition for event {event_name} of {self.contract_address}: {e}") from e

        if not candidates:
            return None

        for candidate in candidates:
            if candidate.signature == event_config.signature:
                return candidate

        logger.warning(
            f"Configured signature {event_config.signature} for {event_name} does not match the ABI signature "
            f"{candidates[0].signature} ({candidates[0].event_signature}) of {self.contract_address}"
        )
        return candidates[0]

    def _field_type_decoder(self, event_name: str, event_config: EventConfig, indexed_count: int) -> EVMEventDecoder:
        # The split between topic and data fields depends on the topic count of each log
        cache_key = (event_name, indexed_count)
        if cache_key not in self._fallback_decoders:
            fields = list(event_config.field_types.items())
            self._fallback_decoders[cache_key] = EVMEventDecoder(
                event_name, fields[:indexed_count], fields[indexed_count:]
            )
        return self._fallback_decoders[cache_key]

    def decode_log(self, log: dict[str, Any]) -> DecodedEvent | None:
        """
        Decodes a log emitted by this contract.  Returns None if the log does not match a configured event, and
        raises DecodingError if the log matches but cannot be decoded.

        Every topic after the selector is also included as raw hex under ``indexed_<i>``, for as many topics as the
        event has configured fields.

        :param log: log object from eth_getLogs
        :return: DecodedEvent
        """
        topics = [to_bytes(topic) for topic in log.get("topics") or []]
        if not topics:
            return None

        selector = to_hex(topics[0]).lower()
        for event_name, event_config, abi_decoder in self._events:
            if selector != event_config.signature:
                continue

            try:
                decoder = abi_decoder or self._field_type_decoder(event_name, event_config, len(topics) - 1)
            except DecodingError as e:
                raise DecodingError(f"Cannot decode {event_name} with configured fields: {e}") from e

            data = decoder.decode(to_bytes(log.get("data") or "0x"), topics)
            for index, topic in enumerate(topics[1:]):
                if index < len(event_config.field_types):
                    data[f"indexed_{index}"] = EventValue(EventValueKind.bytes, topic)

            return DecodedEvent(
                contract_address=to_checksum_address(log["address"]) if log.get("address") else self.contract_address,
                name=event_name,
                event_signature=decoder.event_signature,
                data=data,
            )

        return None
