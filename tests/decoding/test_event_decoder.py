import json

import pytest

from chain_crawler.config import ContractConfig
from chain_crawler.decoding import ContractEventDecoder, EVMEventDecoder
from chain_crawler.decoding.utils import abi_to_signature, is_topic_decodable
from chain_crawler.exceptions import DecodingError
from chain_crawler.types.decoding import EventValue, EventValueKind

TOKEN = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
APPROVAL_TOPIC = "0x8c5be1e5ebec7d5bd14f71427d1e84f3dd0314c0f7b2291e5b200ac8c7c3b925"
TRANSFER_FIELDS = {"from": "address", "to": "address", "value": "uint256"}

NAMED_EVENT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": True, "name": "label", "type": "string"},
        {"indexed": True, "name": "owner", "type": "address"},
        {"indexed": False, "name": "amounts", "type": "uint256[]"},
        {
            "indexed": False,
            "name": "position",
            "type": "tuple",
            "components": [{"name": "tick", "type": "int24"}, {"name": "active", "type": "bool"}],
        },
    ],
    "name": "Registered",
    "type": "event",
}


def _pad_address(address: str) -> str:
    return "0x" + "00" * 12 + address[2:].lower()


def _word(value: int) -> str:
    return value.to_bytes(32, "big").hex()


def test_event_decoder_from_abi(erc20_abi):
    transfer_abi = json.loads(erc20_abi)[0]
    decoder = EVMEventDecoder.from_abi(transfer_abi)

    assert abi_to_signature(transfer_abi) == "Transfer(address,address,uint256)"
    assert decoder.event_signature == "Transfer(address,address,uint256)"
    assert decoder.signature == TRANSFER_TOPIC
    assert decoder.indexed_params == 2


def test_interleaved_inputs_keep_abi_signature():
    decoder = EVMEventDecoder.from_abi(NAMED_EVENT_ABI)

    assert decoder.event_signature == "Registered(string,address,uint256[],(int24,bool))"
    assert decoder.indexed_params == 2


def test_topic_decodable_types():
    assert is_topic_decodable("address")
    assert is_topic_decodable("bytes32")
    assert is_topic_decodable("int24")
    assert not is_topic_decodable("bytes")
    assert not is_topic_decodable("string")
    assert not is_topic_decodable("uint256[]")
    assert not is_topic_decodable("(uint256,bool)")


def test_decode_configured_transfer(erc20_abi, random_address):
    contract = ContractConfig(
        address=TOKEN,
        abi=erc20_abi,
        events={"Transfer": {"signature": TRANSFER_TOPIC.upper().replace("0X", "0x"), "fields": TRANSFER_FIELDS}},
    )
    decoder = ContractEventDecoder(contract)
    sender, receiver = random_address(), random_address()

    decoded = decoder.decode_log(
        {
            "address": TOKEN.lower(),
            "topics": [TRANSFER_TOPIC, _pad_address(sender), _pad_address(receiver)],
            "data": "0x" + _word(10**18),
        }
    )

    assert decoded.name == "Transfer"
    assert decoded.contract_address == TOKEN
    assert decoded.data["from"] == EventValue(EventValueKind.address, sender)
    assert decoded.data["value"] == EventValue(EventValueKind.integer, 10**18)
    assert decoded.data_to_json() == {
        "from": sender,
        "to": receiver,
        "value": "1000000000000000000",
        "indexed_0": _pad_address(sender),
        "indexed_1": _pad_address(receiver),
    }


def test_unconfigured_event_is_ignored(erc20_abi, random_address):
    contract = ContractConfig(
        address=TOKEN,
        abi=erc20_abi,
        events={"Transfer": {"signature": TRANSFER_TOPIC, "fields": TRANSFER_FIELDS}},
    )
    decoder = ContractEventDecoder(contract)

    approval_log = {
        "topics": [APPROVAL_TOPIC, _pad_address(random_address()), _pad_address(random_address())],
        "data": "0x" + _word(5),
    }

    assert decoder.decode_log(approval_log) is None
    assert decoder.decode_log({"topics": [], "data": "0x"}) is None


def test_indexed_topics_bounded_by_field_count(erc20_abi, random_address):
    contract = ContractConfig(
        address=TOKEN,
        abi=erc20_abi,
        events={"Transfer": {"signature": TRANSFER_TOPIC, "fields": {"from": "address"}}},
    )
    sender = random_address()

    decoded = ContractEventDecoder(contract).decode_log(
        {"topics": [TRANSFER_TOPIC, _pad_address(sender), _pad_address(random_address())], "data": "0x" + _word(1)}
    )

    assert "indexed_0" in decoded.data
    assert "indexed_1" not in decoded.data
    assert decoded.data_to_json()["to"] == decoded.data["to"].value


def test_fallback_to_configured_fields(random_address):
    contract = ContractConfig(
        address=TOKEN,
        abi="[]",
        events={"Transfer": {"signature": TRANSFER_TOPIC, "fields": TRANSFER_FIELDS}},
    )
    sender, receiver = random_address(), random_address()

    decoded = ContractEventDecoder(contract).decode_log(
        {"topics": [TRANSFER_TOPIC, _pad_address(sender), _pad_address(receiver)], "data": "0x" + _word(250)}
    )

    assert decoded.event_signature == "Transfer(address,address,uint256)"
    assert decoded.data_to_json() == {
        "from": sender,
        "to": receiver,
        "value": "250",
        "indexed_0": _pad_address(sender),
        "indexed_1": _pad_address(receiver),
    }


def test_fallback_decoders_are_reused(random_address):
    contract = ContractConfig(
        address=TOKEN,
        abi="[]",
        events={"Transfer": {"signature": TRANSFER_TOPIC, "fields": TRANSFER_FIELDS}},
    )
    decoder = ContractEventDecoder(contract)
    sender, receiver = random_address(), random_address()
    log = {"topics": [TRANSFER_TOPIC, _pad_address(sender), _pad_address(receiver)], "data": "0x" + _word(250)}

    decoder.decode_log(log)
    first = decoder._field_type_decoder("Transfer", contract.events["Transfer"], 2)
    decoder.decode_log(log)

    assert decoder._field_type_decoder("Transfer", contract.events["Transfer"], 2) is first
    assert len(decoder._fallback_decoders) == 1

    # A different topic count moves fields between topics and data
    decoded = decoder.decode_log(
        {"topics": [TRANSFER_TOPIC, _pad_address(sender)], "data": "0x" + _pad_address(receiver)[2:] + _word(3)}
    )
    assert decoded.data_to_json()["to"] == receiver
    assert len(decoder._fallback_decoders) == 2


def test_contract_address_read_from_log(erc20_abi, random_address):
    other_address = random_address()
    contract = ContractConfig(
        address=other_address,
        abi=erc20_abi,
        events={"Transfer": {"signature": TRANSFER_TOPIC, "fields": TRANSFER_FIELDS}},
    )
    topics = [TRANSFER_TOPIC, _pad_address(random_address()), _pad_address(random_address())]

    decoder = ContractEventDecoder(contract)
    emitted = decoder.decode_log({"address": TOKEN.lower(), "topics": topics, "data": "0x" + _word(1)})
    without_address = decoder.decode_log({"topics": topics, "data": "0x" + _word(1)})

    assert emitted.contract_address == TOKEN
    assert without_address.contract_address == other_address


def test_decode_failures_raise(erc20_abi, random_address):
    contract = ContractConfig(
        address=TOKEN,
        abi=erc20_abi,
        events={"Transfer": {"signature": TRANSFER_TOPIC, "fields": TRANSFER_FIELDS}},
    )
    decoder = ContractEventDecoder(contract)
    topics = [TRANSFER_TOPIC, _pad_address(random_address()), _pad_address(random_address())]

    # Truncated data
    with pytest.raises(DecodingError):
        decoder.decode_log({"topics": topics, "data": "0x" + _word(1)[:20]})

    # ERC721 Transfer shares the selector, but indexes the token id
    with pytest.raises(DecodingError):
        decoder.decode_log({"topics": [*topics, "0x" + _word(7)], "data": "0x"})


def test_dynamic_and_nested_types(random_address):
    registered = EVMEventDecoder.from_abi(NAMED_EVENT_ABI)
    contract = ContractConfig(
        address=TOKEN,
        abi=json.dumps([NAMED_EVENT_ABI]),
        events={
            "Registered": {
                "signature": registered.signature,
                "fields": {"label": "string", "owner": "address", "amounts": "uint256[]", "position": "(int24,bool)"},
            }
        },
    )
    owner = random_address()
    label_hash = "0x" + "5a" * 32

    # amounts = [3, 4], position = (-1, True)
    data = (
        _word(96)
        + _word(2**256 - 1)
        + _word(1)
        + _word(2)
        + _word(3)
        + _word(4)
    )
    decoded = ContractEventDecoder(contract).decode_log(
        {"topics": [registered.signature, label_hash, _pad_address(owner)], "data": "0x" + data}
    )

    # Only the hash of an indexed string is available
    assert "label" not in decoded.data
    assert decoded.data["amounts"].kind == EventValueKind.array
    assert decoded.data_to_json() == {
        "owner": owner,
        "amounts": ["3", "4"],
        "position": ["-1", True],
        "indexed_0": label_hash,
        "indexed_1": _pad_address(owner),
    }


def test_event_value_kinds():
    assert EventValue.from_abi("bool", True) == EventValue(EventValueKind.boolean, True)
    assert EventValue.from_abi("string", "hello") == EventValue(EventValueKind.string, "hello")
    assert EventValue.from_abi("bytes4", b"\xa9\x05\x9c\xbb").to_json() == "0xa9059cbb"
    assert EventValue.from_abi("int256", -5).to_json() == "-5"
    assert EventValue.from_abi("address[2]", [TOKEN.lower(), TOKEN.lower()]).to_json() == [TOKEN, TOKEN]
