from .event_decoders import ContractEventDecoder, EVMEventDecoder

__all__ = ["ContractEventDecoder", "EVMEventDecoder"]
