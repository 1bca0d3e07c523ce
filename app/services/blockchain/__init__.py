"""
Blockchain services module.

Chain access for the payments pipeline:
- rpc_client: Web3 calls in a thread pool with timeouts
- transfer_events: ERC-20 Transfer topic filters and log decoding
- address_derivation: Deposit addresses from an extended public key
"""

from .address_derivation import DepositAddressDeriver
from .rpc_client import ChainRpcClient
from .transfer_events import (
    TRANSFER_TOPIC,
    TransferEvent,
    build_transfer_topics,
    decode_transfer_log,
)


__all__ = [
    "ChainRpcClient",
    "DepositAddressDeriver",
    "TRANSFER_TOPIC",
    "TransferEvent",
    "build_transfer_topics",
    "decode_transfer_log",
]
