"""
ERC-20 Transfer event codec.

Builds eth_getLogs topic filters for deposit addresses and decodes the
matching Transfer logs.
"""

from dataclasses import dataclass
from typing import Any

from eth_utils import encode_hex, keccak, to_checksum_address

# keccak("Transfer(address,address,uint256)")
TRANSFER_TOPIC = encode_hex(keccak(text="Transfer(address,address,uint256)"))


@dataclass(frozen=True)
class TransferEvent:
    """Decoded Transfer(from, to, value) log."""

    from_address: str
    to_address: str
    value: int
    tx_hash: str
    block_number: int | None = None
    log_index: int | None = None


def _hex(value: Any) -> str:
    """Normalize HexBytes/bytes/str to lowercase 0x-prefixed hex."""
    if isinstance(value, (bytes, bytearray)):
        return encode_hex(bytes(value))
    text = str(value).lower()
    return text if text.startswith("0x") else f"0x{text}"


def _get(log: Any, key: str) -> Any:
    if isinstance(log, dict):
        return log.get(key)
    return getattr(log, key, None)


def address_to_topic(address: str) -> str:
    """
    Left-pad address to a 32-byte indexed topic.

    Examples:
        >>> address_to_topic("0x" + "ab" * 20)
        '0x000000000000000000000000abababababababababababababababababababab'
    """
    normalized = to_checksum_address(address)
    return "0x" + "0" * 24 + normalized[2:].lower()


def topic_to_address(topic: Any) -> str:
    """Extract checksummed address from a 32-byte indexed topic."""
    hex_topic = _hex(topic)
    if len(hex_topic) != 66:
        raise ValueError(f"Invalid address topic length: {hex_topic}")
    return to_checksum_address("0x" + hex_topic[-40:])


def build_transfer_topics(recipients: list[str]) -> list[Any]:
    """
    Build topic filter: Transfer from anyone to any of recipients.

    Args:
        recipients: Deposit addresses

    Returns:
        [TRANSFER_TOPIC, None, [padded recipients...]]
    """
    return [TRANSFER_TOPIC, None, [address_to_topic(a) for a in recipients]]


def decode_transfer_log(log: Any) -> TransferEvent:
    """
    Decode a raw Transfer log.

    Args:
        log: Web3 log entry (AttributeDict or dict)

    Returns:
        TransferEvent

    Raises:
        ValueError: Not a Transfer log or malformed payload
    """
    topics = _get(log, "topics") or []
    if len(topics) != 3 or _hex(topics[0]) != TRANSFER_TOPIC:
        raise ValueError("Log is not an ERC-20 Transfer event")

    data = _hex(_get(log, "data") or "0x")
    if len(data) != 66:
        raise ValueError(f"Unexpected Transfer data length: {len(data)}")

    tx_hash = _get(log, "transactionHash")
    return TransferEvent(
        from_address=topic_to_address(topics[1]),
        to_address=topic_to_address(topics[2]),
        value=int(data, 16),
        tx_hash=_hex(tx_hash) if tx_hash is not None else "",
        block_number=_get(log, "blockNumber"),
        log_index=_get(log, "logIndex"),
    )
