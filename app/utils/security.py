"""
Masking helpers for log output.

Deposit addresses, transaction hashes, the deposit xpub and the reserve
API key are shortened before they reach any log sink.
"""

HIDDEN = "***"


def _keep_ends(value: str | None, head: int, tail: int, min_length: int) -> str:
    if not value or len(value) < min_length:
        return HIDDEN
    return f"{value[:head]}...{value[-tail:]}"


def mask_address(address: str | None) -> str:
    """
    Mask EVM address: 0x1234...5678

    Examples:
        >>> mask_address("0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0")
        '0x742d...bEb0'
        >>> mask_address(None)
        '***'
    """
    return _keep_ends(address, 6, 4, 10)


def mask_tx_hash(tx_hash: str | None) -> str:
    """Mask transaction hash, keeping 10 leading and 6 trailing characters."""
    return _keep_ends(tx_hash, 10, 6, 16)


def mask_secret(value: str | None, show_chars: int = 4) -> str:
    """
    Mask an API key or extended public key.

    Values too short to reveal both ends without exposing the middle
    are hidden completely.
    """
    return _keep_ends(value, show_chars, show_chars, show_chars * 2 + 1)
