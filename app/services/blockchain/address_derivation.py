"""
Deposit address derivation.

Derives one-off deposit addresses from an extended public key. Only
public derivation is possible here; signing keys live in the reserve
service.
"""

from bip_utils import Bip32Slip10Secp256k1, EthAddrEncoder
from eth_utils import to_checksum_address

from app.utils.security import mask_secret

# Non-hardened child indexes only
MAX_CHILD_INDEX = 2**31 - 1


class DepositAddressDeriver:
    """Derive child addresses xpub/i."""

    def __init__(self, xpub: str) -> None:
        try:
            self._node = Bip32Slip10Secp256k1.FromExtendedKey(xpub.strip())
        except Exception as e:
            raise ValueError(f"Invalid deposit xpub {mask_secret(xpub)}: {e}") from e

    def derive(self, index: int) -> str:
        """
        Derive checksummed address for child index.

        Args:
            index: Derivation index (0 .. 2^31-1)

        Returns:
            EIP-55 checksummed address
        """
        if index < 0 or index > MAX_CHILD_INDEX:
            raise ValueError(f"Derivation index out of range: {index}")
        child = self._node.ChildKey(index)
        address = EthAddrEncoder.EncodeKey(child.PublicKey().KeyObject())
        return to_checksum_address(address)
