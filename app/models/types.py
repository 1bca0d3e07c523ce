"""
Standard type definitions for database models.

Provides consistent types for amounts and chain positions across models.
"""

from sqlalchemy import BigInteger, Integer, String

# Fiat amounts in integer USD cents (e.g. 29900 = $299.00)
UsdCentsType = Integer

# Raw token amounts in base units (uint256 as decimal string)
# Stored as text: values exceed BIGINT and must round-trip exactly
TokenUnitsType = String(78)

# Block heights
BlockNumberType = BigInteger

# EVM address (0x + 40 hex, checksummed)
AddressType = String(42)

# Transaction hash (0x + 64 hex)
TxHashType = String(66)
