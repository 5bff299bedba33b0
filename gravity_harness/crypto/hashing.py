"""
Gravity Harness Hashing Module

Provides the hash functions needed to derive addresses on both sides of the
bridge:
- keccak256: Ethereum addresses and EIP-55 checksums
- sha256 / ripemd160: Cosmos account addresses
"""

import hashlib
from typing import Union

from Crypto.Hash import RIPEMD160, keccak as _keccak


def _to_bytes(data: Union[bytes, str]) -> bytes:
    if isinstance(data, str):
        if data.startswith('0x') or data.startswith('0X'):
            return bytes.fromhex(data[2:])
        return bytes.fromhex(data)
    return data


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum standard).

    Args:
        data: Input bytes or hex string

    Returns:
        32-byte hash
    """
    k = _keccak.new(digest_bits=256)
    k.update(_to_bytes(data))
    return k.digest()


def sha256(data: Union[bytes, str]) -> bytes:
    """
    Compute SHA-256 hash.

    Args:
        data: Input bytes or UTF-8 string

    Returns:
        32-byte hash
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    """Compute RIPEMD-160 hash (20 bytes)."""
    return RIPEMD160.new(data).digest()


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 and return hex string (no prefix)."""
    return sha256(data).hex()
