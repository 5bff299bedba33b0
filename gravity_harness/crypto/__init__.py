"""
Gravity Harness Crypto Module

Key material and address derivation for validator identities:
- secp256k1 keys (Cosmos validator/orchestrator keys and Ethereum keys)
- Hash functions (keccak256, sha256, ripemd160)
- Ethereum (EIP-55) and Cosmos (bech32) address derivation
"""

from .keys import PrivateKey, PublicKey
from .hashing import keccak256, ripemd160, sha256, sha256_hex
from .address import (
    decode_bech32,
    encode_bech32,
    is_checksum_address,
    is_valid_cosmos_address,
    public_key_to_cosmos_address,
    public_key_to_ethereum_address,
    to_checksum_address,
)

__all__ = [
    # Keys
    "PrivateKey",
    "PublicKey",
    # Hashing
    "keccak256",
    "ripemd160",
    "sha256",
    "sha256_hex",
    # Addresses
    "decode_bech32",
    "encode_bech32",
    "is_checksum_address",
    "is_valid_cosmos_address",
    "public_key_to_cosmos_address",
    "public_key_to_ethereum_address",
    "to_checksum_address",
]
