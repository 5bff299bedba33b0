"""
Gravity Harness Address Module

Address formats used on the two sides of the bridge:
- Ethereum: last 20 bytes of keccak256(pubkey) with EIP-55 checksum
- Cosmos: bech32(prefix, ripemd160(sha256(compressed pubkey)))
"""

from typing import Union

import bech32

from ..exceptions import InvalidAddressError
from .hashing import keccak256, ripemd160, sha256

ETHEREUM_PREFIX = "0x"
ETHEREUM_ADDRESS_LENGTH = 40  # 20 bytes = 40 hex chars
COSMOS_ADDRESS_BYTES = 20


def public_key_to_ethereum_address(public_key) -> str:
    """
    Derive an Ethereum address from a secp256k1 public key.

    Args:
        public_key: PublicKey instance or 64/65-byte uncompressed key

    Returns:
        Checksum address (0x prefixed)
    """
    pub_bytes = public_key.to_bytes() if hasattr(public_key, "to_bytes") else public_key

    # Remove 04 prefix if present (uncompressed secp256k1)
    if len(pub_bytes) == 65 and pub_bytes[0] == 0x04:
        pub_bytes = pub_bytes[1:]
    if len(pub_bytes) != 64:
        raise InvalidAddressError(f"secp256k1 public key must be 64 bytes, got {len(pub_bytes)}")

    return to_checksum_address(keccak256(pub_bytes)[-20:].hex())


def to_checksum_address(address: str) -> str:
    """
    Convert an Ethereum address to EIP-55 checksum format.

    Args:
        address: Hex address (with or without 0x prefix)

    Returns:
        Checksum address with 0x prefix
    """
    if address.startswith(ETHEREUM_PREFIX):
        address = address[2:]
    address = address.lower()

    if len(address) != ETHEREUM_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Ethereum address must be {ETHEREUM_ADDRESS_LENGTH} hex chars, got {len(address)}"
        )
    try:
        int(address, 16)
    except ValueError as e:
        raise InvalidAddressError(f"Ethereum address is not hex: {address}") from e

    address_hash = keccak256(address.encode("utf-8")).hex()

    checksummed = ""
    for i, char in enumerate(address):
        if char in "0123456789":
            checksummed += char
        elif int(address_hash[i], 16) >= 8:
            checksummed += char.upper()
        else:
            checksummed += char.lower()

    return ETHEREUM_PREFIX + checksummed


def is_checksum_address(address: str) -> bool:
    try:
        return address == to_checksum_address(address)
    except InvalidAddressError:
        return False


def public_key_to_cosmos_address(public_key, prefix: str) -> str:
    """
    Derive a bech32 Cosmos account address from a secp256k1 public key.

    Args:
        public_key: PublicKey instance or 33-byte compressed key
        prefix: Human-readable part, e.g. "gravity" or "gravityvaloper"
    """
    if hasattr(public_key, "to_bytes"):
        pub_bytes = public_key.to_bytes(compressed=True)
    else:
        pub_bytes = public_key
    if len(pub_bytes) != 33:
        raise InvalidAddressError(f"Compressed public key must be 33 bytes, got {len(pub_bytes)}")
    return encode_bech32(prefix, ripemd160(sha256(pub_bytes)))


def encode_bech32(prefix: str, payload: bytes) -> str:
    if not prefix:
        raise InvalidAddressError("bech32 prefix cannot be empty")
    data = bech32.convertbits(payload, 8, 5, True)
    address = bech32.bech32_encode(prefix, data)
    if address is None:
        raise InvalidAddressError(f"Cannot bech32-encode payload with prefix {prefix!r}")
    return address


def decode_bech32(address: str, expected_prefix: Union[str, None] = None) -> bytes:
    """
    Decode a bech32 address into its payload bytes.

    Raises:
        InvalidAddressError: on checksum failure or prefix mismatch
    """
    prefix, data = bech32.bech32_decode(address)
    if prefix is None or data is None:
        raise InvalidAddressError(f"Invalid bech32 address: {address}")
    if expected_prefix is not None and prefix != expected_prefix:
        raise InvalidAddressError(
            f"Address {address} has prefix {prefix!r}, expected {expected_prefix!r}"
        )
    payload = bech32.convertbits(data, 5, 8, False)
    if payload is None or len(payload) != COSMOS_ADDRESS_BYTES:
        raise InvalidAddressError(f"Invalid bech32 payload in {address}")
    return bytes(payload)


def is_valid_cosmos_address(address: str, prefix: str) -> bool:
    try:
        decode_bech32(address, prefix)
    except InvalidAddressError:
        return False
    return True
