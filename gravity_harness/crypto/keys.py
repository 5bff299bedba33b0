"""
Gravity Harness Crypto Keys Module

secp256k1 key management. Cosmos validator/orchestrator keys and Ethereum
keys share the same curve, so one wrapper serves every key kind of a
validator identity.
"""

import secrets
from typing import Union

from eth_keys.datatypes import PrivateKey as EthPrivateKey, PublicKey as EthPublicKey
from eth_utils import decode_hex

from ..exceptions import InvalidKeyError


class PrivateKey:
    """
    secp256k1 private key.

    Wraps eth-keys PrivateKey. Instances are immutable.
    """

    __slots__ = ("_key",)

    def __init__(self, key_bytes: bytes):
        """
        Initialize from raw 32-byte private key.

        Args:
            key_bytes: 32 bytes of private key data

        Raises:
            InvalidKeyError: If key bytes are invalid
        """
        if len(key_bytes) != 32:
            raise InvalidKeyError(f"Private key must be 32 bytes, got {len(key_bytes)}")

        try:
            key = EthPrivateKey(key_bytes)
        except Exception as e:
            raise InvalidKeyError(f"Invalid private key: {e}") from e
        object.__setattr__(self, "_key", key)

    def __setattr__(self, name, value):
        raise AttributeError("PrivateKey is immutable")

    @classmethod
    def from_hex(cls, hex_str: str) -> "PrivateKey":
        """
        Create from hex string.

        Args:
            hex_str: Hex-encoded private key (with or without 0x prefix)

        Returns:
            PrivateKey instance
        """
        try:
            key_bytes = decode_hex(hex_str)
        except ValueError as e:
            raise InvalidKeyError(f"Invalid private key hex: {e}") from e
        return cls(key_bytes)

    @classmethod
    def generate(cls) -> "PrivateKey":
        """Generate a new random private key."""
        return cls(secrets.token_bytes(32))

    @property
    def public_key(self) -> "PublicKey":
        """Derive the corresponding public key."""
        return PublicKey(self._key.public_key)

    def to_bytes(self) -> bytes:
        """Get raw private key bytes."""
        return self._key.to_bytes()

    def to_hex(self, with_prefix: bool = True) -> str:
        hex_str = self._key.to_bytes().hex()
        return f"0x{hex_str}" if with_prefix else hex_str

    def __repr__(self) -> str:
        # Never print key material
        return f"PrivateKey(pub={self.public_key.to_hex(compressed=True)[:12]}...)"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PrivateKey):
            return False
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key.to_bytes())


class PublicKey:
    """
    secp256k1 public key.
    """

    def __init__(self, key: Union[EthPublicKey, bytes]):
        """
        Initialize public key.

        Args:
            key: eth-keys PublicKey or 64-byte uncompressed public key
        """
        if isinstance(key, EthPublicKey):
            self._key = key
        elif isinstance(key, bytes):
            if len(key) == 64:
                self._key = EthPublicKey(key)
            elif len(key) == 65 and key[0] == 0x04:
                self._key = EthPublicKey(key[1:])
            else:
                raise InvalidKeyError(f"Invalid public key length: {len(key)}")
        else:
            raise InvalidKeyError(f"Invalid public key type: {type(key)}")

    def to_bytes(self, compressed: bool = False) -> bytes:
        """
        Get raw public key bytes.

        Args:
            compressed: Use SEC1 compressed format (33 bytes) if True

        Returns:
            Public key bytes
        """
        if compressed:
            raw = self._key.to_bytes()  # 64 bytes: x (32) || y (32)
            prefix = bytes([0x02 if raw[-1] % 2 == 0 else 0x03])
            return prefix + raw[:32]
        return self._key.to_bytes()

    def to_hex(self, with_prefix: bool = True, compressed: bool = False) -> str:
        hex_str = self.to_bytes(compressed).hex()
        return f"0x{hex_str}" if with_prefix else hex_str

    def __repr__(self) -> str:
        return f"PublicKey({self.to_hex()[:18]}...)"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PublicKey):
            return False
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key.to_bytes())
