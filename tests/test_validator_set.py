"""
Validator roster and address derivation tests.

Coverage:
  - secp256k1 key wrappers (hex round trip, immutability, invalid material)
  - Ethereum EIP-55 and Cosmos bech32 address derivation
  - ValidatorIdentity / derive_address determinism and key kinds
  - ValidatorSet generation, indexing, lookup, rebuilding from hex keys
  - BridgeUser addresses
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from gravity_harness.crypto import (
    PrivateKey,
    decode_bech32,
    is_checksum_address,
    is_valid_cosmos_address,
    public_key_to_ethereum_address,
    ripemd160,
    sha256,
    to_checksum_address,
)
from gravity_harness.exceptions import InvalidAddressError, InvalidKeyError
from gravity_harness.validators import (
    BridgeUser,
    KeyKind,
    ValidatorIdentity,
    ValidatorSet,
    derive_address,
)

KEY_ONE = "0x" + "00" * 31 + "01"


# ══════════════════════════════════════════════════════════════════════
#  KEYS
# ══════════════════════════════════════════════════════════════════════

class TestPrivateKey:

    def test_hex_round_trip(self):
        key = PrivateKey.generate()
        assert PrivateKey.from_hex(key.to_hex()) == key
        assert PrivateKey.from_hex(key.to_hex(with_prefix=False)) == key

    def test_generated_keys_differ(self):
        assert PrivateKey.generate() != PrivateKey.generate()

    def test_wrong_length_rejected(self):
        with pytest.raises(InvalidKeyError):
            PrivateKey(b"\x01" * 31)

    def test_zero_key_rejected(self):
        with pytest.raises(InvalidKeyError):
            PrivateKey(b"\x00" * 32)

    def test_bad_hex_rejected(self):
        with pytest.raises(InvalidKeyError):
            PrivateKey.from_hex("0xnothex")

    def test_immutable(self):
        key = PrivateKey.generate()
        with pytest.raises(AttributeError):
            key._key = None

    def test_repr_hides_key_material(self):
        key = PrivateKey.from_hex(KEY_ONE)
        assert KEY_ONE[2:] not in repr(key)


# ══════════════════════════════════════════════════════════════════════
#  ADDRESSES
# ══════════════════════════════════════════════════════════════════════

class TestAddresses:

    def test_known_ethereum_address(self):
        key = PrivateKey.from_hex(KEY_ONE)
        assert public_key_to_ethereum_address(key.public_key) == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

    def test_eip55_vector(self):
        address = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
        assert to_checksum_address(address.lower()) == address
        assert is_checksum_address(address)
        assert not is_checksum_address(address.lower())

    def test_checksum_rejects_bad_length(self):
        with pytest.raises(InvalidAddressError):
            to_checksum_address("0x1234")

    def test_cosmos_address_payload_is_hash160(self):
        key = PrivateKey.from_hex(KEY_ONE)
        address = derive_address(
            ValidatorIdentity(key, PrivateKey.generate(), PrivateKey.generate()), KeyKind.VALIDATOR
        )
        payload = decode_bech32(address, "gravity")
        assert payload.hex() == "751e76e8199196d454941c45d1b3a323f1433bd6"
        assert payload == ripemd160(sha256(key.public_key.to_bytes(compressed=True)))

    def test_prefix_mismatch_rejected(self):
        identity = ValidatorIdentity.generate()
        address = derive_address(identity, KeyKind.ORCHESTRATOR, "gravity")
        with pytest.raises(InvalidAddressError):
            decode_bech32(address, "cosmos")
        assert is_valid_cosmos_address(address, "gravity")
        assert not is_valid_cosmos_address(address[:-1] + ("q" if address[-1] != "q" else "p"), "gravity")


# ══════════════════════════════════════════════════════════════════════
#  IDENTITY
# ══════════════════════════════════════════════════════════════════════

class TestValidatorIdentity:

    def test_derivation_is_deterministic(self):
        identity = ValidatorIdentity.generate()
        for kind in KeyKind:
            assert derive_address(identity, kind) == derive_address(identity, kind)

    def test_kinds_use_their_own_keys(self):
        identity = ValidatorIdentity.generate()
        assert derive_address(identity, KeyKind.VALIDATOR) != derive_address(identity, KeyKind.ORCHESTRATOR)
        assert identity.key_for(KeyKind.VALIDATOR_OPERATOR) is identity.validator_key
        assert identity.key_for(KeyKind.ETHEREUM) is identity.ethereum_key

    def test_operator_address_shares_validator_payload(self):
        identity = ValidatorIdentity.generate()
        account = derive_address(identity, KeyKind.VALIDATOR, "gravity")
        operator = derive_address(identity, KeyKind.VALIDATOR_OPERATOR, "gravity")
        assert operator.startswith("gravityvaloper1")
        assert decode_bech32(operator, "gravityvaloper") == decode_bech32(account, "gravity")

    def test_prefix_applies_to_cosmos_kinds_only(self):
        identity = ValidatorIdentity.generate()
        assert derive_address(identity, KeyKind.ORCHESTRATOR, "cosmos").startswith("cosmos1")
        assert derive_address(identity, KeyKind.ETHEREUM, "cosmos") == derive_address(identity, KeyKind.ETHEREUM)
        assert is_checksum_address(derive_address(identity, KeyKind.ETHEREUM))

    def test_frozen(self):
        identity = ValidatorIdentity.generate()
        with pytest.raises(AttributeError):
            identity.validator_key = PrivateKey.generate()

    def test_to_dict_lists_every_kind(self):
        identity = ValidatorIdentity.generate()
        data = identity.to_dict()
        assert set(data) == {kind.value for kind in KeyKind}


# ══════════════════════════════════════════════════════════════════════
#  SET
# ══════════════════════════════════════════════════════════════════════

class TestValidatorSet:

    def test_generate(self):
        validator_set = ValidatorSet.generate(3)
        assert len(validator_set) == 3
        assert list(validator_set.indices) == [0, 1, 2]
        assert validator_set.honest is validator_set[0]

    def test_keys_are_independent(self):
        validator_set = ValidatorSet.generate(4)
        keys = [k for v in validator_set for k in (v.validator_key, v.orchestrator_key, v.ethereum_key)]
        assert len(set(keys)) == 12

    @pytest.mark.parametrize("n", [0, -1])
    def test_generate_rejects_empty(self, n):
        with pytest.raises(ValueError):
            ValidatorSet.generate(n)

    def test_empty_set_rejected(self):
        with pytest.raises(ValueError):
            ValidatorSet([])

    def test_index_of(self):
        validator_set = ValidatorSet.generate(3)
        orchestrators = validator_set.addresses(KeyKind.ORCHESTRATOR)
        assert validator_set.index_of(orchestrators[2], KeyKind.ORCHESTRATOR) == 2
        with pytest.raises(KeyError):
            validator_set.index_of(orchestrators[2], KeyKind.VALIDATOR)

    def test_from_hex_keys(self):
        original = ValidatorSet.generate(2)
        entries = [
            {
                "validator_key": v.validator_key.to_hex(),
                "orchestrator_key": v.orchestrator_key.to_hex(),
                "ethereum_key": v.ethereum_key.to_hex(),
            }
            for v in original
        ]
        rebuilt = ValidatorSet.from_hex_keys(entries)
        assert rebuilt.addresses(KeyKind.ORCHESTRATOR) == original.addresses(KeyKind.ORCHESTRATOR)
        assert rebuilt.addresses(KeyKind.ETHEREUM) == original.addresses(KeyKind.ETHEREUM)

    def test_from_hex_keys_invalid(self):
        with pytest.raises(InvalidKeyError):
            ValidatorSet.from_hex_keys([
                {"validator_key": "0x00", "orchestrator_key": KEY_ONE, "ethereum_key": KEY_ONE},
            ])


class TestBridgeUser:

    def test_addresses(self):
        user = BridgeUser.generate()
        assert user.cosmos_address().startswith("gravity1")
        assert user.cosmos_address("cosmos").startswith("cosmos1")
        assert is_checksum_address(user.ethereum_address)
