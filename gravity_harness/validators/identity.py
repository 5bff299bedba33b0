"""
Validator Identities

A scenario runs against a fixed roster of validators. Each validator owns
three independent secp256k1 keys:

  - validator_key:    consensus/staking key (signs governance and staking txs)
  - orchestrator_key: oracle key (signs attestation claims)
  - ethereum_key:     Ethereum-side key (signs validator set updates)

Addresses are always derived from the keys on request and never stored.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Mapping, Sequence, Tuple

from ..constants import ADDRESS_PREFIX, HONEST_VALIDATOR_INDEX, VALOPER_SUFFIX
from ..crypto.address import public_key_to_cosmos_address, public_key_to_ethereum_address
from ..crypto.keys import PrivateKey
from ..logger import get_logger

logger = get_logger(__name__)


class KeyKind(Enum):
    """Which of a validator's keys (and address format) is meant."""
    VALIDATOR = "validator"
    VALIDATOR_OPERATOR = "valoper"
    ORCHESTRATOR = "orchestrator"
    ETHEREUM = "ethereum"


@dataclass(frozen=True)
class ValidatorIdentity:
    """Key material of one validator. Immutable once generated."""
    validator_key: PrivateKey
    orchestrator_key: PrivateKey
    ethereum_key: PrivateKey

    @classmethod
    def generate(cls) -> "ValidatorIdentity":
        return cls(
            validator_key=PrivateKey.generate(),
            orchestrator_key=PrivateKey.generate(),
            ethereum_key=PrivateKey.generate(),
        )

    def key_for(self, kind: KeyKind) -> PrivateKey:
        if kind in (KeyKind.VALIDATOR, KeyKind.VALIDATOR_OPERATOR):
            return self.validator_key
        if kind == KeyKind.ORCHESTRATOR:
            return self.orchestrator_key
        return self.ethereum_key

    def address(self, kind: KeyKind, prefix: str = ADDRESS_PREFIX) -> str:
        return derive_address(self, kind, prefix)

    def to_dict(self, prefix: str = ADDRESS_PREFIX) -> dict:
        """Public view of the identity (addresses only)."""
        return {kind.value: derive_address(self, kind, prefix) for kind in KeyKind}


def derive_address(identity: ValidatorIdentity, kind: KeyKind, prefix: str = ADDRESS_PREFIX) -> str:
    """
    Derive the address of one of a validator's keys.

    Pure function: the same identity, kind and prefix always yield the same
    address. ETHEREUM ignores the prefix; VALIDATOR_OPERATOR appends
    ``valoper`` to it.
    """
    public_key = identity.key_for(kind).public_key
    if kind == KeyKind.ETHEREUM:
        return public_key_to_ethereum_address(public_key)
    if kind == KeyKind.VALIDATOR_OPERATOR:
        return public_key_to_cosmos_address(public_key, f"{prefix}{VALOPER_SUFFIX}")
    return public_key_to_cosmos_address(public_key, prefix)


class ValidatorSet(Sequence[ValidatorIdentity]):
    """
    Ordered, index-stable roster of validator identities.

    Index 0 is the honest baseline validator and the recovery proposer.
    """

    def __init__(self, identities: Iterable[ValidatorIdentity]):
        self._identities: Tuple[ValidatorIdentity, ...] = tuple(identities)
        if not self._identities:
            raise ValueError("A validator set needs at least one validator")

    @classmethod
    def generate(cls, n: int) -> "ValidatorSet":
        """Create *n* validators with independent random keys."""
        if n < 1:
            raise ValueError(f"Validator count must be >= 1, got {n}")
        validator_set = cls(ValidatorIdentity.generate() for _ in range(n))
        logger.debug("Generated validator set of %d validators", n)
        return validator_set

    @classmethod
    def from_hex_keys(cls, entries: Iterable[Mapping[str, str]]) -> "ValidatorSet":
        """
        Rebuild a set from stored key material.

        Each entry maps ``validator_key``, ``orchestrator_key`` and
        ``ethereum_key`` to hex private keys. Invalid key material raises
        InvalidKeyError.
        """
        return cls(
            ValidatorIdentity(
                validator_key=PrivateKey.from_hex(entry["validator_key"]),
                orchestrator_key=PrivateKey.from_hex(entry["orchestrator_key"]),
                ethereum_key=PrivateKey.from_hex(entry["ethereum_key"]),
            )
            for entry in entries
        )

    def __getitem__(self, index):
        return self._identities[index]

    def __len__(self) -> int:
        return len(self._identities)

    def __iter__(self) -> Iterator[ValidatorIdentity]:
        return iter(self._identities)

    def __repr__(self) -> str:
        return f"ValidatorSet(size={len(self)})"

    @property
    def honest(self) -> ValidatorIdentity:
        return self._identities[HONEST_VALIDATOR_INDEX]

    @property
    def indices(self) -> range:
        return range(len(self._identities))

    def addresses(self, kind: KeyKind, prefix: str = ADDRESS_PREFIX) -> List[str]:
        return [derive_address(identity, kind, prefix) for identity in self._identities]

    def index_of(self, address: str, kind: KeyKind, prefix: str = ADDRESS_PREFIX) -> int:
        for index, identity in enumerate(self._identities):
            if derive_address(identity, kind, prefix) == address:
                return index
        raise KeyError(f"No validator with {kind.value} address {address}")


@dataclass(frozen=True)
class BridgeUser:
    """End user that sends deposits across the bridge during a scenario."""
    cosmos_key: PrivateKey
    ethereum_key: PrivateKey

    @classmethod
    def generate(cls) -> "BridgeUser":
        return cls(cosmos_key=PrivateKey.generate(), ethereum_key=PrivateKey.generate())

    def cosmos_address(self, prefix: str = ADDRESS_PREFIX) -> str:
        return public_key_to_cosmos_address(self.cosmos_key.public_key, prefix)

    @property
    def ethereum_address(self) -> str:
        return public_key_to_ethereum_address(self.ethereum_key.public_key)
