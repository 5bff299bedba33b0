"""
Stake redistribution before fault injection.

A halt needs a split in which neither side can observe an attestation alone:
with equal stake a two-of-three minority holds 66.7% of the power and would
observe its false claim, while a one-of-three minority leaves the honest side
at 66.7%. Before the faults, the faulty validators delegate from their liquid
balance until both sides hold the same power. When the honest side is weaker
they delegate to the honest validator, otherwise to themselves.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..chain.interfaces import ChainSubmitClient, StakingClient
from ..chain.types import Coin, Fee, TxHandle, TxResult
from ..constants import (
    ADDRESS_PREFIX,
    ATTESTATION_VOTES_POWER_THRESHOLD,
    HONEST_VALIDATOR_INDEX,
    OPERATION_TIMEOUT,
    STAKING_TOKEN,
)
from ..logger import get_logger
from ..validators.identity import KeyKind, ValidatorSet

logger = get_logger(__name__)


@dataclass(frozen=True)
class DelegationOutcome:
    validator_index: int
    amount: Coin
    handle: Optional[TxHandle] = None
    result: Optional[TxResult] = None
    error: Optional[BaseException] = None
    target: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    def to_dict(self) -> dict:
        return {
            "validator": self.validator_index,
            "target": self.target,
            "amount": str(self.amount),
            "ok": self.ok,
            "error": repr(self.error) if self.error else None,
        }


def _held_power(powers: Dict[str, int], validator_set: ValidatorSet, indices: Iterable[int], prefix: str) -> int:
    operators = validator_set.addresses(KeyKind.VALIDATOR_OPERATOR, prefix)
    return sum(powers.get(operators[i], 0) for i in set(indices))


def power_share(powers: Dict[str, int], validator_set: ValidatorSet, indices: Iterable[int],
                prefix: str = ADDRESS_PREFIX) -> float:
    """Fraction of total bonded power held by the validators at *indices*."""
    total = sum(powers.values())
    if total <= 0:
        return 0.0
    return _held_power(powers, validator_set, indices, prefix) / total


def exceeds_attestation_threshold(powers: Dict[str, int], validator_set: ValidatorSet,
                                  indices: Iterable[int], prefix: str = ADDRESS_PREFIX) -> bool:
    """True if the validators at *indices* could observe an attestation on their own."""
    total = sum(powers.values())
    held = _held_power(powers, validator_set, indices, prefix)
    return held > total * ATTESTATION_VOTES_POWER_THRESHOLD // 100


class StakeRedistributor:
    """
    Delegates stake from the faulty validators so no side reaches the threshold.

    Args:
        staking: Staking client
        transactions: Client used to await delegation finalization
    """

    def __init__(
        self,
        staking: StakingClient,
        transactions: ChainSubmitClient,
        prefix: str = ADDRESS_PREFIX,
        staking_denom: str = STAKING_TOKEN,
        fee: Fee = Fee(),
        timeout: float = OPERATION_TIMEOUT,
    ):
        self.staking = staking
        self.transactions = transactions
        self.prefix = prefix
        self.staking_denom = staking_denom
        self.fee = fee
        self.timeout = timeout

    async def _delegate_one(self, index: int, validator_set: ValidatorSet, target: str, amount: Coin) -> DelegationOutcome:
        handle = None
        try:
            handle = await self.staking.delegate(target, amount, validator_set[index].validator_key, self.fee)
            result = await self.transactions.wait_for_tx(handle, self.timeout)
        except Exception as e:
            logger.warning("Delegation from validator %d failed: %s", index, e)
            return DelegationOutcome(index, amount, handle=handle, error=e, target=target)
        return DelegationOutcome(index, amount, handle=handle, result=result, target=target)

    async def redistribute(
        self,
        validator_set: ValidatorSet,
        minority_indices: Iterable[int],
    ) -> List[DelegationOutcome]:
        """
        Balance honest and faulty power with delegations from the faulty side.

        The power gap is split evenly across the faulty validators. Returns one
        outcome per delegation, or nothing when the sides are already level.
        """
        faulty = sorted(set(minority_indices) - {HONEST_VALIDATOR_INDEX})
        honest = [i for i in validator_set.indices if i not in faulty]
        before = await self.staking.get_validator_powers()
        logger.debug("Validator powers before redistribution: %s", before)

        honest_power = _held_power(before, validator_set, honest, self.prefix)
        faulty_power = _held_power(before, validator_set, faulty, self.prefix)
        share = abs(honest_power - faulty_power) // len(faulty) if faulty else 0
        if share == 0:
            logger.info("Honest and faulty power already level, nothing to delegate")
            return []

        operators = validator_set.addresses(KeyKind.VALIDATOR_OPERATOR, self.prefix)
        amount = Coin(self.staking_denom, share)
        if honest_power < faulty_power:
            targets = {i: operators[HONEST_VALIDATOR_INDEX] for i in faulty}
        else:
            targets = {i: operators[i] for i in faulty}
        logger.info("Delegating %s from each of validators %s (honest %d, faulty %d)",
                    amount, faulty, honest_power, faulty_power)

        outcomes = await asyncio.gather(
            *(self._delegate_one(i, validator_set, targets[i], amount) for i in faulty)
        )

        after = await self.staking.get_validator_powers()
        logger.info("Validator powers after redistribution: %s", after)
        return list(outcomes)
