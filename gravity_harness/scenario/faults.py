"""
Fault Injector

Simulates Byzantine oracles: a chosen subset of orchestrators submits the
same claim for an Ethereum event that never happened. Every claim is
broadcast before any confirmation is awaited, so the chain sees concurrent
divergent claims rather than a sequence of them.
"""

import asyncio
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..chain.interfaces import ChainSubmitClient
from ..chain.types import AttestationClaim, Fee, TxHandle, TxResult
from ..constants import ADDRESS_PREFIX, HONEST_VALIDATOR_INDEX, OPERATION_TIMEOUT
from ..exceptions import PartialFailure
from ..logger import get_logger
from ..validators.identity import KeyKind, ValidatorSet, derive_address

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of one orchestrator's false claim."""
    validator_index: int
    orchestrator: str
    claim: AttestationClaim
    handle: Optional[TxHandle] = None
    result: Optional[TxResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    @property
    def stage(self) -> str:
        """Where the submission ended: broadcast, finalization, or confirmed."""
        if self.ok:
            return "confirmed"
        return "broadcast" if self.handle is None else "finalization"

    def to_dict(self) -> dict:
        return {
            "validator": self.validator_index,
            "orchestrator": self.orchestrator,
            "event_nonce": self.claim.event_nonce,
            "tx_hash": self.handle.tx_hash if self.handle else None,
            "height": self.result.height if self.result else None,
            "stage": self.stage,
            "error": repr(self.error) if self.error else None,
        }


@dataclass(frozen=True)
class FaultInjectionReport:
    outcomes: tuple

    @property
    def succeeded(self) -> List[SubmissionOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[SubmissionOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialFailure(
                f"{len(self.failed)} of {len(self.outcomes)} false claims did not confirm",
                self.outcomes,
            )


def _minority_members(validator_set: ValidatorSet, minority_indices: Iterable[int]) -> List[int]:
    members: List[int] = []
    for index in minority_indices:
        if not 0 <= index < len(validator_set):
            raise ValueError(f"Validator index {index} outside set of {len(validator_set)}")
        if index == HONEST_VALIDATOR_INDEX:
            logger.info("Skipping validator %d for false claims", index)
            continue
        if index in members:
            continue
        members.append(index)
    return members


class FaultInjector:
    """
    Submits conflicting attestation claims from a minority of orchestrators.

    Args:
        submitter: Cosmos broadcast client
        fee: Fee attached to every claim
        prefix: Bech32 prefix of orchestrator addresses
        submit_timeout: Default finalization timeout per claim
    """

    def __init__(
        self,
        submitter: ChainSubmitClient,
        fee: Fee = Fee(),
        prefix: str = ADDRESS_PREFIX,
        submit_timeout: float = OPERATION_TIMEOUT,
    ):
        self.submitter = submitter
        self.fee = fee
        self.prefix = prefix
        self.submit_timeout = submit_timeout

    async def inject_false_claims(
        self,
        validator_set: ValidatorSet,
        minority_indices: Iterable[int],
        template: AttestationClaim,
        submit_timeout: Optional[float] = None,
    ) -> List[SubmissionOutcome]:
        """
        Submit *template* once from each minority orchestrator.

        Returns one outcome per minority member, in the order given. A failure
        of one member never prevents the others from being broadcast or
        awaited, and nothing is retried.
        """
        timeout = self.submit_timeout if submit_timeout is None else submit_timeout
        members = _minority_members(validator_set, minority_indices)
        if not members:
            return []

        claims = []
        for index in members:
            identity = validator_set[index]
            orchestrator = derive_address(identity, KeyKind.ORCHESTRATOR, self.prefix)
            claim = template.with_orchestrator(orchestrator)
            logger.info("Oracle number %d submitting false deposit at nonce %d", index, claim.event_nonce)
            claims.append((index, identity, claim))

        # Fire every claim before awaiting any confirmation
        broadcasts = await asyncio.gather(
            *(self.submitter.submit_claim(claim, identity.orchestrator_key, self.fee)
              for _, identity, claim in claims),
            return_exceptions=True,
        )

        pending = [
            (position, handle)
            for position, handle in enumerate(broadcasts)
            if not isinstance(handle, BaseException)
        ]
        confirmations = await asyncio.gather(
            *(self.submitter.wait_for_tx(handle, timeout) for _, handle in pending),
            return_exceptions=True,
        )
        confirmed = {position: result for (position, _), result in zip(pending, confirmations)}

        outcomes: List[SubmissionOutcome] = []
        for position, (index, _, claim) in enumerate(claims):
            broadcast = broadcasts[position]
            if isinstance(broadcast, BaseException):
                outcome = SubmissionOutcome(index, claim.orchestrator, claim, error=broadcast)
            else:
                result = confirmed[position]
                if isinstance(result, BaseException):
                    outcome = SubmissionOutcome(index, claim.orchestrator, claim, handle=broadcast, error=result)
                else:
                    outcome = SubmissionOutcome(index, claim.orchestrator, claim, handle=broadcast, result=result)

            if outcome.ok:
                logger.info("Received success from claim %d: height %d", index, outcome.result.height)
            else:
                logger.warning("Received an error from claim %d at %s: %s", index, outcome.stage, outcome.error)
            outcomes.append(outcome)

        return outcomes

    async def inject(self, validator_set: ValidatorSet, minority_indices: Iterable[int],
                     template: AttestationClaim, submit_timeout: Optional[float] = None) -> FaultInjectionReport:
        """inject_false_claims wrapped in a report."""
        outcomes = await self.inject_false_claims(validator_set, minority_indices, template, submit_timeout)
        return FaultInjectionReport(tuple(outcomes))
