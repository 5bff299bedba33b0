"""
Governance Recovery Driver

Recovers a halted bridge through a parameter-change proposal that resets
bridge state to a chosen event nonce:

    gravity/ResetBridgeState = true
    gravity/ResetBridgeNonce = "<nonce>"

The driver submits the proposal, collects YES votes from the validator set
and waits for the reset to take effect.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..chain.interfaces import ChainSubmitClient, GovernanceClient
from ..chain.types import Coin, Fee, ParamChange, ParameterChangeProposal, TxHandle, TxResult, VoteOption
from ..constants import (
    ADDRESS_PREFIX,
    GOVERNANCE_VOTE_QUORUM,
    GRAVITY_PARAM_SUBSPACE,
    OPERATION_TIMEOUT,
    PARAM_RESET_BRIDGE_NONCE,
    PARAM_RESET_BRIDGE_STATE,
    PROPOSAL_DEPOSIT,
    STAKING_TOKEN,
)
from ..crypto.keys import PrivateKey
from ..exceptions import PartialFailure
from ..logger import get_logger
from ..validators.identity import KeyKind, ValidatorSet, derive_address
from .poller import ConvergencePoller

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RecoveryProposal:
    """
    Reset of bridge state to *target_reset_nonce*.

    Attributes:
        target_reset_nonce:  Event nonce every orchestrator is rewound to
        reset_state:         Value of ResetBridgeState
        deposit:             Proposal deposit
    """
    target_reset_nonce: int
    reset_state: bool = True
    deposit: Coin = Coin(STAKING_TOKEN, PROPOSAL_DEPOSIT)
    title: str = "Reset Bridge State"
    description: str = "Resets the bridge state to recover from divergent attestations"

    def __post_init__(self):
        if self.target_reset_nonce < 0:
            raise ValueError("target_reset_nonce must be non-negative")

    def to_content(self) -> ParameterChangeProposal:
        # ResetBridgeNonce is a uint64 param, so its JSON value is a quoted string
        return ParameterChangeProposal(
            title=self.title,
            description=self.description,
            changes=(
                ParamChange(GRAVITY_PARAM_SUBSPACE, PARAM_RESET_BRIDGE_STATE, json.dumps(self.reset_state)),
                ParamChange(GRAVITY_PARAM_SUBSPACE, PARAM_RESET_BRIDGE_NONCE, json.dumps(str(self.target_reset_nonce))),
            ),
        )


# ══════════════════════════════════════════════════════════════════════
#  VOTES
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VoteOutcome:
    validator_index: int
    voter: str
    handle: Optional[TxHandle] = None
    result: Optional[TxResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validator": self.validator_index,
            "voter": self.voter,
            "tx_hash": self.handle.tx_hash if self.handle else None,
            "ok": self.ok,
            "error": repr(self.error) if self.error else None,
        }


@dataclass(frozen=True)
class VoteTally:
    """Finalized YES votes of one collection round."""
    proposal_id: int
    outcomes: tuple
    quorum: float = GOVERNANCE_VOTE_QUORUM

    @property
    def yes_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def fraction(self) -> float:
        if not self.outcomes:
            return 0.0
        return self.yes_count / len(self.outcomes)

    @property
    def quorum_reached(self) -> bool:
        return self.fraction >= self.quorum

    @property
    def failed(self) -> List[VoteOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "yes": self.yes_count,
            "total": len(self.outcomes),
            "fraction": round(self.fraction, 4),
            "quorum_reached": self.quorum_reached,
            "votes": [o.to_dict() for o in self.outcomes],
        }


# ══════════════════════════════════════════════════════════════════════
#  DRIVER
# ══════════════════════════════════════════════════════════════════════

class GovernanceRecoveryDriver:
    """
    Submits the reset proposal, gathers votes and awaits its effect.

    Args:
        governance: Governance client
        transactions: Client used to await vote finalization
        poller: Shared poller
        fee: Fee attached to proposal and vote transactions
        vote_timeout: Finalization timeout per vote
        vote_quorum: Minimum fraction of finalized YES votes
    """

    def __init__(
        self,
        governance: GovernanceClient,
        transactions: ChainSubmitClient,
        poller: ConvergencePoller,
        prefix: str = ADDRESS_PREFIX,
        fee: Fee = Fee(),
        vote_timeout: float = OPERATION_TIMEOUT,
        vote_quorum: float = GOVERNANCE_VOTE_QUORUM,
    ):
        if not 0 < vote_quorum <= 1:
            raise ValueError("vote_quorum must be in (0, 1]")
        self.governance = governance
        self.transactions = transactions
        self.poller = poller
        self.prefix = prefix
        self.fee = fee
        self.vote_timeout = vote_timeout
        self.vote_quorum = vote_quorum

    async def submit_recovery(self, proposer: PrivateKey, proposal: RecoveryProposal,
                              deadline: Optional[float] = None) -> int:
        """
        Broadcast *proposal* and wait until it is in its voting period.

        Errors are not caught: a proposal that cannot be submitted ends the
        recovery.
        """
        logger.info(
            "Submitting reset proposal to nonce %d with deposit %s",
            proposal.target_reset_nonce, proposal.deposit,
        )
        proposal_id = await self.governance.submit_proposal(
            proposal.to_content(), proposal.deposit, proposer, self.fee
        )
        await self.poller.wait_for(
            self.governance.list_proposals_in_voting_period,
            lambda ids: proposal_id in ids,
            f"proposal {proposal_id} in voting period",
            deadline=deadline,
        )
        logger.info("Proposal %d is in its voting period", proposal_id)
        return proposal_id

    async def _vote_one(self, proposal_id: int, index: int, voter_key: PrivateKey, voter: str) -> VoteOutcome:
        handle = None
        try:
            handle = await self.governance.vote(proposal_id, VoteOption.YES, voter_key, self.fee)
            result = await self.transactions.wait_for_tx(handle, self.vote_timeout)
        except Exception as e:
            logger.warning("Vote from validator %d on proposal %d failed: %s", index, proposal_id, e)
            return VoteOutcome(index, voter, handle=handle, error=e)
        logger.info("Vote from validator %d finalized at height %d", index, result.height)
        return VoteOutcome(index, voter, handle=handle, result=result)

    async def collect_votes(self, proposal_id: int, validator_set: ValidatorSet) -> VoteTally:
        """
        Vote YES from every validator concurrently and wait for all votes.

        Raises:
            PartialFailure: if fewer than ``vote_quorum`` of the votes finalized
        """
        outcomes = await asyncio.gather(*(
            self._vote_one(
                proposal_id,
                index,
                identity.validator_key,
                derive_address(identity, KeyKind.VALIDATOR, self.prefix),
            )
            for index, identity in enumerate(validator_set)
        ))
        tally = VoteTally(proposal_id, tuple(outcomes), self.vote_quorum)
        logger.info(
            "Proposal %d: %d of %d votes finalized", proposal_id, tally.yes_count, len(tally.outcomes)
        )
        if not tally.quorum_reached:
            error = PartialFailure(
                f"Only {tally.yes_count} of {len(tally.outcomes)} votes on proposal "
                f"{proposal_id} finalized (need {self.vote_quorum:.0%})",
                tally.outcomes,
            )
            error.tally = tally
            raise error
        return tally

    async def await_effect(
        self,
        sample: Callable[[], Awaitable[Any]],
        predicate: Callable[[Any], bool],
        description: str,
        interval: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> Any:
        """Wait until the proposal's effect is observable."""
        return await self.poller.wait_for(sample, predicate, description, interval=interval, deadline=deadline)
