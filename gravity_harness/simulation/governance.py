"""
Simulated Cosmos SDK Governance (gov v1beta1)

Implements:
  - Proposal lifecycle: DEPOSIT_PERIOD → VOTING_PERIOD → PASSED / REJECTED / FAILED
  - Stake-weighted votes: Yes / No / Abstain / NoWithVeto (1 bonded token = 1 vote)
  - Tally: quorum 33.4% of bonded power, threshold 50% of non-abstain votes,
    veto 33.4% of all votes
  - A proposal tallies once every validator voted or its voting period ends
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from ..chain.types import ParameterChangeProposal, VoteOption
from ..constants import (
    GOVERNANCE_QUORUM,
    GOVERNANCE_THRESHOLD,
    GOVERNANCE_VETO_THRESHOLD,
    GOVERNANCE_VOTING_PERIOD,
    PROPOSAL_DEPOSIT,
)
from ..exceptions import HarnessError
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernanceError(HarnessError):
    """Base governance exception."""


class ProposalLifecycleError(GovernanceError):
    """Raised on illegal state transitions."""


class VotingError(GovernanceError):
    """Vote rejected."""


# ══════════════════════════════════════════════════════════════════════
#  LIFECYCLE
# ══════════════════════════════════════════════════════════════════════

class ProposalStatus(IntEnum):
    DEPOSIT_PERIOD = 1
    VOTING_PERIOD = 2
    PASSED = 3
    REJECTED = 4
    FAILED = 5      # Passed, but its content could not be applied


_VALID_TRANSITIONS: Dict[ProposalStatus, set] = {
    ProposalStatus.DEPOSIT_PERIOD: {ProposalStatus.VOTING_PERIOD},
    ProposalStatus.VOTING_PERIOD:  {ProposalStatus.PASSED, ProposalStatus.REJECTED},
    ProposalStatus.PASSED:         {ProposalStatus.FAILED},
    ProposalStatus.REJECTED:       set(),
    ProposalStatus.FAILED:         set(),
}


@dataclass
class Proposal:
    id: int
    content: ParameterChangeProposal
    proposer: str
    total_deposit: int = 0
    status: ProposalStatus = ProposalStatus.DEPOSIT_PERIOD
    submit_time: float = 0.0
    voting_end: Optional[float] = None
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        self._record_transition(ProposalStatus.DEPOSIT_PERIOD, "submitted")

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    @property
    def is_votable(self) -> bool:
        return self.status == ProposalStatus.VOTING_PERIOD

    def _record_transition(self, new_status: ProposalStatus, reason: str):
        self._history.append({
            "from": self.status.name if self._history else "INIT",
            "to": new_status.name,
            "reason": reason,
            "timestamp": time.time(),
        })

    def transition_to(self, new_status: ProposalStatus, reason: str = ""):
        allowed = _VALID_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise ProposalLifecycleError(
                f"Cannot transition from {self.status.name} → {new_status.name}. "
                f"Allowed: {[s.name for s in allowed]}"
            )
        old = self.status
        self._record_transition(new_status, reason)
        self.status = new_status
        logger.info(f"Proposal #{self.id} ({self.content.title}): {old.name} → {new_status.name} | {reason}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content.to_any(),
            "proposer": self.proposer,
            "totalDeposit": str(self.total_deposit),
            "status": self.status.name,
            "votingEnd": self.voting_end,
        }


# ══════════════════════════════════════════════════════════════════════
#  TALLY
# ══════════════════════════════════════════════════════════════════════

@dataclass
class TallyResult:
    """Power-weighted tally of one proposal."""
    proposal_id: int
    yes: int = 0
    no: int = 0
    abstain: int = 0
    no_with_veto: int = 0
    total_bonded: int = 0
    quorum_threshold: Decimal = Decimal(str(GOVERNANCE_QUORUM))
    pass_threshold: Decimal = Decimal(str(GOVERNANCE_THRESHOLD))
    veto_threshold: Decimal = Decimal(str(GOVERNANCE_VETO_THRESHOLD))

    @property
    def total_votes(self) -> int:
        return self.yes + self.no + self.abstain + self.no_with_veto

    @property
    def quorum_reached(self) -> bool:
        if self.total_bonded <= 0:
            return False
        return Decimal(self.total_votes) / Decimal(self.total_bonded) >= self.quorum_threshold

    @property
    def vetoed(self) -> bool:
        if self.total_votes <= 0:
            return False
        return Decimal(self.no_with_veto) / Decimal(self.total_votes) > self.veto_threshold

    @property
    def approval_rate(self) -> Decimal:
        """Yes share of all votes except abstain."""
        decisive = self.total_votes - self.abstain
        if decisive <= 0:
            return Decimal("0")
        return Decimal(self.yes) / Decimal(decisive)

    @property
    def passes(self) -> bool:
        return self.quorum_reached and not self.vetoed and self.approval_rate > self.pass_threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": self.proposal_id,
            "yes": str(self.yes),
            "no": str(self.no),
            "abstain": str(self.abstain),
            "noWithVeto": str(self.no_with_veto),
            "totalBonded": str(self.total_bonded),
            "quorumReached": self.quorum_reached,
            "vetoed": self.vetoed,
            "approvalRate": str(self.approval_rate),
            "passes": self.passes,
        }


# ══════════════════════════════════════════════════════════════════════
#  MODULE
# ══════════════════════════════════════════════════════════════════════

class GovernanceModule:
    """
    In-memory gov module.

    Voting power is resolved at tally time through *get_powers*, which maps
    voter account → bonded tokens of the validator it operates.
    """

    def __init__(
        self,
        get_powers: Callable[[], Dict[str, int]],
        min_deposit: int = PROPOSAL_DEPOSIT,
        voting_period: float = GOVERNANCE_VOTING_PERIOD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._get_powers = get_powers
        self.min_deposit = min_deposit
        self.voting_period = voting_period
        self._clock = clock
        self._proposals: Dict[int, Proposal] = {}
        self._votes: Dict[int, Dict[str, VoteOption]] = {}
        self._results: Dict[int, TallyResult] = {}
        self._next_id = 1

    # ── Proposals ─────────────────────────────────────────────────────

    def submit(self, content: ParameterChangeProposal, proposer: str, deposit: int) -> Proposal:
        proposal = Proposal(
            id=self._next_id,
            content=content,
            proposer=proposer,
            submit_time=self._clock(),
        )
        self._next_id += 1
        self._proposals[proposal.id] = proposal
        self._votes[proposal.id] = {}
        self.add_deposit(proposal.id, deposit)
        return proposal

    def add_deposit(self, proposal_id: int, amount: int):
        proposal = self.get(proposal_id)
        if proposal.status != ProposalStatus.DEPOSIT_PERIOD:
            raise GovernanceError(f"Proposal #{proposal_id} is not accepting deposits")
        proposal.total_deposit += amount
        if proposal.total_deposit >= self.min_deposit:
            proposal.voting_end = self._clock() + self.voting_period
            proposal.transition_to(ProposalStatus.VOTING_PERIOD, f"deposit {proposal.total_deposit} reached minimum")

    def get(self, proposal_id: int) -> Proposal:
        try:
            return self._proposals[proposal_id]
        except KeyError:
            raise GovernanceError(f"Unknown proposal #{proposal_id}") from None

    def in_voting_period(self) -> List[int]:
        return [p.id for p in self._proposals.values() if p.is_votable]

    # ── Votes ─────────────────────────────────────────────────────────

    def vote(self, proposal_id: int, voter: str, option: VoteOption):
        """Record (or replace) *voter*'s vote."""
        proposal = self.get(proposal_id)
        if not proposal.is_votable:
            raise VotingError(f"Proposal #{proposal_id} is not votable (status={proposal.status.name})")
        if option == VoteOption.UNSPECIFIED:
            raise VotingError("Vote option cannot be unspecified")
        if self._get_powers().get(voter, 0) <= 0:
            raise VotingError(f"{voter} has no voting power")
        self._votes[proposal_id][voter] = option
        logger.debug(f"Vote: {voter} → {option.name} on proposal #{proposal_id}")

    def tally(self, proposal_id: int) -> TallyResult:
        powers = self._get_powers()
        result = TallyResult(proposal_id=proposal_id, total_bonded=sum(powers.values()))
        for voter, option in self._votes.get(proposal_id, {}).items():
            power = powers.get(voter, 0)
            if option == VoteOption.YES:
                result.yes += power
            elif option == VoteOption.NO:
                result.no += power
            elif option == VoteOption.ABSTAIN:
                result.abstain += power
            else:
                result.no_with_veto += power
        return result

    def get_result(self, proposal_id: int) -> Optional[TallyResult]:
        return self._results.get(proposal_id)

    # ── End block ─────────────────────────────────────────────────────

    def end_block(self) -> List[Proposal]:
        """
        Finalize proposals whose vote is complete or whose period ended.

        Returns the proposals that passed in this block.
        """
        now = self._clock()
        eligible = set(self._get_powers())
        passed = []
        for proposal in list(self._proposals.values()):
            if not proposal.is_votable:
                continue
            everyone_voted = eligible <= set(self._votes[proposal.id])
            if not everyone_voted and now < proposal.voting_end:
                continue

            result = self.tally(proposal.id)
            self._results[proposal.id] = result
            if result.passes:
                proposal.transition_to(ProposalStatus.PASSED, f"approval {result.approval_rate:.2%}")
                passed.append(proposal)
            elif not result.quorum_reached:
                proposal.transition_to(
                    ProposalStatus.REJECTED, f"quorum not reached ({result.total_votes}/{result.total_bonded})"
                )
            else:
                proposal.transition_to(ProposalStatus.REJECTED, f"approval {result.approval_rate:.2%}")
        return passed

    def __repr__(self) -> str:
        return f"<GovernanceModule proposals={len(self._proposals)}>"
