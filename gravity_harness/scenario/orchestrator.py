"""
Scenario Orchestrator

Drives the bridge through the halt / recovery scenario:

    PREPARING → BASELINE → FAULTS_INJECTED → HALT_CONFIRMED
              → RECOVERY_SUBMITTED → RECOVERY_CONFIRMED → COMPLETED

Each state is entered only after the check guarding it has passed. Nothing
is retried: the first failed check ends the run with a ScenarioFailure whose
report records the state reached, the cause and the last observed nonces.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..chain.interfaces import (
    ChainQueryClient,
    ChainSubmitClient,
    DepositClient,
    EthereumClient,
    GovernanceClient,
    StakingClient,
)
from ..chain.types import AttestationClaim, Coin, Fee, erc20_denom
from ..config.loader import HarnessConfig
from ..constants import HONEST_VALIDATOR_INDEX
from ..exceptions import (
    ConfigurationError,
    HarnessError,
    InvariantViolation,
    PartialFailure,
    PollCancelled,
    ScenarioFailure,
)
from ..logger import get_logger
from ..validators.identity import BridgeUser, ValidatorSet
from .faults import FaultInjector
from .governance import GovernanceRecoveryDriver, RecoveryProposal
from .nonces import NonceMonitor, NonceSnapshot
from .poller import ConvergencePoller, PollStatus
from .stake import StakeRedistributor, exceeds_attestation_threshold, power_share

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  STATE MACHINE
# ══════════════════════════════════════════════════════════════════════

class ScenarioLifecycleError(HarnessError):
    """Raised on illegal scenario state transitions."""


class ScenarioState(IntEnum):
    PREPARING = 0
    BASELINE = 1
    FAULTS_INJECTED = 2
    HALT_CONFIRMED = 3
    RECOVERY_SUBMITTED = 4
    RECOVERY_CONFIRMED = 5
    COMPLETED = 6


_VALID_TRANSITIONS: Dict[ScenarioState, set] = {
    ScenarioState.PREPARING:          {ScenarioState.BASELINE},
    ScenarioState.BASELINE:           {ScenarioState.FAULTS_INJECTED},
    ScenarioState.FAULTS_INJECTED:    {ScenarioState.HALT_CONFIRMED},
    ScenarioState.HALT_CONFIRMED:     {ScenarioState.RECOVERY_SUBMITTED},
    ScenarioState.RECOVERY_SUBMITTED: {ScenarioState.RECOVERY_CONFIRMED},
    ScenarioState.RECOVERY_CONFIRMED: {ScenarioState.COMPLETED},
    # Terminal
    ScenarioState.COMPLETED:          set(),
}


# ══════════════════════════════════════════════════════════════════════
#  REPORT
# ══════════════════════════════════════════════════════════════════════

@dataclass
class ScenarioReport:
    """Everything observed during one run, successful or not."""
    state: ScenarioState = ScenarioState.PREPARING
    snapshots: Dict[ScenarioState, NonceSnapshot] = field(default_factory=dict)
    baseline_nonce: Optional[int] = None
    ethereum_height: Optional[int] = None
    delegations: List[Any] = field(default_factory=list)
    fault_outcomes: List[Any] = field(default_factory=list)
    halt_observation: Optional[Dict[str, Any]] = None
    proposal_id: Optional[int] = None
    tally: Any = None
    failure: Optional[str] = None
    failed_check: Optional[str] = None
    last_snapshot: Optional[NonceSnapshot] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        self._record_transition(self.state, "started")

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    @property
    def succeeded(self) -> bool:
        return self.state == ScenarioState.COMPLETED and self.failure is None

    def _record_transition(self, new_state: ScenarioState, reason: str):
        self._history.append({
            "from": self.state.name if self._history else "INIT",
            "to": new_state.name,
            "reason": reason,
            "timestamp": time.time(),
        })

    def transition_to(self, new_state: ScenarioState, reason: str = ""):
        """
        Advance the scenario to *new_state*.

        Raises ScenarioLifecycleError on invalid transitions.
        """
        allowed = _VALID_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise ScenarioLifecycleError(
                f"Cannot transition from {self.state.name} → {new_state.name}. "
                f"Allowed: {[s.name for s in allowed]}"
            )
        old = self.state
        self._record_transition(new_state, reason)
        self.state = new_state
        logger.info("Scenario %s → %s | %s", old.name, new_state.name, reason)

    def record_snapshot(self, state: ScenarioState, snapshot: NonceSnapshot):
        self.snapshots[state] = snapshot
        self.last_snapshot = snapshot

    def fail(self, check: str, error: BaseException, snapshot: Optional[NonceSnapshot] = None):
        self.failed_check = check
        self.failure = f"{type(error).__name__}: {error}"
        if snapshot is not None:
            self.last_snapshot = snapshot
        if getattr(error, "tally", None) is not None:
            self.tally = error.tally
        self.finished_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.name,
            "succeeded": self.succeeded,
            "history": self.history,
            "snapshots": {state.name: snap.to_dict() for state, snap in self.snapshots.items()},
            "baselineNonce": self.baseline_nonce,
            "ethereumHeight": self.ethereum_height,
            "delegations": [o.to_dict() for o in self.delegations],
            "faultOutcomes": [o.to_dict() for o in self.fault_outcomes],
            "haltObservation": self.halt_observation,
            "proposalId": self.proposal_id,
            "tally": self.tally.to_dict() if self.tally is not None else None,
            "failure": self.failure,
            "failedCheck": self.failed_check,
            "lastSnapshot": self.last_snapshot.to_dict() if self.last_snapshot else None,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


# ══════════════════════════════════════════════════════════════════════
#  ORCHESTRATOR
# ══════════════════════════════════════════════════════════════════════

@dataclass
class ScenarioClients:
    """Chain collaborators of a run. Staking is optional."""
    query: ChainQueryClient
    submit: ChainSubmitClient
    governance: GovernanceClient
    ethereum: EthereumClient
    deposits: DepositClient
    staking: Optional[StakingClient] = None


def _snapshot_of(error: BaseException) -> Optional[NonceSnapshot]:
    for attr in ("snapshot", "last_sample"):
        value = getattr(error, attr, None)
        if isinstance(value, NonceSnapshot):
            return value
    return None


class ScenarioOrchestrator:
    """
    Runs the halt / recovery scenario against one set of chain clients.

    Args:
        validator_set: Validators of the chain under test (index 0 honest)
        bridge_user: Account used for real deposits
        clients: Chain collaborators
        config: Harness configuration
        cancel: Optional event aborting whichever wait is in progress
    """

    def __init__(
        self,
        validator_set: ValidatorSet,
        bridge_user: BridgeUser,
        clients: ScenarioClients,
        config: Optional[HarnessConfig] = None,
        cancel: Optional[asyncio.Event] = None,
    ):
        self.config = config or HarnessConfig()
        self.config.validate()
        if not self.config.chain.erc20_address:
            raise ConfigurationError("chain.erc20_address is required")

        self.validator_set = validator_set
        self.bridge_user = bridge_user
        self.clients = clients

        chain, timing, scenario = self.config.chain, self.config.timing, self.config.scenario
        self.prefix = chain.address_prefix
        self.token = chain.erc20_address
        self.fee = Fee((Coin(chain.fee_denom, chain.fee_amount),), chain.gas_limit)

        self.poller = ConvergencePoller(timing.poll_interval, timing.operation_timeout, cancel or asyncio.Event())
        self.monitor = NonceMonitor(clients.query, self.poller, self.prefix)
        self.injector = FaultInjector(clients.submit, self.fee, self.prefix, timing.operation_timeout)
        self.governance = GovernanceRecoveryDriver(
            clients.governance,
            clients.submit,
            self.poller,
            prefix=self.prefix,
            fee=self.fee,
            vote_timeout=timing.operation_timeout,
            vote_quorum=scenario.vote_quorum,
        )
        self.redistributor = None
        if clients.staking is not None:
            self.redistributor = StakeRedistributor(
                clients.staking, clients.submit, self.prefix, chain.staking_denom, self.fee, timing.operation_timeout
            )

        self.minority = sorted(set(scenario.minority_indices))
        self.honest = [i for i in validator_set.indices if i not in self.minority]
        self.report = ScenarioReport()
        self._check = "prepare"

    def cancel(self) -> None:
        """Abort the wait in progress; the run ends with a ScenarioFailure."""
        self.poller.cancel_all()

    async def run(self) -> ScenarioReport:
        """
        Run every step in order.

        Returns:
            The completed report

        Raises:
            ScenarioFailure: carrying the report of the failed run
        """
        logger.info(
            "Starting halt/recovery scenario with %d validators, faulty %s",
            len(self.validator_set), self.minority,
        )
        try:
            await self._prepare()
            baseline = await self._establish_baseline()
            await self._inject_faults(baseline)
            await self._confirm_halt(baseline)
            await self._submit_recovery(baseline)
            await self._confirm_recovery(baseline)
            await self._verify_liveness()
        except Exception as e:
            self.report.fail(self._check, e, _snapshot_of(e) or self.monitor.last_snapshot)
            logger.error("Scenario failed at %s in state %s: %s", self._check, self.report.state.name, e)
            raise ScenarioFailure(self.report) from e

        self.report.finished_at = time.time()
        logger.info("Scenario completed: bridge halted and recovered")
        return self.report

    # ── Deposits ──────────────────────────────────────────────────────

    @property
    def _receiver(self) -> str:
        return self.bridge_user.cosmos_address(self.prefix)

    async def _balance(self) -> int:
        return await self.clients.query.get_balance(self._receiver, erc20_denom(self.token))

    async def _send_deposit(self) -> int:
        """Send a real deposit and return the receiver balance before it."""
        before = await self._balance()
        tx_hash = await self.clients.deposits.send_to_cosmos(
            self.token, self._receiver, self.config.scenario.deposit_amount, self.bridge_user.ethereum_key
        )
        logger.info("Sent deposit %s of %d to %s", tx_hash, self.config.scenario.deposit_amount, self._receiver)
        return before

    async def _deposit_and_await_credit(self, description: str, deadline: float) -> int:
        before = await self._send_deposit()
        return await self.poller.wait_for(self._balance, lambda b: b > before, description, deadline=deadline)

    # ── Steps ─────────────────────────────────────────────────────────

    async def _prepare(self):
        scenario, timing = self.config.scenario, self.config.timing

        self._check = "faulty minority"
        self._validate_minority()

        self._check = "stake redistribution"
        if scenario.redistribute_stake and self.redistributor is not None:
            outcomes = await self.redistributor.redistribute(self.validator_set, self.minority)
            self.report.delegations = outcomes
            failed = [o for o in outcomes if not o.ok]
            if failed:
                raise PartialFailure(f"{len(failed)} of {len(outcomes)} delegations failed", outcomes)

        self._check = "baseline deposit"
        if scenario.baseline_deposit:
            balance = await self._deposit_and_await_credit("baseline deposit credit", timing.liveness_deadline)
            logger.info("Baseline deposit credited, balance %d", balance)

    async def _establish_baseline(self) -> int:
        self._check = "baseline agreement"
        snapshot = await self.monitor.snapshot(self.validator_set)
        self.report.record_snapshot(ScenarioState.BASELINE, snapshot)
        if not snapshot.all_equal():
            raise InvariantViolation(f"Orchestrators disagree before faults: {snapshot}", snapshot)

        baseline = snapshot[HONEST_VALIDATOR_INDEX]
        self.report.baseline_nonce = baseline
        self.report.ethereum_height = await self.clients.ethereum.get_latest_block_number()
        self.report.transition_to(ScenarioState.BASELINE, f"all nonces at {baseline}")
        return baseline

    def _validate_minority(self):
        size = len(self.validator_set)
        if not self.minority:
            raise ConfigurationError("The faulty minority is empty")
        if HONEST_VALIDATOR_INDEX in self.minority:
            raise ConfigurationError(f"Validator {HONEST_VALIDATOR_INDEX} must stay honest")
        if len(self.minority) >= size:
            raise ConfigurationError("The faulty minority must leave an honest validator")
        out_of_range = [i for i in self.minority if not 0 <= i < size]
        if out_of_range:
            raise ConfigurationError(f"Faulty indices {out_of_range} outside set of {size}")

    async def _inject_faults(self, baseline: int):
        self._check = "faulty minority"
        if self.clients.staking is not None:
            powers = await self.clients.staking.get_validator_powers()
            share = power_share(powers, self.validator_set, self.minority, self.prefix)
            if exceeds_attestation_threshold(powers, self.validator_set, self.minority, self.prefix):
                raise InvariantViolation(
                    f"Faulty validators hold {share:.1%} of voting power and could observe a false claim",
                    powers,
                )
            if exceeds_attestation_threshold(powers, self.validator_set, self.honest, self.prefix):
                raise InvariantViolation(
                    f"Honest validators hold {power_share(powers, self.validator_set, self.honest, self.prefix):.1%} "
                    f"of voting power and would keep the bridge running",
                    powers,
                )
            logger.info("Faulty validators hold %.1f%% of voting power", share * 100)

        self._check = "false claims"
        template = AttestationClaim(
            event_nonce=baseline + 1,
            block_height=self.report.ethereum_height + 1,
            token_contract=self.token,
            amount=self.config.scenario.false_claim_amount,
            ethereum_sender=self.bridge_user.ethereum_address,
            cosmos_receiver=self._receiver,
        )
        injection = await self.injector.inject(self.validator_set, self.minority, template)
        self.report.fault_outcomes = list(injection.outcomes)
        injection.raise_for_failures()
        self.report.transition_to(ScenarioState.FAULTS_INJECTED, f"false claims at nonce {baseline + 1}")

    async def _confirm_halt(self, baseline: int):
        timing = self.config.timing
        honest, faulty = self.honest, self.minority

        self._check = "nonce divergence"

        def diverged(snap: NonceSnapshot) -> bool:
            return (
                snap.matches_partition([honest, faulty])
                and snap[honest[0]] == baseline
                and snap[faulty[0]] == baseline + 1
            )

        snapshot = await self.monitor.await_condition(
            self.validator_set,
            diverged,
            f"honest {honest} at {baseline}, faulty {faulty} at {baseline + 1}",
            deadline=timing.halt_deadline,
        )
        self.report.record_snapshot(ScenarioState.HALT_CONFIRMED, snapshot)
        self.report.transition_to(ScenarioState.HALT_CONFIRMED, f"nonces diverged: {snapshot}")

        self._check = "bridge halted"
        before = await self._send_deposit()
        outcome = await self.poller.poll(self._balance, lambda b: b > before, deadline=timing.halt_observation_window)
        if outcome.status is PollStatus.SATISFIED:
            raise InvariantViolation(
                f"Deposit was credited while the bridge should be halted (balance {before} → {outcome.value})",
                self.monitor.last_snapshot,
            )
        if outcome.status is PollStatus.CANCELLED:
            raise PollCancelled("bridge halt observation", outcome.value)
        self.report.halt_observation = {
            "balance": before,
            "window": timing.halt_observation_window,
            "samples": outcome.attempts,
        }
        logger.info("Bridge halted: deposit not credited within %.1fs", timing.halt_observation_window)

    async def _submit_recovery(self, baseline: int):
        scenario = self.config.scenario

        self._check = "recovery proposal"
        proposal = RecoveryProposal(
            target_reset_nonce=baseline,
            deposit=Coin(self.config.chain.staking_denom, scenario.proposal_deposit),
        )
        proposal_id = await self.governance.submit_recovery(self.validator_set.honest.validator_key, proposal)
        self.report.proposal_id = proposal_id
        self.report.transition_to(ScenarioState.RECOVERY_SUBMITTED, f"proposal {proposal_id} in voting period")

        self._check = "recovery votes"
        self.report.tally = await self.governance.collect_votes(proposal_id, self.validator_set)

    async def _confirm_recovery(self, baseline: int):
        timing = self.config.timing

        self._check = "nonce reset"
        snapshot = await self.governance.await_effect(
            lambda: self.monitor.sample_round(self.validator_set),
            lambda snap: snap is not None and snap.all_equal_to(baseline),
            f"all nonces at {baseline}",
            deadline=timing.recovery_deadline,
        )
        self.report.record_snapshot(ScenarioState.RECOVERY_CONFIRMED, snapshot)

        if timing.post_recovery_settle > 0:
            self._check = "post recovery settle"
            outcome = await self.poller.poll(
                lambda: self.monitor.sample_round(self.validator_set),
                lambda snap: snap is not None and min(snap.values()) < baseline,
                deadline=timing.post_recovery_settle,
            )
            if outcome.status is PollStatus.SATISFIED:
                raise InvariantViolation(f"Nonces fell below {baseline} after recovery: {outcome.value}", outcome.value)
            if outcome.status is PollStatus.CANCELLED:
                raise PollCancelled("post recovery settle", outcome.value)

        self.report.transition_to(ScenarioState.RECOVERY_CONFIRMED, f"all nonces reset to {baseline}")

    async def _verify_liveness(self):
        self._check = "bridge liveness"
        balance = await self._deposit_and_await_credit("deposit credit after recovery", self.config.timing.liveness_deadline)
        snapshot = await self.monitor.snapshot(self.validator_set)
        self.report.record_snapshot(ScenarioState.COMPLETED, snapshot)
        self.report.transition_to(ScenarioState.COMPLETED, f"deposit credited, balance {balance}")
