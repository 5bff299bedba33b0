"""
End-to-end scenario tests against the simulated bridge.

Coverage:
  - full halt / recovery run and the nonces recorded at each state, for
    validator sets of three to five with different minorities
  - stake redistribution leaving neither side above the attestation threshold
  - ScenarioReport state machine and serialization
  - baseline disagreement, faulty or honest power above the attestation threshold
  - votes below quorum, recovery that never takes effect
  - cancellation while observing the halted bridge
"""

import asyncio
import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from gravity_harness.chain.types import erc20_denom
from gravity_harness.config.loader import HarnessConfig, TimingConfig
from gravity_harness.exceptions import ConfigurationError, ScenarioFailure
from gravity_harness.scenario.orchestrator import (
    ScenarioClients,
    ScenarioLifecycleError,
    ScenarioOrchestrator,
    ScenarioReport,
    ScenarioState,
)
from gravity_harness.scenario.stake import StakeRedistributor, exceeds_attestation_threshold, power_share
from gravity_harness.simulation import TxFaultKind, build_simulation
from gravity_harness.validators import BridgeUser, KeyKind, ValidatorSet

STAKE = 1_000_000_000


def make_config(**overrides) -> HarnessConfig:
    config = HarnessConfig()
    config.timing = TimingConfig(
        operation_timeout=1.0,
        poll_interval=0.01,
        halt_deadline=1.0,
        halt_observation_window=0.1,
        recovery_deadline=0.5,
        liveness_deadline=1.0,
        post_recovery_settle=0.05,
    )
    for name, value in overrides.items():
        setattr(config.timing, name, value)
    return config


def make_run(config=None, with_staking=True, cancel=None, initial_nonce=4, size=3, minority=None):
    validator_set = ValidatorSet.generate(size)
    bridge, ethereum = build_simulation(validator_set, initial_event_nonce=initial_nonce)
    config = config or make_config()
    config.chain.erc20_address = ethereum.token_contract
    config.scenario.validator_count = size
    if minority is not None:
        config.scenario.minority_indices = list(minority)
    clients = ScenarioClients(
        query=bridge,
        submit=bridge,
        governance=bridge,
        ethereum=ethereum,
        deposits=ethereum,
        staking=bridge if with_staking else None,
    )
    user = BridgeUser.generate()
    orchestrator = ScenarioOrchestrator(validator_set, user, clients, config, cancel=cancel)
    return orchestrator, bridge, ethereum, user


def presplit_stake(bridge, validator_set):
    """Apply the redistribution directly, for runs without a staking client."""
    operators = validator_set.addresses(KeyKind.VALIDATOR_OPERATOR)
    bridge.tokens[operators[0]] = STAKE + STAKE // 2


class TestScenarioReport:

    def test_forward_transitions(self):
        report = ScenarioReport()
        for state in list(ScenarioState)[1:]:
            report.transition_to(state, "ok")
        assert report.state == ScenarioState.COMPLETED
        assert report.succeeded
        assert [h["to"] for h in report.history][0] == "PREPARING"
        assert len(report.history) == len(ScenarioState)

    def test_skipping_a_state_is_illegal(self):
        report = ScenarioReport()
        with pytest.raises(ScenarioLifecycleError):
            report.transition_to(ScenarioState.FAULTS_INJECTED)
        report.transition_to(ScenarioState.BASELINE)
        with pytest.raises(ScenarioLifecycleError):
            report.transition_to(ScenarioState.BASELINE)

    def test_failed_report(self):
        report = ScenarioReport()
        report.fail("baseline agreement", RuntimeError("boom"))
        assert not report.succeeded
        assert report.to_dict()["failure"] == "RuntimeError: boom"
        assert report.to_dict()["failedCheck"] == "baseline agreement"


class TestConstruction:

    def test_token_required(self):
        validator_set = ValidatorSet.generate(3)
        bridge, ethereum = build_simulation(validator_set)
        clients = ScenarioClients(bridge, bridge, bridge, ethereum, ethereum)
        with pytest.raises(ConfigurationError):
            ScenarioOrchestrator(validator_set, BridgeUser.generate(), clients, make_config())

    def test_honest_validator_cannot_be_faulty(self):
        config = make_config()
        config.scenario.minority_indices = [0, 1]
        with pytest.raises(ConfigurationError):
            make_run(config)


@pytest.mark.asyncio
class TestStakeRedistribution:

    async def redistribute(self, size, minority):
        validator_set = ValidatorSet.generate(size)
        bridge, _ = build_simulation(validator_set)
        outcomes = await StakeRedistributor(bridge, bridge).redistribute(validator_set, minority)
        powers = await bridge.get_validator_powers()
        honest = [i for i in range(size) if i not in minority]
        return validator_set, outcomes, powers, honest

    async def test_weaker_honest_side_receives_delegations(self):
        validator_set, outcomes, powers, honest = await self.redistribute(3, [1, 2])
        operators = validator_set.addresses(KeyKind.VALIDATOR_OPERATOR)
        assert [o.amount.amount for o in outcomes] == [STAKE // 2, STAKE // 2]
        assert {o.target for o in outcomes} == {operators[0]}
        assert power_share(powers, validator_set, honest) == 0.5

    async def test_weaker_faulty_side_delegates_to_itself(self):
        validator_set, outcomes, powers, honest = await self.redistribute(5, [1, 2])
        operators = validator_set.addresses(KeyKind.VALIDATOR_OPERATOR)
        assert [o.target for o in outcomes] == [operators[1], operators[2]]
        assert all(o.ok for o in outcomes)
        assert power_share(powers, validator_set, honest) == 0.5

    @pytest.mark.parametrize("size, minority", [(3, [1]), (4, [1, 2, 3]), (5, [2, 3, 4]), (5, [1])])
    async def test_neither_side_can_attest_alone(self, size, minority):
        validator_set, outcomes, powers, honest = await self.redistribute(size, minority)
        assert all(o.ok for o in outcomes)
        assert not exceeds_attestation_threshold(powers, validator_set, honest)
        assert not exceeds_attestation_threshold(powers, validator_set, minority)

    async def test_level_sides_need_no_delegation(self):
        validator_set = ValidatorSet.generate(4)
        bridge, _ = build_simulation(validator_set)
        operators = validator_set.addresses(KeyKind.VALIDATOR_OPERATOR)
        bridge.tokens[operators[0]] = 3 * STAKE
        assert await StakeRedistributor(bridge, bridge).redistribute(validator_set, [1, 2, 3]) == []


@pytest.mark.asyncio
class TestHaltAndRecovery:

    @pytest.mark.parametrize("size, minority", [
        (3, [1, 2]),
        (3, [1]),
        (4, [1, 2, 3]),
        (5, [1, 2]),
        (5, [2, 3, 4]),
    ])
    async def test_full_run(self, size, minority):
        orchestrator, bridge, ethereum, user = make_run(size=size, minority=minority)

        report = await orchestrator.run()

        assert report.succeeded, report.failure
        halted = [6 if i in minority else 5 for i in range(size)]
        assert report.baseline_nonce == 5
        assert report.snapshots[ScenarioState.BASELINE].values() == [5] * size
        assert report.snapshots[ScenarioState.HALT_CONFIRMED].values() == halted
        assert report.snapshots[ScenarioState.RECOVERY_CONFIRMED].values() == [5] * size
        assert report.snapshots[ScenarioState.COMPLETED].values() == [7] * size
        assert [o.validator_index for o in report.fault_outcomes] == minority
        assert [o.validator_index for o in report.delegations] == minority
        assert report.tally.yes_count == size
        assert report.halt_observation["samples"] >= 1

        amount = orchestrator.config.scenario.deposit_amount
        assert bridge.balances[(user.cosmos_address(), erc20_denom(ethereum.token_contract))] == 3 * amount

    async def test_report_serializes(self):
        orchestrator, _, _, _ = make_run()
        data = (await orchestrator.run()).to_dict()
        assert data["state"] == "COMPLETED"
        assert data["snapshots"]["HALT_CONFIRMED"] == {"v0": 5, "v1": 6, "v2": 6}
        assert [h["to"] for h in data["history"]] == [s.name for s in ScenarioState]

    async def test_from_genesis(self):
        orchestrator, _, _, _ = make_run(initial_nonce=0)
        report = await orchestrator.run()
        assert report.baseline_nonce == 1


@pytest.mark.asyncio
class TestFailures:

    async def test_baseline_disagreement(self):
        config = make_config()
        config.scenario.baseline_deposit = False
        orchestrator, bridge, _, _ = make_run(config)
        bridge.last_event_nonce[orchestrator.validator_set.addresses(KeyKind.ORCHESTRATOR)[2]] = 3

        with pytest.raises(ScenarioFailure) as exc_info:
            await orchestrator.run()

        report = exc_info.value.report
        assert report.state == ScenarioState.PREPARING
        assert report.failed_check == "baseline agreement"
        assert report.failure.startswith("InvariantViolation")
        assert report.last_snapshot.values() == [4, 4, 3]

    async def test_faulty_power_above_threshold(self):
        config = make_config()
        config.scenario.redistribute_stake = False
        orchestrator, bridge, _, _ = make_run(config)

        with pytest.raises(ScenarioFailure) as exc_info:
            await orchestrator.run()

        report = exc_info.value.report
        assert report.state == ScenarioState.BASELINE
        assert report.failed_check == "faulty minority"
        assert report.fault_outcomes == []
        assert list(bridge.last_event_nonce.values()) == [5, 5, 5]

    async def test_honest_power_above_threshold(self):
        config = make_config()
        config.scenario.redistribute_stake = False
        orchestrator, bridge, _, _ = make_run(config, minority=[1])

        with pytest.raises(ScenarioFailure) as exc_info:
            await orchestrator.run()

        report = exc_info.value.report
        assert report.state == ScenarioState.BASELINE
        assert report.failed_check == "faulty minority"
        assert "Honest validators hold 66.7%" in report.failure
        assert report.fault_outcomes == []
        assert list(bridge.last_event_nonce.values()) == [5, 5, 5]

    async def test_votes_below_quorum(self):
        orchestrator, bridge, _, _ = make_run(with_staking=False)
        validator_set = orchestrator.validator_set
        presplit_stake(bridge, validator_set)
        for account in validator_set.addresses(KeyKind.VALIDATOR)[1:]:
            bridge.inject_tx_fault(TxFaultKind.REJECT, signer=account)

        with pytest.raises(ScenarioFailure) as exc_info:
            await orchestrator.run()

        report = exc_info.value.report
        assert report.state == ScenarioState.RECOVERY_SUBMITTED
        assert report.failed_check == "recovery votes"
        assert report.tally.yes_count == 1
        assert report.to_dict()["tally"]["quorumReached"] is False

    async def test_recovery_never_takes_effect(self):
        config = make_config()
        config.scenario.vote_quorum = 0.3
        orchestrator, bridge, _, _ = make_run(config, with_staking=False)
        validator_set = orchestrator.validator_set
        presplit_stake(bridge, validator_set)
        for account in validator_set.addresses(KeyKind.VALIDATOR)[1:]:
            bridge.inject_tx_fault(TxFaultKind.FAIL, signer=account)

        with pytest.raises(ScenarioFailure) as exc_info:
            await orchestrator.run()

        report = exc_info.value.report
        assert report.state == ScenarioState.RECOVERY_SUBMITTED
        assert report.failed_check == "nonce reset"
        assert report.failure.startswith("ConvergenceTimeout")
        assert report.last_snapshot.values() == [6, 6, 6]

    async def test_cancel_during_halt_observation(self):
        cancel = asyncio.Event()
        orchestrator, _, _, _ = make_run(make_config(halt_observation_window=30.0), cancel=cancel)
        asyncio.get_running_loop().call_later(0.3, orchestrator.cancel)

        with pytest.raises(ScenarioFailure) as exc_info:
            await orchestrator.run()

        report = exc_info.value.report
        assert cancel.is_set()
        assert report.state == ScenarioState.HALT_CONFIRMED
        assert report.failed_check == "bridge halted"
        assert report.failure.startswith("PollCancelled")
