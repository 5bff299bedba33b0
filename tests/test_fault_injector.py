"""
Fault injector tests.

Coverage:
  - AttestationClaim validation, orchestrator binding and claim hash
  - one outcome per minority member, honest validator skipped
  - every claim broadcast before any confirmation is awaited
  - broadcast rejection, failed execution and finalization timeout
  - FaultInjectionReport.raise_for_failures
"""

import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from gravity_harness.chain.types import AttestationClaim
from gravity_harness.exceptions import ChainRejection, PartialFailure, TransactionTimeout
from gravity_harness.scenario.faults import FaultInjector
from gravity_harness.validators import BridgeUser, KeyKind, ValidatorSet

from fakes import FakeSubmitter

TOKEN = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def make_template(nonce=6):
    user = BridgeUser.generate()
    return AttestationClaim(
        event_nonce=nonce,
        block_height=101,
        token_contract=TOKEN,
        amount=10 ** 18,
        ethereum_sender=user.ethereum_address,
        cosmos_receiver=user.cosmos_address(),
    )


class TestAttestationClaim:

    def test_validation(self):
        with pytest.raises(ValueError):
            AttestationClaim(-1, 1, TOKEN, 1, "0x0", "gravity1x")
        with pytest.raises(ValueError):
            AttestationClaim(1, -1, TOKEN, 1, "0x0", "gravity1x")
        with pytest.raises(ValueError):
            AttestationClaim(1, 1, TOKEN, 0, "0x0", "gravity1x")

    def test_claim_hash_ignores_orchestrator(self):
        claim = make_template()
        rebound = claim.with_orchestrator("gravity1other")
        assert rebound.orchestrator == "gravity1other"
        assert claim.orchestrator == ""
        assert rebound.claim_hash == claim.claim_hash

    def test_claim_hash_depends_on_event(self):
        claim = make_template()
        assert make_template(7).claim_hash != claim.claim_hash

    def test_to_msg(self):
        msg = make_template().with_orchestrator("gravity1abc").to_msg()
        assert msg["@type"] == "/gravity.v1.MsgSendToCosmosClaim"
        assert msg["event_nonce"] == "6"
        assert msg["orchestrator"] == "gravity1abc"

    def test_denom(self):
        assert make_template().denom == "gravity" + TOKEN


@pytest.mark.asyncio
class TestInjectFalseClaims:

    async def test_minority_submits_bound_claims(self):
        validator_set = ValidatorSet.generate(3)
        submitter = FakeSubmitter()
        outcomes = await FaultInjector(submitter).inject_false_claims(validator_set, [1, 2], make_template())

        orchestrators = validator_set.addresses(KeyKind.ORCHESTRATOR)
        assert [o.validator_index for o in outcomes] == [1, 2]
        assert all(o.ok for o in outcomes)
        assert [c.orchestrator for c in submitter.claims] == orchestrators[1:]
        assert len({c.claim_hash for c in submitter.claims}) == 1

    async def test_all_broadcasts_precede_waits(self):
        validator_set = ValidatorSet.generate(5)
        submitter = FakeSubmitter()
        await FaultInjector(submitter).inject_false_claims(validator_set, [1, 2, 3, 4], make_template())
        kinds = [kind for kind, _ in submitter.events]
        assert kinds == ["broadcast"] * 4 + ["wait"] * 4

    async def test_honest_validator_skipped_and_duplicates_dropped(self):
        validator_set = ValidatorSet.generate(3)
        outcomes = await FaultInjector(FakeSubmitter()).inject_false_claims(
            validator_set, [0, 2, 2], make_template()
        )
        assert [o.validator_index for o in outcomes] == [2]

    async def test_only_honest_is_a_no_op(self):
        submitter = FakeSubmitter()
        outcomes = await FaultInjector(submitter).inject_false_claims(ValidatorSet.generate(3), [0], make_template())
        assert outcomes == []
        assert submitter.events == []

    async def test_out_of_range_index(self):
        with pytest.raises(ValueError):
            await FaultInjector(FakeSubmitter()).inject_false_claims(ValidatorSet.generate(3), [3], make_template())

    async def test_failures_are_isolated(self):
        validator_set = ValidatorSet.generate(4)
        orchestrators = validator_set.addresses(KeyKind.ORCHESTRATOR)
        submitter = FakeSubmitter()
        submitter.reject.add(orchestrators[1])
        submitter.fail.add(orchestrators[2])

        outcomes = await FaultInjector(submitter).inject_false_claims(validator_set, [1, 2, 3], make_template())

        rejected, failed, confirmed = outcomes
        assert isinstance(rejected.error, ChainRejection)
        assert rejected.handle is None
        assert rejected.stage == "broadcast"
        assert isinstance(failed.error, ChainRejection)
        assert failed.stage == "finalization"
        assert "non contiguous" in str(failed.error)
        assert confirmed.ok
        assert confirmed.result.height == 10

    async def test_timeout_recorded(self):
        validator_set = ValidatorSet.generate(3)
        orchestrators = validator_set.addresses(KeyKind.ORCHESTRATOR)
        submitter = FakeSubmitter()
        submitter.drop.add(orchestrators[2])

        outcomes = await FaultInjector(submitter, submit_timeout=0.5).inject_false_claims(
            validator_set, [1, 2], make_template()
        )
        assert outcomes[0].ok
        assert isinstance(outcomes[1].error, TransactionTimeout)
        assert outcomes[1].error.timeout == 0.5

    async def test_report_raises_partial_failure(self):
        validator_set = ValidatorSet.generate(3)
        orchestrators = validator_set.addresses(KeyKind.ORCHESTRATOR)
        submitter = FakeSubmitter()
        submitter.fail.add(orchestrators[1])

        report = await FaultInjector(submitter).inject(validator_set, [1, 2], make_template())
        assert len(report.succeeded) == 1
        with pytest.raises(PartialFailure) as exc_info:
            report.raise_for_failures()
        assert [o.validator_index for o in exc_info.value.failed] == [1]

    async def test_no_retries(self):
        validator_set = ValidatorSet.generate(3)
        orchestrators = validator_set.addresses(KeyKind.ORCHESTRATOR)
        submitter = FakeSubmitter()
        submitter.reject.add(orchestrators[1])
        await FaultInjector(submitter).inject_false_claims(validator_set, [1, 2], make_template())
        assert sum(1 for kind, _ in submitter.events if kind == "broadcast") == 2
