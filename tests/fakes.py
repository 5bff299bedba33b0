"""
Hand-written chain collaborators for unit tests.
"""

import asyncio
import itertools
from typing import Dict, List, Optional, Set

from gravity_harness.chain.interfaces import ChainQueryClient, ChainSubmitClient, GovernanceClient
from gravity_harness.chain.types import TxHandle, TxResult
from gravity_harness.crypto import public_key_to_cosmos_address
from gravity_harness.exceptions import ChainRejection, TransactionTimeout, TransportError


class FakeQuery(ChainQueryClient):
    """Serves nonces from a dict; addresses in ``failing`` raise TransportError."""

    def __init__(self, nonces: Optional[Dict[str, int]] = None):
        self.nonces: Dict[str, int] = dict(nonces or {})
        self.balances: Dict[tuple, int] = {}
        self.failing: Set[str] = set()
        self.fail_rounds = 0
        self.calls = 0

    async def get_last_event_nonce(self, orchestrator_address: str) -> int:
        self.calls += 1
        await asyncio.sleep(0)
        if orchestrator_address in self.failing:
            raise TransportError(f"{orchestrator_address} unreachable")
        return self.nonces[orchestrator_address]

    async def get_balance(self, address: str, denom: str) -> int:
        return self.balances.get((address, denom), 0)


class FakeSubmitter(ChainSubmitClient):
    """
    Records every broadcast. Signers listed in ``reject`` fail at broadcast,
    in ``fail`` finalize with a non-zero code, in ``drop`` never finalize.
    """

    def __init__(self, prefix: str = "gravity"):
        self.prefix = prefix
        self.reject: Set[str] = set()
        self.fail: Set[str] = set()
        self.drop: Set[str] = set()
        self.events: List[tuple] = []
        self.claims = []
        self._results: Dict[str, object] = {}
        self._counter = itertools.count(1)

    def _signer(self, key) -> str:
        return public_key_to_cosmos_address(key.public_key, self.prefix)

    def record(self, signer: str) -> TxHandle:
        tx_hash = f"TX{next(self._counter)}"
        self.events.append(("broadcast", signer))
        if signer in self.reject:
            raise ChainRejection("rejected at broadcast", 4, tx_hash)
        if signer in self.drop:
            self._results[tx_hash] = None
        elif signer in self.fail:
            self._results[tx_hash] = TxResult(tx_hash, 10, 18, "non contiguous event nonce")
        else:
            self._results[tx_hash] = TxResult(tx_hash, 10)
        return TxHandle(tx_hash)

    async def submit_claim(self, claim, signer, fee) -> TxHandle:
        await asyncio.sleep(0)
        self.claims.append(claim)
        return self.record(self._signer(signer))

    async def wait_for_tx(self, handle: TxHandle, timeout: float) -> TxResult:
        self.events.append(("wait", handle.tx_hash))
        await asyncio.sleep(0)
        result = self._results[handle.tx_hash]
        if result is None:
            raise TransactionTimeout(handle.tx_hash, timeout)
        if not result.ok:
            raise ChainRejection(result.raw_log, result.code, result.tx_hash)
        return result


class FakeGovernance(GovernanceClient):
    """Proposal ids start at 1; proposals enter voting after ``listing_delay`` queries."""

    def __init__(self, submitter: FakeSubmitter, listing_delay: int = 0):
        self.submitter = submitter
        self.listing_delay = listing_delay
        self.proposals = []
        self.votes = []
        self.list_calls = 0
        self.submit_error: Optional[Exception] = None

    async def submit_proposal(self, content, deposit, proposer, fee) -> int:
        if self.submit_error is not None:
            raise self.submit_error
        self.proposals.append((content, deposit, self.submitter._signer(proposer)))
        return len(self.proposals)

    async def vote(self, proposal_id, option, voter, fee) -> TxHandle:
        signer = self.submitter._signer(voter)
        self.votes.append((proposal_id, option, signer))
        return self.submitter.record(signer)

    async def list_proposals_in_voting_period(self) -> List[int]:
        self.list_calls += 1
        if self.list_calls <= self.listing_delay:
            return []
        return list(range(1, len(self.proposals) + 1))
