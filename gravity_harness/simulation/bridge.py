"""
Simulated Gravity Bridge

An in-memory two-chain bridge implementing every collaborator interface the
scenario engine consumes:

  - SimulatedEthereum:  deposit events (``sendToCosmos``) and block height
  - SimulatedBridge:    the Cosmos side (gravity attestations, bank balances,
                        staking and governance)

Attestation rules:
  - each orchestrator must claim event ``last + 1``, otherwise the message
    fails with "non contiguous event nonce"
  - claims for one nonce are grouped by claim hash; an attestation is
    observed when its voting power exceeds 66% of the total, in nonce order
  - observing a deposit credits ``gravity<token>`` to the receiver
  - orchestrators relay every new Ethereum event as soon as it lands, in
    order, stopping at their first rejected claim

Fault hooks let tests break queries, transactions and orchestrators.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..chain.interfaces import (
    ChainQueryClient,
    ChainSubmitClient,
    DepositClient,
    EthereumClient,
    GovernanceClient,
    StakingClient,
)
from ..chain.types import (
    AttestationClaim,
    Coin,
    Fee,
    ParameterChangeProposal,
    TxHandle,
    TxResult,
    VoteOption,
)
from ..constants import (
    ADDRESS_PREFIX,
    ATTESTATION_VOTES_POWER_THRESHOLD,
    GOVERNANCE_VOTING_PERIOD,
    GRAVITY_PARAM_SUBSPACE,
    PARAM_RESET_BRIDGE_NONCE,
    PARAM_RESET_BRIDGE_STATE,
    PROPOSAL_DEPOSIT,
    STAKING_TOKEN,
    STARTING_STAKE_PER_VALIDATOR,
)
from ..crypto.address import public_key_to_cosmos_address, public_key_to_ethereum_address, to_checksum_address
from ..crypto.hashing import keccak256, sha256_hex
from ..crypto.keys import PrivateKey
from ..exceptions import ChainRejection, TransactionTimeout, TransportError
from ..logger import get_logger
from ..validators.identity import KeyKind, ValidatorSet
from .governance import GovernanceError, GovernanceModule, ProposalStatus

logger = get_logger(__name__)

SIMULATED_ERC20 = to_checksum_address(keccak256(b"gravity-harness simulated erc20")[-20:].hex())

# ABCI codes used by the simulated chain
CODE_OK = 0
CODE_INTERNAL = 1
CODE_INSUFFICIENT_FUNDS = 5
CODE_UNAUTHORIZED = 4
CODE_INVALID_REQUEST = 18


# ══════════════════════════════════════════════════════════════════════
#  ETHEREUM
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DepositEvent:
    """A ``SendToCosmosEvent`` emitted by the bridge contract."""
    event_nonce: int
    block_height: int
    token_contract: str
    amount: int
    ethereum_sender: str
    cosmos_receiver: str

    def to_claim(self, orchestrator: str) -> AttestationClaim:
        return AttestationClaim(
            event_nonce=self.event_nonce,
            block_height=self.block_height,
            token_contract=self.token_contract,
            amount=self.amount,
            ethereum_sender=self.ethereum_sender,
            cosmos_receiver=self.cosmos_receiver,
            orchestrator=orchestrator,
        )


class SimulatedEthereum(EthereumClient, DepositClient):
    """
    Ethereum side: a bridge contract that only emits deposit events.

    Args:
        initial_event_nonce: Nonce of the last event emitted before the run
        initial_block: Starting block height
        token_contract: The one ERC20 the contract accepts
    """

    def __init__(self, initial_event_nonce: int = 0, initial_block: int = 1, token_contract: str = SIMULATED_ERC20):
        self.event_nonce = initial_event_nonce
        self.block_number = initial_block
        self.token_contract = token_contract
        self.events: List[DepositEvent] = []
        self._listeners: List[Callable[[DepositEvent], None]] = []

    def subscribe(self, listener: Callable[[DepositEvent], None]):
        self._listeners.append(listener)

    def events_after(self, nonce: int) -> List[DepositEvent]:
        return [e for e in self.events if e.event_nonce > nonce]

    def mine(self, blocks: int = 1):
        self.block_number += blocks

    async def get_latest_block_number(self) -> int:
        return self.block_number

    async def send_to_cosmos(self, token_contract: str, cosmos_receiver: str, amount: int, sender: PrivateKey) -> str:
        if token_contract.lower() != self.token_contract.lower():
            raise ChainRejection(f"Unknown ERC20 {token_contract}")
        if amount <= 0:
            raise ChainRejection("Deposit amount must be positive")

        self.mine()
        self.event_nonce += 1
        event = DepositEvent(
            event_nonce=self.event_nonce,
            block_height=self.block_number,
            token_contract=self.token_contract,
            amount=amount,
            ethereum_sender=public_key_to_ethereum_address(sender.public_key),
            cosmos_receiver=cosmos_receiver,
        )
        self.events.append(event)
        tx_hash = "0x" + keccak256(f"{event.event_nonce}:{event.block_height}:{cosmos_receiver}".encode()).hex()
        logger.debug("Ethereum deposit event %d at block %d", event.event_nonce, event.block_height)

        for listener in self._listeners:
            listener(event)
        return tx_hash


# ══════════════════════════════════════════════════════════════════════
#  FAULT HOOKS
# ══════════════════════════════════════════════════════════════════════

class TxFaultKind(Enum):
    REJECT = "reject"    # refused at broadcast
    FAIL = "fail"        # included with a non-zero code
    DROP = "drop"        # never finalized


@dataclass
class TxFault:
    kind: TxFaultKind
    signer: Optional[str] = None    # Cosmos account address; None matches any, relayed claims included
    remaining: int = 1
    message: str = "simulated failure"

    def matches(self, signer: str) -> bool:
        return self.remaining > 0 and (self.signer is None or self.signer == signer)


@dataclass
class Attestation:
    claim: AttestationClaim
    votes: Set[str] = field(default_factory=set)
    observed: bool = False


# ══════════════════════════════════════════════════════════════════════
#  COSMOS
# ══════════════════════════════════════════════════════════════════════

class SimulatedBridge(ChainQueryClient, ChainSubmitClient, GovernanceClient, StakingClient):
    """
    Cosmos side of the bridge for one validator set.

    Every validator starts with *starting_stake* bonded and *account_funds*
    liquid staking tokens (by default one starting stake per validator in the
    set, at least two). Transactions execute at broadcast, one block each.
    """

    def __init__(
        self,
        validator_set: ValidatorSet,
        ethereum: SimulatedEthereum,
        prefix: str = ADDRESS_PREFIX,
        staking_denom: str = STAKING_TOKEN,
        starting_stake: int = STARTING_STAKE_PER_VALIDATOR,
        account_funds: Optional[int] = None,
        min_deposit: int = PROPOSAL_DEPOSIT,
        voting_period: float = GOVERNANCE_VOTING_PERIOD,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.validator_set = validator_set
        self.ethereum = ethereum
        self.prefix = prefix
        self.staking_denom = staking_denom
        self.height = 1

        self._orchestrators = validator_set.addresses(KeyKind.ORCHESTRATOR, prefix)
        self._accounts = validator_set.addresses(KeyKind.VALIDATOR, prefix)
        self._operators = validator_set.addresses(KeyKind.VALIDATOR_OPERATOR, prefix)
        self._operator_of_account = dict(zip(self._accounts, self._operators))
        self._validator_of_orchestrator = dict(zip(self._orchestrators, self._operators))

        funds = starting_stake * max(2, len(validator_set)) if account_funds is None else account_funds
        self.tokens: Dict[str, int] = {op: starting_stake for op in self._operators}
        self.balances: Dict[Tuple[str, str], int] = {
            (account, staking_denom): funds for account in self._accounts
        }

        self.last_event_nonce: Dict[str, int] = {o: ethereum.event_nonce for o in self._orchestrators}
        self.last_observed_nonce = ethereum.event_nonce
        self.attestations: Dict[int, Dict[str, Attestation]] = {}

        gov_kwargs = {"min_deposit": min_deposit, "voting_period": voting_period}
        if clock is not None:
            gov_kwargs["clock"] = clock
        self.gov = GovernanceModule(self._voting_powers, **gov_kwargs)

        self._txs: Dict[str, TxResult] = {}
        self._dropped: Set[str] = set()
        self._tx_counter = itertools.count(1)
        self._tx_faults: List[TxFault] = []
        self._failing_queries = 0
        self.offline: Set[int] = set()

        ethereum.subscribe(self._relay)

    # ── Fault hooks ───────────────────────────────────────────────────

    def fail_queries(self, count: int = 1):
        """The next *count* queries raise TransportError."""
        self._failing_queries += count

    def inject_tx_fault(self, kind: TxFaultKind, signer: Optional[str] = None, count: int = 1,
                        message: str = "simulated failure"):
        """Break the next *count* transactions signed by *signer* (or by anyone)."""
        self._tx_faults.append(TxFault(kind, signer, count, message))

    def set_offline(self, *indices: int):
        """Stop the orchestrators at *indices* from relaying Ethereum events."""
        self.offline.update(indices)

    def set_online(self, *indices: int):
        self.offline.difference_update(indices)

    def _check_query(self):
        if self._failing_queries > 0:
            self._failing_queries -= 1
            raise TransportError("simulated query failure")

    def _take_fault(self, signer: str) -> Optional[TxFault]:
        for fault in self._tx_faults:
            if fault.matches(signer):
                fault.remaining -= 1
                return fault
        return None

    # ── Transactions ──────────────────────────────────────────────────

    def _account_of(self, key: PrivateKey) -> str:
        return public_key_to_cosmos_address(key.public_key, self.prefix)

    def _broadcast(self, signer: str, payload: str, execute: Callable[[], TxResult]) -> TxHandle:
        """Run one transaction in its own block, honouring tx faults."""
        tx_hash = sha256_hex(f"{next(self._tx_counter)}:{signer}:{payload}").upper()
        fault = self._take_fault(signer)
        if fault is not None and fault.kind is TxFaultKind.REJECT:
            raise ChainRejection(fault.message, CODE_INTERNAL, tx_hash)

        self.height += 1
        if fault is not None and fault.kind is TxFaultKind.DROP:
            self._dropped.add(tx_hash)
        elif fault is not None and fault.kind is TxFaultKind.FAIL:
            self._txs[tx_hash] = TxResult(tx_hash, self.height, CODE_INTERNAL, fault.message)
        else:
            result = execute()
            self._txs[tx_hash] = TxResult(tx_hash, self.height, result.code, result.raw_log)
            self._end_block()
        return TxHandle(tx_hash)

    async def wait_for_tx(self, handle: TxHandle, timeout: float) -> TxResult:
        if handle.tx_hash in self._dropped:
            await asyncio.sleep(timeout)
            raise TransactionTimeout(handle.tx_hash, timeout)
        try:
            result = self._txs[handle.tx_hash]
        except KeyError:
            raise TransportError(f"Unknown transaction {handle.tx_hash}") from None
        if not result.ok:
            raise ChainRejection(result.raw_log, result.code, result.tx_hash)
        return result

    @staticmethod
    def _ok() -> TxResult:
        return TxResult("", 0)

    @staticmethod
    def _failed(code: int, log: str) -> TxResult:
        return TxResult("", 0, code, log)

    # ── Gravity ───────────────────────────────────────────────────────

    async def submit_claim(self, claim: AttestationClaim, signer: PrivateKey, fee: Fee) -> TxHandle:
        orchestrator = self._account_of(signer)
        if orchestrator != claim.orchestrator:
            raise ChainRejection(f"Signer {orchestrator} is not claim orchestrator {claim.orchestrator}",
                                 CODE_UNAUTHORIZED)
        return self._broadcast(orchestrator, claim.claim_hash, lambda: self._deliver_claim(claim))

    def _deliver_claim(self, claim: AttestationClaim) -> TxResult:
        orchestrator = claim.orchestrator
        if orchestrator not in self.last_event_nonce:
            return self._failed(CODE_UNAUTHORIZED, f"{orchestrator} is not a registered orchestrator")

        expected = self.last_event_nonce[orchestrator] + 1
        if claim.event_nonce != expected:
            return self._failed(
                CODE_INVALID_REQUEST,
                f"non contiguous event nonce: expected {expected}, got {claim.event_nonce}",
            )

        by_hash = self.attestations.setdefault(claim.event_nonce, {})
        attestation = by_hash.setdefault(claim.claim_hash, Attestation(claim))
        attestation.votes.add(orchestrator)
        self.last_event_nonce[orchestrator] = claim.event_nonce
        self._observe_attestations()
        return self._ok()

    def _attestation_power(self, attestation: Attestation) -> int:
        return sum(self.tokens[self._validator_of_orchestrator[o]] for o in attestation.votes)

    def _observe_attestations(self):
        # Attestations are observed strictly in event nonce order
        total = sum(self.tokens.values())
        required = total * ATTESTATION_VOTES_POWER_THRESHOLD // 100
        while True:
            nonce = self.last_observed_nonce + 1
            candidates = self.attestations.get(nonce, {})
            winner = next(
                (a for a in candidates.values() if self._attestation_power(a) > required), None
            )
            if winner is None:
                return
            winner.observed = True
            self.last_observed_nonce = nonce
            self._credit(winner.claim.cosmos_receiver, winner.claim.denom, winner.claim.amount)
            logger.info("Observed deposit event %d: %d%s", nonce, winner.claim.amount, winner.claim.denom)

    def _relay(self, event: DepositEvent):
        for index, orchestrator in enumerate(self._orchestrators):
            if index in self.offline:
                continue
            for pending in self.ethereum.events_after(self.last_event_nonce[orchestrator]):
                try:
                    handle = self._broadcast(
                        orchestrator, f"relay:{pending.event_nonce}",
                        lambda: self._deliver_claim(pending.to_claim(orchestrator)),
                    )
                except ChainRejection as e:
                    logger.debug("Orchestrator %d claim for event %d refused: %s", index, pending.event_nonce, e)
                    break
                if not self._txs.get(handle.tx_hash, self._failed(CODE_INTERNAL, "dropped")).ok:
                    logger.debug("Orchestrator %d stopped relaying at event %d", index, pending.event_nonce)
                    break

    def _reset_bridge(self, nonce: int):
        for pruned in [n for n in self.attestations if n > nonce]:
            del self.attestations[pruned]
        for orchestrator in self.last_event_nonce:
            self.last_event_nonce[orchestrator] = nonce
        self.last_observed_nonce = nonce
        logger.info("Bridge state reset to event nonce %d", nonce)

    def _apply_params(self, content: ParameterChangeProposal):
        params = {c.key: c.decoded_value() for c in content.changes_for(GRAVITY_PARAM_SUBSPACE)}
        if params.get(PARAM_RESET_BRIDGE_STATE) is True:
            self._reset_bridge(int(params.get(PARAM_RESET_BRIDGE_NONCE, self.last_observed_nonce)))

    # ── Bank ──────────────────────────────────────────────────────────

    def _credit(self, address: str, denom: str, amount: int):
        self.balances[(address, denom)] = self.balances.get((address, denom), 0) + amount

    def _debit(self, address: str, denom: str, amount: int) -> bool:
        held = self.balances.get((address, denom), 0)
        if held < amount:
            return False
        self.balances[(address, denom)] = held - amount
        return True

    async def get_balance(self, address: str, denom: str) -> int:
        self._check_query()
        return self.balances.get((address, denom), 0)

    async def get_last_event_nonce(self, orchestrator_address: str) -> int:
        self._check_query()
        return self.last_event_nonce.get(orchestrator_address, 0)

    # ── Staking ───────────────────────────────────────────────────────

    def _voting_powers(self) -> Dict[str, int]:
        return {account: self.tokens[op] for account, op in self._operator_of_account.items()}

    async def delegate(self, operator_address: str, amount: Coin, delegator: PrivateKey, fee: Fee) -> TxHandle:
        account = self._account_of(delegator)

        def execute() -> TxResult:
            if operator_address not in self.tokens:
                return self._failed(CODE_INVALID_REQUEST, f"validator {operator_address} does not exist")
            if amount.denom != self.staking_denom:
                return self._failed(CODE_INVALID_REQUEST, f"invalid coin denomination {amount.denom}")
            if not self._debit(account, amount.denom, amount.amount):
                return self._failed(CODE_INSUFFICIENT_FUNDS, f"insufficient funds to delegate {amount}")
            self.tokens[operator_address] += amount.amount
            return self._ok()

        return self._broadcast(account, f"delegate:{operator_address}:{amount}", execute)

    async def get_validator_powers(self) -> Dict[str, int]:
        self._check_query()
        return dict(self.tokens)

    # ── Governance ────────────────────────────────────────────────────

    def _end_block(self):
        for proposal in self.gov.end_block():
            try:
                self._apply_params(proposal.content)
            except (ValueError, TypeError) as e:
                proposal.transition_to(ProposalStatus.FAILED, f"could not apply params: {e}")

    async def submit_proposal(self, content: ParameterChangeProposal, deposit: Coin, proposer: PrivateKey,
                              fee: Fee) -> int:
        account = self._account_of(proposer)
        submitted: List[int] = []

        def execute() -> TxResult:
            if deposit.denom != self.staking_denom:
                return self._failed(CODE_INVALID_REQUEST, f"invalid deposit denomination {deposit.denom}")
            if not self._debit(account, deposit.denom, deposit.amount):
                return self._failed(CODE_INSUFFICIENT_FUNDS, f"insufficient funds for deposit {deposit}")
            submitted.append(self.gov.submit(content, account, deposit.amount).id)
            return self._ok()

        handle = self._broadcast(account, f"proposal:{content.title}", execute)
        result = self._txs.get(handle.tx_hash)
        if result is None:
            raise TransactionTimeout(handle.tx_hash, 0.0)
        if not result.ok:
            raise ChainRejection(result.raw_log, result.code, handle.tx_hash)
        return submitted[0]

    async def vote(self, proposal_id: int, option: VoteOption, voter: PrivateKey, fee: Fee) -> TxHandle:
        account = self._account_of(voter)

        def execute() -> TxResult:
            try:
                self.gov.vote(proposal_id, account, option)
            except GovernanceError as e:
                return self._failed(CODE_INVALID_REQUEST, str(e))
            return self._ok()

        return self._broadcast(account, f"vote:{proposal_id}:{option.name}", execute)

    async def list_proposals_in_voting_period(self) -> List[int]:
        self._check_query()
        self._end_block()
        return self.gov.in_voting_period()


def build_simulation(
    validator_set: ValidatorSet,
    initial_event_nonce: int = 0,
    prefix: str = ADDRESS_PREFIX,
    **bridge_kwargs,
) -> Tuple[SimulatedBridge, SimulatedEthereum]:
    """Create a connected Ethereum / Cosmos pair."""
    ethereum = SimulatedEthereum(initial_event_nonce=initial_event_nonce)
    bridge = SimulatedBridge(validator_set, ethereum, prefix=prefix, **bridge_kwargs)
    return bridge, ethereum
