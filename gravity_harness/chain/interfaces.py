"""
Chain Collaborator Interfaces

The scenario engine consumes, but does not implement, the chain clients.
Each side of the bridge is described by a small abstract interface; the
outer runner supplies concrete clients (REST/JSON-RPC readers, a signing
broadcaster, or the simulated bridge).

Errors:
  - TransportError:      endpoint unreachable, timeout, undecodable payload
  - ChainRejection:      transaction rejected at broadcast or failed on-chain
  - TransactionTimeout:  transaction not finalized in time
"""

from abc import ABC, abstractmethod
from typing import Dict, List

from ..crypto.keys import PrivateKey
from .types import AttestationClaim, Coin, Fee, ParameterChangeProposal, TxHandle, TxResult, VoteOption


class ChainQueryClient(ABC):
    """Read access to bridge state on the Cosmos side."""

    @abstractmethod
    async def get_last_event_nonce(self, orchestrator_address: str) -> int:
        """Last event nonce attested by the given orchestrator."""

    @abstractmethod
    async def get_balance(self, address: str, denom: str) -> int:
        """Balance of *denom* held by *address* (0 when absent)."""


class ChainSubmitClient(ABC):
    """Broadcast and confirmation of Cosmos transactions."""

    @abstractmethod
    async def submit_claim(self, claim: AttestationClaim, signer: PrivateKey, fee: Fee) -> TxHandle:
        """Sign *claim* with the orchestrator key and broadcast it."""

    @abstractmethod
    async def wait_for_tx(self, handle: TxHandle, timeout: float) -> TxResult:
        """
        Wait until the transaction is included in a block.

        Raises:
            TransactionTimeout: not finalized within *timeout*
            ChainRejection: finalized with a non-zero code
        """


class GovernanceClient(ABC):
    """Cosmos SDK governance."""

    @abstractmethod
    async def submit_proposal(
        self,
        content: ParameterChangeProposal,
        deposit: Coin,
        proposer: PrivateKey,
        fee: Fee,
    ) -> int:
        """Broadcast a proposal and return its id once included."""

    @abstractmethod
    async def vote(self, proposal_id: int, option: VoteOption, voter: PrivateKey, fee: Fee) -> TxHandle:
        """Broadcast a vote."""

    @abstractmethod
    async def list_proposals_in_voting_period(self) -> List[int]:
        """Ids of proposals currently in their voting period."""


class StakingClient(ABC):
    """Cosmos SDK staking, used to shape voting power before a scenario."""

    @abstractmethod
    async def delegate(self, operator_address: str, amount: Coin, delegator: PrivateKey, fee: Fee) -> TxHandle:
        """Delegate *amount* from the delegator's account to a validator."""

    @abstractmethod
    async def get_validator_powers(self) -> Dict[str, int]:
        """Map of validator operator address to bonded tokens."""


class EthereumClient(ABC):
    """Read access to the Ethereum side."""

    @abstractmethod
    async def get_latest_block_number(self) -> int:
        """Height of the latest Ethereum block."""


class DepositClient(ABC):
    """Sends real deposits through the bridge contract."""

    @abstractmethod
    async def send_to_cosmos(
        self,
        token_contract: str,
        cosmos_receiver: str,
        amount: int,
        sender: PrivateKey,
    ) -> str:
        """Call ``sendToCosmos`` on the bridge contract; returns the Ethereum tx hash."""
