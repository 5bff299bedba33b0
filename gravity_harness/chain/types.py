"""
Chain Data Types

Values exchanged with the Cosmos and Ethereum collaborators:

  - Coin / Fee                      amounts and transaction fees
  - AttestationClaim                an oracle's assertion of an Ethereum deposit
  - TxHandle / TxResult             broadcast and finalized transactions
  - VoteOption                      governance vote choices
  - ParamChange / ParameterChangeProposal   governance content
"""

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, List, Tuple

from ..constants import (
    DEFAULT_FEE_AMOUNT,
    DEFAULT_GAS_LIMIT,
    ERC20_DENOM_PREFIX,
    FEE_DENOM,
    MSG_SEND_TO_COSMOS_CLAIM_URL,
    PARAMETER_CHANGE_PROPOSAL_URL,
)


def erc20_denom(token_contract: str) -> str:
    """Cosmos denom of a bridged ERC20 token."""
    return f"{ERC20_DENOM_PREFIX}{token_contract}"


# ══════════════════════════════════════════════════════════════════════
#  AMOUNTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Coin:
    denom: str
    amount: int

    def __post_init__(self):
        if not self.denom:
            raise ValueError("Coin denom cannot be empty")
        if self.amount < 0:
            raise ValueError("Coin amount must be non-negative")

    def to_dict(self) -> Dict[str, str]:
        return {"denom": self.denom, "amount": str(self.amount)}

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


@dataclass(frozen=True)
class Fee:
    amount: Tuple[Coin, ...] = (Coin(FEE_DENOM, DEFAULT_FEE_AMOUNT),)
    gas_limit: int = DEFAULT_GAS_LIMIT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": [c.to_dict() for c in self.amount],
            "gas_limit": str(self.gas_limit),
        }


# ══════════════════════════════════════════════════════════════════════
#  ATTESTATION CLAIM
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AttestationClaim:
    """
    One orchestrator's assertion that a deposit happened on Ethereum
    (``MsgSendToCosmosClaim``).

    Attributes:
        event_nonce:      Index of the Ethereum event being attested
        block_height:     Ethereum block containing the event
        token_contract:   ERC20 contract of the deposited token
        amount:           Deposited amount (token base units)
        ethereum_sender:  Depositor on Ethereum
        cosmos_receiver:  Recipient on Cosmos
        orchestrator:     Orchestrator address submitting the claim
    """
    event_nonce: int
    block_height: int
    token_contract: str
    amount: int
    ethereum_sender: str
    cosmos_receiver: str
    orchestrator: str = ""

    def __post_init__(self):
        if self.event_nonce < 0:
            raise ValueError("event_nonce must be non-negative")
        if self.block_height < 0:
            raise ValueError("block_height must be non-negative")
        if self.amount <= 0:
            raise ValueError("amount must be positive")

    def with_orchestrator(self, orchestrator: str) -> "AttestationClaim":
        """Copy of this claim submitted by another orchestrator."""
        return replace(self, orchestrator=orchestrator)

    @property
    def claim_hash(self) -> str:
        """Identifies the asserted event; equal for every orchestrator making the same claim."""
        payload = "/".join(
            str(part) for part in (
                self.event_nonce,
                self.block_height,
                self.token_contract.lower(),
                self.amount,
                self.ethereum_sender.lower(),
                self.cosmos_receiver,
            )
        )
        return hashlib.sha256(payload.encode()).hexdigest()

    @property
    def denom(self) -> str:
        return erc20_denom(self.token_contract)

    def to_msg(self) -> Dict[str, Any]:
        return {
            "@type": MSG_SEND_TO_COSMOS_CLAIM_URL,
            "event_nonce": str(self.event_nonce),
            "block_height": str(self.block_height),
            "token_contract": self.token_contract,
            "amount": str(self.amount),
            "ethereum_sender": self.ethereum_sender,
            "cosmos_receiver": self.cosmos_receiver,
            "orchestrator": self.orchestrator,
        }


# ══════════════════════════════════════════════════════════════════════
#  TRANSACTIONS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TxHandle:
    """A broadcast (not yet finalized) transaction."""
    tx_hash: str


@dataclass(frozen=True)
class TxResult:
    """A finalized transaction. ``code`` 0 means success."""
    tx_hash: str
    height: int
    code: int = 0
    raw_log: str = ""

    @property
    def ok(self) -> bool:
        return self.code == 0


# ══════════════════════════════════════════════════════════════════════
#  GOVERNANCE
# ══════════════════════════════════════════════════════════════════════

class VoteOption(IntEnum):
    """Cosmos SDK gov v1beta1 vote options."""
    UNSPECIFIED = 0
    YES = 1
    ABSTAIN = 2
    NO = 3
    NO_WITH_VETO = 4


@dataclass(frozen=True)
class ParamChange:
    subspace: str
    key: str
    value: str  # JSON-encoded

    def to_dict(self) -> Dict[str, str]:
        return {"subspace": self.subspace, "key": self.key, "value": self.value}

    def decoded_value(self) -> Any:
        return json.loads(self.value)


@dataclass(frozen=True)
class ParameterChangeProposal:
    title: str
    description: str
    changes: Tuple[ParamChange, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.title:
            raise ValueError("Proposal title cannot be empty")
        if not self.changes:
            raise ValueError("A parameter change proposal needs at least one change")

    def to_any(self) -> Dict[str, Any]:
        return {
            "@type": PARAMETER_CHANGE_PROPOSAL_URL,
            "title": self.title,
            "description": self.description,
            "changes": [c.to_dict() for c in self.changes],
        }

    def changes_for(self, subspace: str) -> List[ParamChange]:
        return [c for c in self.changes if c.subspace == subspace]
