"""
Chain collaborators.

Provides:
  - Coin / Fee / AttestationClaim / TxHandle / TxResult / governance content  (types.py)
  - Abstract client interfaces for both sides of the bridge                    (interfaces.py)
  - httpx-based REST and JSON-RPC readers                                      (rest.py)
"""

from .types import (
    AttestationClaim,
    Coin,
    Fee,
    ParamChange,
    ParameterChangeProposal,
    TxHandle,
    TxResult,
    VoteOption,
    erc20_denom,
)
from .interfaces import (
    ChainQueryClient,
    ChainSubmitClient,
    DepositClient,
    EthereumClient,
    GovernanceClient,
    StakingClient,
)
from .rest import CosmosRestClient, EthereumRpcClient

__all__ = [
    # Types
    "AttestationClaim",
    "Coin",
    "Fee",
    "ParamChange",
    "ParameterChangeProposal",
    "TxHandle",
    "TxResult",
    "VoteOption",
    "erc20_denom",
    # Interfaces
    "ChainQueryClient",
    "ChainSubmitClient",
    "DepositClient",
    "EthereumClient",
    "GovernanceClient",
    "StakingClient",
    # Clients
    "CosmosRestClient",
    "EthereumRpcClient",
]
