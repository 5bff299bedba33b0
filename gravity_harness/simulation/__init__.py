"""
In-memory simulated bridge.

Provides:
  - SimulatedEthereum / SimulatedBridge / build_simulation    (bridge.py)
  - GovernanceModule / Proposal / TallyResult                 (governance.py)
"""

from .bridge import (
    SIMULATED_ERC20,
    DepositEvent,
    SimulatedBridge,
    SimulatedEthereum,
    TxFaultKind,
    build_simulation,
)
from .governance import (
    GovernanceError,
    GovernanceModule,
    Proposal,
    ProposalLifecycleError,
    ProposalStatus,
    TallyResult,
    VotingError,
)

__all__ = [
    # Bridge
    "SIMULATED_ERC20",
    "DepositEvent",
    "SimulatedBridge",
    "SimulatedEthereum",
    "TxFaultKind",
    "build_simulation",
    # Governance
    "GovernanceError",
    "GovernanceModule",
    "Proposal",
    "ProposalLifecycleError",
    "ProposalStatus",
    "TallyResult",
    "VotingError",
]
