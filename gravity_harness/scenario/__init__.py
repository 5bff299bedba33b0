"""
Halt / recovery scenario engine.

Provides:
  - ConvergencePoller / poll_until                      (poller.py)
  - NonceMonitor / NonceSnapshot                        (nonces.py)
  - FaultInjector / SubmissionOutcome                   (faults.py)
  - GovernanceRecoveryDriver / RecoveryProposal         (governance.py)
  - StakeRedistributor                                  (stake.py)
  - ScenarioOrchestrator / ScenarioState / ScenarioReport  (orchestrator.py)
"""

from .poller import ConvergencePoller, PollOutcome, PollStatus, poll_until
from .nonces import NonceMonitor, NonceSnapshot
from .faults import FaultInjectionReport, FaultInjector, SubmissionOutcome
from .governance import GovernanceRecoveryDriver, RecoveryProposal, VoteOutcome, VoteTally
from .stake import DelegationOutcome, StakeRedistributor, exceeds_attestation_threshold, power_share
from .orchestrator import (
    ScenarioClients,
    ScenarioLifecycleError,
    ScenarioOrchestrator,
    ScenarioReport,
    ScenarioState,
)

__all__ = [
    # Poller
    "ConvergencePoller",
    "PollOutcome",
    "PollStatus",
    "poll_until",
    # Nonces
    "NonceMonitor",
    "NonceSnapshot",
    # Faults
    "FaultInjectionReport",
    "FaultInjector",
    "SubmissionOutcome",
    # Governance
    "GovernanceRecoveryDriver",
    "RecoveryProposal",
    "VoteOutcome",
    "VoteTally",
    # Stake
    "DelegationOutcome",
    "StakeRedistributor",
    "exceeds_attestation_threshold",
    "power_share",
    # Orchestrator
    "ScenarioClients",
    "ScenarioLifecycleError",
    "ScenarioOrchestrator",
    "ScenarioReport",
    "ScenarioState",
]
