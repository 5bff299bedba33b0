"""
Gravity Harness Exceptions

Error taxonomy for the scenario engine. Transport and rejection errors belong
to a single query or transaction and propagate to the component that issued
it; timeouts and invariant violations end the scenario.
"""

from typing import Any, Optional, Sequence


class HarnessError(Exception):
    """Base exception for the harness."""
    pass


class TransportError(HarnessError):
    """RPC endpoint unreachable, timed out, or returned an undecodable payload."""
    pass


class TransactionTimeout(TransportError):
    """A broadcast transaction was not finalized in time."""

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(f"Transaction {tx_hash} not finalized within {timeout:.1f}s")
        self.tx_hash = tx_hash
        self.timeout = timeout


class ChainRejection(HarnessError):
    """Transaction was rejected at broadcast or failed during execution."""

    def __init__(self, message: str, code: Optional[int] = None, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.tx_hash = tx_hash


class ConvergenceTimeout(HarnessError):
    """A polled predicate never held before its deadline."""

    def __init__(self, description: str, deadline: float, last_sample: Any = None):
        super().__init__(f"Timed out after {deadline:.1f}s waiting for {description}")
        self.description = description
        self.deadline = deadline
        self.last_sample = last_sample


class PollCancelled(HarnessError):
    """A poll was aborted by its cancellation signal."""

    def __init__(self, description: str, last_sample: Any = None):
        super().__init__(f"Cancelled while waiting for {description}")
        self.description = description
        self.last_sample = last_sample


class PartialFailure(HarnessError):
    """Some, but not all, operations of a concurrent fan-out failed."""

    def __init__(self, message: str, outcomes: Sequence[Any] = ()):
        super().__init__(message)
        self.outcomes = list(outcomes)

    @property
    def failed(self) -> list:
        return [o for o in self.outcomes if not o.ok]


class InvariantViolation(HarnessError):
    """Observed chain state contradicts a scenario invariant."""

    def __init__(self, message: str, snapshot: Any = None):
        super().__init__(message)
        self.snapshot = snapshot


class ScenarioFailure(HarnessError):
    """Terminal scenario outcome, carrying the report for postmortem."""

    def __init__(self, report):
        cause = report.failure or "unknown failure"
        super().__init__(f"Scenario failed in state {report.state.name}: {cause}")
        self.report = report


class InvalidKeyError(HarnessError):
    """Invalid cryptographic key."""
    pass


class InvalidAddressError(HarnessError):
    """Invalid address format."""
    pass


class ConfigurationError(HarnessError):
    """Configuration error."""
    pass
