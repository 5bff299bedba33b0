"""
Convergence Poller

The single timing boundary of the scenario engine: every wait for
eventually-consistent chain state is a poll of some sampled value against a
predicate, bounded by a deadline and interruptible by a cancellation event.

    outcome = await poll_until(sample, predicate, interval=1.0, deadline=30.0)
    if outcome.status is PollStatus.TIMEOUT:
        ...

Sampling errors are not retried here; they propagate to the caller, which
decides whether a failed round is fatal.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, Tuple, TypeVar

from ..exceptions import ConvergenceTimeout, PollCancelled
from ..logger import get_logger

logger = get_logger(__name__)

S = TypeVar("S")


class PollStatus(Enum):
    SATISFIED = "satisfied"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollOutcome(Generic[S]):
    """
    Result of one poll.

    Attributes:
        status:    How the poll ended
        value:     Last sampled value (None if cancelled before any sample)
        attempts:  Number of samples taken
        elapsed:   Seconds from start to return
        deadline:  Deadline the poll ran with
    """
    status: PollStatus
    value: Optional[S]
    attempts: int
    elapsed: float
    deadline: float

    @property
    def ok(self) -> bool:
        return self.status is PollStatus.SATISFIED

    def unwrap(self, description: str = "condition") -> S:
        """
        Return the satisfying sample.

        Raises:
            ConvergenceTimeout: if the poll timed out
            PollCancelled: if the poll was cancelled
        """
        if self.status is PollStatus.TIMEOUT:
            raise ConvergenceTimeout(description, self.deadline, self.value)
        if self.status is PollStatus.CANCELLED:
            raise PollCancelled(description, self.value)
        return self.value


async def _sleep_or_cancel(delay: float, cancel: Optional[asyncio.Event]) -> bool:
    """Sleep for *delay*; return True early if *cancel* is set meanwhile."""
    if cancel is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


async def _sample_bounded(
    sample: Callable[[], Awaitable[S]],
    timeout: float,
    cancel: Optional[asyncio.Event],
) -> Tuple[Optional[PollStatus], Optional[S]]:
    """
    Run one sample raced against *timeout* and *cancel*.

    Returns (None, value) when the sample completed, otherwise (TIMEOUT, None)
    or (CANCELLED, None) with the sample task cancelled.
    """
    task = asyncio.ensure_future(sample())
    waiters = {task}
    cancel_task = None
    if cancel is not None:
        cancel_task = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_task)
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if cancel_task is not None:
            cancel_task.cancel()
        if not task.done():
            task.cancel()

    if task in done:
        return None, task.result()
    if cancel_task is not None and cancel_task in done:
        return PollStatus.CANCELLED, None
    return PollStatus.TIMEOUT, None


async def poll_until(
    sample: Callable[[], Awaitable[S]],
    predicate: Callable[[S], bool],
    interval: float,
    deadline: float,
    cancel: Optional[asyncio.Event] = None,
) -> PollOutcome[S]:
    """
    Sample until *predicate* holds, *deadline* elapses, or *cancel* is set.

    The first sample is taken immediately. Subsequent samples follow every
    *interval* seconds; the final sleep is clipped so the last sample lands
    on the deadline. Returns as soon as a sample satisfies the predicate.

    A sample still running when the deadline passes or *cancel* is set is
    cancelled; the outcome then carries the last completed sample.

    Args:
        sample: Async callable producing the observed state
        predicate: Condition over the sampled state
        interval: Seconds between samples (> 0)
        deadline: Total seconds before giving up (>= 0)
        cancel: Optional event aborting the poll

    Returns:
        PollOutcome with status SATISFIED, TIMEOUT or CANCELLED

    Raises:
        Whatever *sample* raises, unchanged.
    """
    if interval <= 0:
        raise ValueError("interval must be > 0")
    if deadline < 0:
        raise ValueError("deadline must be >= 0")

    loop = asyncio.get_running_loop()
    start = loop.time()
    attempts = 0
    value: Optional[S] = None

    while True:
        if cancel is not None and cancel.is_set():
            return PollOutcome(PollStatus.CANCELLED, value, attempts, loop.time() - start, deadline)

        remaining = max(deadline - (loop.time() - start), 0.0)
        interrupted, sampled = await _sample_bounded(sample, remaining, cancel)
        if interrupted is not None:
            logger.debug("Sample abandoned after %.2fs (%s)", loop.time() - start, interrupted.value)
            return PollOutcome(interrupted, value, attempts, loop.time() - start, deadline)

        value = sampled
        attempts += 1
        if predicate(value):
            return PollOutcome(PollStatus.SATISFIED, value, attempts, loop.time() - start, deadline)

        remaining = deadline - (loop.time() - start)
        if remaining <= 0:
            return PollOutcome(PollStatus.TIMEOUT, value, attempts, loop.time() - start, deadline)

        if await _sleep_or_cancel(min(interval, remaining), cancel):
            return PollOutcome(PollStatus.CANCELLED, value, attempts, loop.time() - start, deadline)


class ConvergencePoller:
    """
    poll_until bound to default timings and a shared cancellation event.

    One poller is shared by every component of a scenario, so setting its
    cancel event aborts whichever wait is currently in progress.
    """

    def __init__(self, interval: float, deadline: float, cancel: Optional[asyncio.Event] = None):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self.deadline = deadline
        self.cancel = cancel

    async def poll(
        self,
        sample: Callable[[], Awaitable[S]],
        predicate: Callable[[S], bool],
        interval: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> PollOutcome[S]:
        return await poll_until(
            sample,
            predicate,
            interval=self.interval if interval is None else interval,
            deadline=self.deadline if deadline is None else deadline,
            cancel=self.cancel,
        )

    async def wait_for(
        self,
        sample: Callable[[], Awaitable[S]],
        predicate: Callable[[S], bool],
        description: str,
        interval: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> S:
        """Poll and return the satisfying sample, raising on timeout or cancellation."""
        outcome = await self.poll(sample, predicate, interval=interval, deadline=deadline)
        logger.debug(
            "Poll for %s ended %s after %d samples (%.2fs)",
            description, outcome.status.value, outcome.attempts, outcome.elapsed,
        )
        return outcome.unwrap(description)

    def cancel_all(self) -> None:
        if self.cancel is not None:
            self.cancel.set()
