"""
Nonce Monitor

The last event nonce each orchestrator has attested to is the only externally
observable signal of bridge liveness. The monitor samples it for the whole
validator set at once and waits for the set to reach an expected shape.
"""

import asyncio
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from ..constants import ADDRESS_PREFIX
from ..chain.interfaces import ChainQueryClient
from ..exceptions import ConvergenceTimeout, PollCancelled, TransportError
from ..logger import get_logger
from ..validators.identity import KeyKind, ValidatorSet, derive_address
from .poller import ConvergencePoller, PollStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class NonceSnapshot:
    """
    Last attested event nonce per validator index, taken in one round.

    A snapshot is always complete: every validator of the set has a value.
    """
    nonces: Mapping[int, int]
    taken_at: float = field(default_factory=time.time, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "nonces", MappingProxyType(dict(self.nonces)))

    def __getitem__(self, index: int) -> int:
        return self.nonces[index]

    def __len__(self) -> int:
        return len(self.nonces)

    def values(self) -> List[int]:
        return [self.nonces[i] for i in sorted(self.nonces)]

    def groups(self) -> Dict[int, FrozenSet[int]]:
        """Validator indices grouped by the nonce they report."""
        grouped: Dict[int, set] = {}
        for index, nonce in self.nonces.items():
            grouped.setdefault(nonce, set()).add(index)
        return {nonce: frozenset(indices) for nonce, indices in grouped.items()}

    def all_equal(self) -> bool:
        return len(set(self.nonces.values())) <= 1

    def all_equal_to(self, value: int) -> bool:
        return all(n == value for n in self.nonces.values())

    def matches_partition(self, expected_groups: Sequence[Iterable[int]]) -> bool:
        """
        True when the nonces split into exactly *expected_groups*: equal
        within each group, distinct across groups, every index in one group.
        """
        groups = [frozenset(g) for g in expected_groups if g]
        covered = [i for g in groups for i in g]
        if sorted(covered) != sorted(self.nonces):
            return False
        return sorted(self.groups().values(), key=min) == sorted(groups, key=min)

    def to_dict(self) -> Dict[str, int]:
        return {f"v{i}": self.nonces[i] for i in sorted(self.nonces)}

    def __str__(self) -> str:
        return ", ".join(f"v{i}={n}" for i, n in sorted(self.nonces.items()))


class NonceMonitor:
    """
    Samples per-validator event nonces through a ChainQueryClient.

    Args:
        query: Cosmos query client
        poller: Shared poller (timings and cancellation)
        prefix: Bech32 address prefix of orchestrator addresses
    """

    def __init__(self, query: ChainQueryClient, poller: ConvergencePoller, prefix: str = ADDRESS_PREFIX):
        self.query = query
        self.poller = poller
        self.prefix = prefix
        self.last_snapshot: Optional[NonceSnapshot] = None
        self.degraded_rounds = 0

    async def snapshot(self, validator_set: ValidatorSet) -> NonceSnapshot:
        """
        Query every validator's last event nonce concurrently.

        All queries run to completion before the result is assembled; if any
        failed, the first failure is raised and no snapshot is produced.
        """
        addresses = [
            derive_address(identity, KeyKind.ORCHESTRATOR, self.prefix) for identity in validator_set
        ]
        results = await asyncio.gather(
            *(self.query.get_last_event_nonce(address) for address in addresses),
            return_exceptions=True,
        )
        errors = [(i, r) for i, r in enumerate(results) if isinstance(r, BaseException)]
        if errors:
            index, error = errors[0]
            logger.debug(
                "%d of %d nonce queries failed, first at v%d", len(errors), len(results), index
            )
            raise error

        snapshot = NonceSnapshot(dict(enumerate(results)))
        self.last_snapshot = snapshot
        return snapshot

    async def sample_round(self, validator_set: ValidatorSet) -> Optional[NonceSnapshot]:
        """One snapshot, or None if a transport error degraded the round."""
        # A failed query degrades the whole round; it never yields partial state
        try:
            return await self.snapshot(validator_set)
        except TransportError as e:
            self.degraded_rounds += 1
            logger.warning("Nonce round degraded, will resample: %s", e)
            return None

    async def await_condition(
        self,
        validator_set: ValidatorSet,
        predicate: Callable[[NonceSnapshot], bool],
        description: str,
        interval: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> NonceSnapshot:
        """
        Poll snapshots until *predicate* holds.

        Raises:
            ConvergenceTimeout: carrying the last complete snapshot
            PollCancelled: if the shared cancel event is set
        """
        outcome = await self.poller.poll(
            lambda: self.sample_round(validator_set),
            lambda snap: snap is not None and predicate(snap),
            interval=interval,
            deadline=deadline,
        )
        if outcome.status is PollStatus.SATISFIED:
            logger.info("Nonces reached %s: %s", description, outcome.value)
            return outcome.value
        last = outcome.value or self.last_snapshot
        if outcome.status is PollStatus.CANCELLED:
            raise PollCancelled(description, last)
        logger.warning("Nonces never reached %s, last seen: %s", description, last)
        raise ConvergenceTimeout(description, outcome.deadline, last)

    async def await_partition(
        self,
        validator_set: ValidatorSet,
        expected_groups: Sequence[Iterable[int]],
        interval: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> NonceSnapshot:
        """Wait until the nonces split into exactly the given equivalence groups."""
        groups = [sorted(g) for g in expected_groups]
        return await self.await_condition(
            validator_set,
            lambda snap: snap.matches_partition(groups),
            f"partition {groups}",
            interval=interval,
            deadline=deadline,
        )

    async def await_values(
        self,
        validator_set: ValidatorSet,
        expected: Mapping[int, int],
        interval: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> NonceSnapshot:
        """Wait until each listed validator reports exactly its expected nonce."""
        expected = dict(expected)
        return await self.await_condition(
            validator_set,
            lambda snap: all(snap.nonces.get(i) == n for i, n in expected.items()),
            "nonces " + ", ".join(f"v{i}={n}" for i, n in sorted(expected.items())),
            interval=interval,
            deadline=deadline,
        )
