"""
Run State - The mutable record of one sort run

Holds the working set, per-item scores, comparison history and the single
undo snapshot. The scheduler and the ledger both operate on a RunState;
the session controller owns it.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, List, Optional, Set, Tuple

from catalog import Item

MAX_COMPARISONS = 100

Pair = Tuple[int, int]


class Outcome(Enum):
    """Result of one comparison. Values are the digits used in save strings."""
    LEFT = 0
    RIGHT = 1
    TIE = 2

    @property
    def digit(self) -> str:
        return str(self.value)

    @classmethod
    def from_digit(cls, digit: str) -> "Outcome":
        return cls(int(digit))


@dataclass(frozen=True)
class Comparison:
    left: int
    right: int
    outcome: Outcome


def pair_key(left: int, right: int) -> FrozenSet[int]:
    """Unordered key for a pair of working-set indices."""
    return frozenset((left, right))


def comparison_budget(item_count: int) -> int:
    """Total comparisons planned for a working set: every pair once, capped."""
    return min(item_count * (item_count - 1) // 2, MAX_COMPARISONS)


@dataclass
class RunSnapshot:
    """Copy of the mutable run fields taken just before an outcome is applied."""
    scores: List[int]
    cursor: int
    seen_pairs: Set[FrozenSet[int]]
    history: List[Comparison]
    current_pair: Optional[Pair]
    scheduler_state: Any = None


@dataclass
class RunState:
    """
    State of one sort run.

    A run is finished once finished_at is set; after that nothing mutates it.
    """
    working_set: List[Item]
    started_at: int
    version_id: str = ''
    selection: Any = None
    clock_skew: bool = False
    scores: List[int] = field(default_factory=list)
    cursor: int = 0
    budget: int = 0
    seen_pairs: Set[FrozenSet[int]] = field(default_factory=set)
    history: List[Comparison] = field(default_factory=list)
    snapshot: Optional[RunSnapshot] = None
    current_pair: Optional[Pair] = None
    finished_at: Optional[int] = None
    exhausted: bool = False

    def __post_init__(self):
        if not self.scores:
            self.scores = [0] * len(self.working_set)
        if not self.budget:
            self.budget = comparison_budget(len(self.working_set))

    @property
    def item_count(self) -> int:
        return len(self.working_set)

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def choices(self) -> str:
        """Outcome digits in chronological order."""
        return ''.join(c.outcome.digit for c in self.history)

    @property
    def percent_complete(self) -> int:
        if self.is_finished or not self.budget:
            return 100
        return self.cursor * 100 // self.budget

    def take_snapshot(self, scheduler_state: Any = None) -> RunSnapshot:
        return RunSnapshot(
            scores=list(self.scores),
            cursor=self.cursor,
            seen_pairs=set(self.seen_pairs),
            history=list(self.history),
            current_pair=self.current_pair,
            scheduler_state=copy.deepcopy(scheduler_state),
        )

    def restore_snapshot(self, snapshot: RunSnapshot) -> None:
        self.scores = list(snapshot.scores)
        self.cursor = snapshot.cursor
        self.seen_pairs = set(snapshot.seen_pairs)
        self.history = list(snapshot.history)
        self.current_pair = snapshot.current_pair
