"""
Comparison Scheduler - Chooses the next pair of items to show

Pairs are drawn uniformly from the working set with a seeded random
stream, so a run started at the same instant always shows the same pairs
for the same choices. That property is what lets a save string carry only
the choice digits.

Strategy:
1. Stop once the comparison budget is used up
2. Draw two indices, re-rolling self pairs and pairs already compared
3. Give up after MAX_PICK_ATTEMPTS draws and end the run early
"""

import logging
import random
from enum import Enum
from typing import Any, Optional

from catalog import SorterError
from run_state import Pair, RunState, pair_key

logger = logging.getLogger(__name__)

MAX_PICK_ATTEMPTS = 100
CLOCK_SKEW_SEED_OFFSET = 1


class SchedulerExhausted(SorterError):
    """No unseen pair was found within the attempt limit."""


class SchedulerStatus(Enum):
    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    FINISHED = 'finished'


def seed_for(started_at: int, clock_skew: bool = False) -> int:
    """Random seed for a run."""
    return started_at + CLOCK_SKEW_SEED_OFFSET if clock_skew else started_at


class ComparisonScheduler:
    """
    Drives pair selection for a RunState.

    Any object with randrange/getstate/setstate can stand in for the
    random source, so tests can pin the pair sequence.
    """

    def __init__(self, state: RunState, rng: Optional[random.Random] = None):
        self.state = state
        self.rng = rng if rng is not None else random.Random(seed_for(state.started_at, state.clock_skew))
        self.status = SchedulerStatus.FINISHED if state.is_finished else SchedulerStatus.NOT_STARTED

    @property
    def current_pair(self) -> Optional[Pair]:
        if self.status != SchedulerStatus.IN_PROGRESS:
            return None
        return self.state.current_pair

    @property
    def is_finished(self) -> bool:
        return self.status == SchedulerStatus.FINISHED

    def getstate(self) -> Any:
        return self.rng.getstate()

    def setstate(self, rng_state: Any) -> None:
        """Rewind the random stream, e.g. after an undo."""
        if rng_state is not None:
            self.rng.setstate(rng_state)
        if not self.state.is_finished:
            self.status = SchedulerStatus.IN_PROGRESS

    def advance(self) -> Optional[Pair]:
        """
        Move to the next pair.

        Returns:
            The new current pair, or None once the run is over
        """
        state = self.state
        if self.status == SchedulerStatus.FINISHED:
            return None

        if state.cursor >= state.budget:
            self._finish()
            return None

        try:
            pair = self._draw_pair()
        except SchedulerExhausted as e:
            logger.warning(f"{e}; ending run after {state.cursor} of {state.budget} comparisons")
            state.exhausted = True
            self._finish()
            return None

        state.current_pair = pair
        self.status = SchedulerStatus.IN_PROGRESS
        logger.debug(f"Comparison {state.cursor + 1}/{state.budget}: {pair[0]} vs {pair[1]}")
        return pair

    def _draw_pair(self) -> Pair:
        n = self.state.item_count
        seen = self.state.seen_pairs

        for _ in range(MAX_PICK_ATTEMPTS):
            left = self.rng.randrange(n)
            right = self.rng.randrange(n)
            if left != right and pair_key(left, right) not in seen:
                return (left, right)

        raise SchedulerExhausted(f"No unseen pair found in {MAX_PICK_ATTEMPTS} attempts")

    def _finish(self) -> None:
        self.state.current_pair = None
        self.status = SchedulerStatus.FINISHED
