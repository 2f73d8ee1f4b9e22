"""
Score Ledger - Per-item scores with single-level undo

Each outcome moves one point from the loser to the winner; a tie leaves
both scores alone, so the total over all items stays at zero. Before any
change the ledger overwrites its one snapshot slot, which undo() restores.
"""

import logging
from typing import Any, Optional

from run_state import Comparison, Outcome, RunSnapshot, RunState, pair_key

logger = logging.getLogger(__name__)


class ScoreLedger:
    """Applies comparison outcomes to a RunState."""

    def __init__(self, state: RunState):
        self.state = state

    def can_undo(self) -> bool:
        state = self.state
        return not state.is_finished and state.cursor > 0 and state.snapshot is not None

    def apply(self, outcome: Outcome, left: int, right: int, scheduler_state: Any = None) -> None:
        """
        Record a comparison outcome.

        Args:
            outcome: Which side the user picked
            left: Working-set index shown on the left
            right: Working-set index shown on the right
            scheduler_state: Random stream state to restore on undo
        """
        state = self.state
        if state.is_finished:
            raise ValueError("Run is already finished")
        if left == right:
            raise ValueError(f"Cannot compare item {left} with itself")
        if not (0 <= left < state.item_count and 0 <= right < state.item_count):
            raise ValueError(f"Pair ({left}, {right}) outside working set of {state.item_count}")
        key = pair_key(left, right)
        if key in state.seen_pairs:
            raise ValueError(f"Pair ({left}, {right}) was already compared")

        state.snapshot = state.take_snapshot(scheduler_state)

        if outcome == Outcome.LEFT:
            state.scores[left] += 1
            state.scores[right] -= 1
        elif outcome == Outcome.RIGHT:
            state.scores[right] += 1
            state.scores[left] -= 1

        state.history.append(Comparison(left=left, right=right, outcome=outcome))
        state.seen_pairs.add(key)
        state.cursor += 1

        logger.debug(f"Recorded {outcome.name.lower()}: {left} vs {right} ({state.cursor}/{state.budget})")

    def undo(self) -> Optional[RunSnapshot]:
        """
        Restore the state from before the last apply().

        Returns:
            The restored snapshot, or None if there was nothing to undo
        """
        if not self.can_undo():
            return None

        snapshot = self.state.snapshot
        self.state.restore_snapshot(snapshot)
        self.state.snapshot = None
        logger.info(f"Undid comparison {snapshot.cursor + 1}")
        return snapshot
