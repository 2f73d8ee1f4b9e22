"""
Test Comparison Scheduler

Tests pair drawing, determinism of the seeded stream, budget handling and
the forced finish when no unseen pair can be found.
"""

import random

from catalog import Item
from pair_scheduler import (
    CLOCK_SKEW_SEED_OFFSET, MAX_PICK_ATTEMPTS, ComparisonScheduler, SchedulerStatus, seed_for
)
from run_state import MAX_COMPARISONS, Outcome, RunState, comparison_budget, pair_key
from score_ledger import ScoreLedger


def make_state(count, started_at=1735776000000, clock_skew=False):
    items = [Item(name=f"Item {i}", image_ref=f"{i}.png") for i in range(count)]
    return RunState(working_set=items, started_at=started_at, clock_skew=clock_skew)


def run_to_end(state, outcome=Outcome.TIE):
    scheduler = ComparisonScheduler(state)
    ledger = ScoreLedger(state)
    while True:
        pair = scheduler.advance()
        if pair is None:
            return scheduler
        ledger.apply(outcome, pair[0], pair[1], scheduler.getstate())


class StuckRandom:
    """Random source that always draws index 0."""

    def randrange(self, n):
        return 0

    def getstate(self):
        return None

    def setstate(self, state):
        pass


def test_budget_formula():
    assert comparison_budget(2) == 1
    assert comparison_budget(5) == 10
    assert comparison_budget(14) == 91
    assert comparison_budget(15) == MAX_COMPARISONS
    assert comparison_budget(40) == MAX_COMPARISONS

    for count in (2, 3, 7, 20):
        assert make_state(count).budget == min(count * (count - 1) // 2, 100)


def test_not_started_has_no_pair():
    scheduler = ComparisonScheduler(make_state(4))
    assert scheduler.status == SchedulerStatus.NOT_STARTED
    assert scheduler.current_pair is None


def test_advance_draws_valid_pair():
    state = make_state(6)
    scheduler = ComparisonScheduler(state)

    left, right = scheduler.advance()

    assert left != right
    assert 0 <= left < 6 and 0 <= right < 6
    assert scheduler.current_pair == (left, right)
    assert scheduler.status == SchedulerStatus.IN_PROGRESS
    assert state.seen_pairs == set(), "Pair is only seen once an outcome is applied"


def test_same_seed_gives_same_pairs():
    first = make_state(20)
    second = make_state(20)
    run_to_end(first)
    run_to_end(second)

    assert first.history == second.history
    assert first.cursor == first.budget


def test_skew_flag_offsets_seed():
    assert seed_for(1000) == 1000
    assert seed_for(1000, clock_skew=True) == 1000 + CLOCK_SKEW_SEED_OFFSET


def test_injected_random_is_used():
    expected_rng = random.Random(42)
    while True:
        left, right = expected_rng.randrange(5), expected_rng.randrange(5)
        if left != right:
            break

    scheduler = ComparisonScheduler(make_state(5), rng=random.Random(42))
    assert scheduler.advance() == (left, right)


def test_small_runs_complete_every_pair():
    for count in (2, 3, 4):
        state = make_state(count)
        scheduler = run_to_end(state, Outcome.LEFT)

        assert scheduler.is_finished
        assert state.cursor == state.budget == count * (count - 1) // 2
        assert len(state.seen_pairs) == state.cursor
        assert not state.exhausted


def test_capped_run_has_no_repeated_pairs():
    state = make_state(20)
    run_to_end(state, Outcome.RIGHT)

    assert state.cursor == MAX_COMPARISONS
    keys = [pair_key(c.left, c.right) for c in state.history]
    assert len(set(keys)) == len(keys), "A pair was shown twice"
    assert all(c.left != c.right for c in state.history)
    assert sum(state.scores) == 0


def test_advance_is_idempotent_after_budget():
    state = make_state(3)
    scheduler = run_to_end(state)

    assert scheduler.advance() is None
    assert scheduler.advance() is None
    assert scheduler.status == SchedulerStatus.FINISHED
    assert scheduler.current_pair is None


def test_exhausted_pair_space_forces_finish():
    state = make_state(5)
    scheduler = ComparisonScheduler(state, rng=StuckRandom())

    assert scheduler.advance() is None
    assert scheduler.is_finished
    assert state.exhausted
    assert state.cursor == 0
    assert MAX_PICK_ATTEMPTS == 100
