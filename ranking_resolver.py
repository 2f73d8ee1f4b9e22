"""
Ranking Resolver - Final ranking and result exports

Turns a finished run into a ranked list. Items are ordered by score
(highest first, working-set order among equals) and ranked with
competition ranking: equal scores share a rank and the next score's rank
is its position in the list, so scores 5, 5, 3, 1 rank 1, 1, 3, 4.

Exports:
- JSON list of {rank, name, score}
- Plain text, one "<rank>. <name> (<score> points)" per line
- CSV with rank, name, score and image reference
"""

import csv
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence

from catalog import Item
from run_state import RunState

logger = logging.getLogger(__name__)

# Duration units used by format_duration, largest first
DURATION_UNITS = [
    ('year', 31536000),
    ('month', 2592000),
    ('day', 86400),
    ('hour', 3600),
    ('minute', 60),
    ('second', 1),
]


@dataclass(frozen=True)
class RankedEntry:
    rank: int
    item: Item
    score: int

    def to_dict(self) -> Dict[str, Any]:
        return {'rank': self.rank, 'name': self.item.name, 'score': self.score}


def rank_scores(items: Sequence[Item], scores: Sequence[int]) -> List[RankedEntry]:
    """Rank items by score using competition ranking."""
    if len(items) != len(scores):
        raise ValueError(f"{len(items)} items but {len(scores)} scores")

    order = sorted(range(len(items)), key=lambda i: -scores[i])

    ranked = []
    for position, index in enumerate(order, 1):
        if ranked and ranked[-1].score == scores[index]:
            rank = ranked[-1].rank
        else:
            rank = position
        ranked.append(RankedEntry(rank=rank, item=items[index], score=scores[index]))
    return ranked


def resolve_rankings(state: RunState) -> List[RankedEntry]:
    """Final ranking of a finished run."""
    if not state.is_finished:
        raise ValueError("Cannot rank a run that has not finished")
    return rank_scores(state.working_set, state.scores)


def format_text_list(rankings: Sequence[RankedEntry]) -> str:
    return '\n'.join(f"{e.rank}. {e.item.name} ({e.score} points)" for e in rankings)


def export_json(rankings: Sequence[RankedEntry], output_path: str) -> int:
    """
    Write rankings as a JSON list.

    Returns:
        Number of entries written
    """
    records = [entry.to_dict() for entry in rankings]
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(records, f, indent=2, ensure_ascii=False)
    logger.info(f"Exported {len(records)} rankings to {output_path}")
    return len(records)


def export_csv(rankings: Sequence[RankedEntry], output_path: str) -> int:
    """Write rankings as CSV. Returns number of rows written."""
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(['rank', 'name', 'score', 'image_ref'])
        for entry in rankings:
            writer.writerow([entry.rank, entry.item.name, entry.score, entry.item.image_ref])

    logger.info(f"Exported {len(rankings)} rankings to {output_path}")
    return len(rankings)


def export_filename(mode: str, finished_epoch_ms: int, extension: str = 'json') -> str:
    """File name for an export, dated by the local finish day."""
    finished = datetime.fromtimestamp(finished_epoch_ms / 1000)
    return f"{mode}-sort-{finished:%d}-{finished:%m}-{finished:%Y}.{extension}"


def export_path(export_dir: str, mode: str, finished_epoch_ms: int, extension: str) -> str:
    folder = Path(export_dir)
    folder.mkdir(parents=True, exist_ok=True)
    return str(folder / export_filename(mode, finished_epoch_ms, extension))


def format_duration(milliseconds: int) -> str:
    """
    Readable duration, e.g. "1 hour, 2 minutes, 5 seconds".

    Only the three largest non-zero units are kept.
    """
    remaining = int(milliseconds) // 1000
    parts = []
    for unit, seconds in DURATION_UNITS:
        count, remaining = divmod(remaining, seconds)
        if count:
            parts.append(f"{count} {unit}{'s' if count > 1 else ''}")
    return ', '.join(parts[:3])


def completion_summary(state: RunState) -> str:
    if not state.is_finished:
        raise ValueError("Run has not finished")
    finished = datetime.fromtimestamp((state.started_at + state.finished_at) / 1000)
    return (
        f"This sorter was completed on {finished:%a %b %d %Y %H:%M:%S} "
        f"and took {format_duration(state.finished_at) or 'less than a second'}."
    )
