"""
Test Ranking Resolver

Tests competition ranking, the text/JSON/CSV exports and the duration
summary shown when a run completes.
"""

import csv
import json
from datetime import datetime

import pytest

from catalog import Item
from ranking_resolver import (
    completion_summary, export_csv, export_filename, export_json, format_duration,
    format_text_list, rank_scores, resolve_rankings
)
from run_state import RunState


def make_items(*names):
    return [Item(name=n, image_ref=f"{n.lower()}.png") for n in names]


def test_competition_ranking():
    items = make_items('Aqua', 'Beko', 'Blitz', 'Kiri')
    rankings = rank_scores(items, [3, 5, 1, 5])

    assert [e.item.name for e in rankings] == ['Beko', 'Kiri', 'Aqua', 'Blitz']
    assert [e.rank for e in rankings] == [1, 1, 3, 4]
    assert [e.score for e in rankings] == [5, 5, 3, 1]


def test_ties_keep_working_set_order():
    items = make_items('Aqua', 'Beko', 'Blitz')
    rankings = rank_scores(items, [0, 0, 0])

    assert [e.item.name for e in rankings] == ['Aqua', 'Beko', 'Blitz']
    assert {e.rank for e in rankings} == {1}


def test_mismatched_lengths_rejected():
    with pytest.raises(ValueError):
        rank_scores(make_items('Aqua'), [1, 2])


def test_unfinished_run_cannot_be_ranked():
    state = RunState(working_set=make_items('Aqua', 'Beko'), started_at=0)
    with pytest.raises(ValueError):
        resolve_rankings(state)

    state.finished_at = 1000
    state.scores = [-1, 1]
    assert [e.item.name for e in resolve_rankings(state)] == ['Beko', 'Aqua']


def test_text_list():
    rankings = rank_scores(make_items('Aqua', 'Beko', 'Blitz'), [2, -1, 2])
    assert format_text_list(rankings) == "1. Aqua (2 points)\n1. Blitz (2 points)\n3. Beko (-1 points)"


def test_export_json(tmp_path):
    rankings = rank_scores(make_items('Aqua', 'Beko'), [1, -1])
    path = tmp_path / 'out.json'

    assert export_json(rankings, str(path)) == 2
    assert json.loads(path.read_text(encoding='utf-8')) == [
        {'rank': 1, 'name': 'Aqua', 'score': 1},
        {'rank': 2, 'name': 'Beko', 'score': -1},
    ]


def test_export_csv(tmp_path):
    rankings = rank_scores(make_items('Aqua', 'Beko'), [0, 2])
    path = tmp_path / 'out.csv'

    export_csv(rankings, str(path))

    with open(path, newline='', encoding='utf-8') as f:
        rows = list(csv.reader(f))
    assert rows == [
        ['rank', 'name', 'score', 'image_ref'],
        ['1', 'Beko', '2', 'beko.png'],
        ['2', 'Aqua', '0', 'aqua.png'],
    ]


def test_export_filename_uses_local_date():
    finished_ms = 1735776000000
    day = datetime.fromtimestamp(finished_ms / 1000)
    expected = f"ERP-sort-{day:%d}-{day:%m}-{day:%Y}.csv"
    assert export_filename('ERP', finished_ms, 'csv') == expected


@pytest.mark.parametrize('milliseconds, expected', [
    (0, ''),
    (999, ''),
    (1000, '1 second'),
    (61000, '1 minute, 1 second'),
    (3723000, '1 hour, 2 minutes, 3 seconds'),
    (90061000, '1 day, 1 hour, 1 minute'),
    (2 * 86400000, '2 days'),
])
def test_format_duration(milliseconds, expected):
    assert format_duration(milliseconds) == expected


def test_completion_summary():
    state = RunState(working_set=make_items('Aqua', 'Beko'), started_at=1735776000000)
    with pytest.raises(ValueError):
        completion_summary(state)

    state.finished_at = 125000
    finished = datetime.fromtimestamp((1735776000000 + 125000) / 1000)
    assert completion_summary(state) == (
        f"This sorter was completed on {finished:%a %b %d %Y %H:%M:%S} and took 2 minutes, 5 seconds."
    )

    state.finished_at = 1
    assert completion_summary(state).endswith("and took less than a second.")
