"""Shared catalog fixtures for the sorter tests."""

from datetime import datetime, timezone

import pytest

from catalog import CatalogRegistry, CatalogVersion, FilterCriterion, Item, SubCriterion


def epoch_ms(date_str: str) -> int:
    """Epoch milliseconds of a UTC date string."""
    return int(datetime.fromisoformat(date_str).replace(tzinfo=timezone.utc).timestamp() * 1000)


def make_items(names, tags=None):
    tags = tags or {}
    return tuple(Item(name=n, image_ref=f"{n.lower()}.png", filter_tags=tags.get(n, {})) for n in names)


@pytest.fixture
def plain_catalog():
    """Eight untagged items, no filters."""
    names = ['Aqua', 'Beko', 'Blitz', 'Kiri', 'Lei', 'Pen', 'Quo', 'Vel']
    return CatalogVersion(version_id='2025-01-01', items=make_items(names))


@pytest.fixture
def filtered_catalog():
    """Items tagged with a grouped 'category' filter and an exclusion 'spoilers' filter."""
    criteria = (
        FilterCriterion(key='spoilers', name='Exclude spoilers', default_checked=False),
        FilterCriterion(
            key='category',
            name='Filter by Category',
            default_checked=False,
            subcriteria=(
                SubCriterion(key='cat1', name='Category 1'),
                SubCriterion(key='cat2', name='Category 2'),
            ),
        ),
    )
    tags = {
        'Aqua': {'category': ('cat1',)},
        'Beko': {'category': ('cat2',), 'spoilers': True},
        'Blitz': {'category': ('cat1', 'cat2')},
        'Kiri': {},
        'Lei': {'category': ('cat2',)},
    }
    return CatalogVersion(
        version_id='2025-01-01',
        items=make_items(['Aqua', 'Beko', 'Blitz', 'Kiri', 'Lei'], tags),
        filter_definitions=criteria,
    )


@pytest.fixture
def two_version_registry():
    """Versions 2024-01-01 and 2025-01-01 with different item sets."""
    old = CatalogVersion(version_id='2024-01-01', items=make_items(['Aqua', 'Beko', 'Blitz', 'Kiri']))
    new = CatalogVersion(version_id='2025-01-01', items=make_items(['Lei', 'Pen', 'Quo', 'Vel', 'Xet']))
    return CatalogRegistry([new, old])


class FakeClock:
    """Clock that advances one second per reading."""

    def __init__(self, start_ms: int):
        self.now = start_ms

    def __call__(self) -> int:
        value = self.now
        self.now += 1000
        return value


@pytest.fixture
def clock_at():
    return lambda date_str: FakeClock(epoch_ms(date_str))
