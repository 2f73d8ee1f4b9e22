"""
Item Catalog - Versioned collections of rankable items

Each catalog version is a dated snapshot of the items that can be sorted
and the filter criteria offered for them. Versions live side by side in a
registry so that an old save can be matched to the item set it was made
against.

Catalog files are JSON documents, one per version:

    {
        "version": "2025-01-01",
        "options": [{"name": ..., "key": ..., "tooltip": ..., "checked": ...,
                     "sub": [{"name": ..., "key": ..., ...}]}],
        "items": [{"name": ..., "img": ..., "opts": {...}}]
    }

Version: 1.0
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

CATALOG_SUFFIX = ".json"

TagValue = Union[bool, Tuple[str, ...]]


class SorterError(Exception):
    """Base class for sorter errors."""


@dataclass(frozen=True)
class Item:
    """A rankable item."""
    name: str
    image_ref: str
    filter_tags: Dict[str, TagValue] = field(default_factory=dict, compare=False, hash=False)

    def tag(self, key: str) -> Optional[TagValue]:
        return self.filter_tags.get(key)


@dataclass(frozen=True)
class SubCriterion:
    key: str
    name: str
    tooltip: str = ""
    default_checked: bool = True


@dataclass(frozen=True)
class FilterCriterion:
    """
    A filter offered to the user before a run starts.

    A criterion with subcriteria is a grouped criterion: selecting it keeps
    only items tagged with one of the selected subkeys. Without subcriteria
    it is an exclusion filter.
    """
    key: str
    name: str
    tooltip: str = ""
    default_checked: bool = False
    subcriteria: Tuple[SubCriterion, ...] = ()

    @property
    def is_grouped(self) -> bool:
        return bool(self.subcriteria)


def parse_version_date(version_id: str) -> datetime:
    """
    Parse a version label into an aware datetime.

    Labels without an offset are read as UTC, matching how date-only
    strings are interpreted by the share links this format comes from.
    """
    parsed = datetime.fromisoformat(version_id)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CatalogVersion:
    """One dated catalog snapshot."""
    version_id: str
    items: Tuple[Item, ...]
    filter_definitions: Tuple[FilterCriterion, ...] = ()

    @property
    def released_at(self) -> datetime:
        return parse_version_date(self.version_id)

    @property
    def released_at_ms(self) -> int:
        """Label instant in epoch milliseconds."""
        return int(self.released_at.timestamp() * 1000)

    @property
    def grouped_criteria(self) -> List[FilterCriterion]:
        return [c for c in self.filter_definitions if c.is_grouped]

    @classmethod
    def from_dict(cls, version_id: str, data: Dict[str, Any]) -> "CatalogVersion":
        """Build a version from the JSON catalog layout."""
        criteria = []
        for opt in data.get('options', []):
            subs = tuple(
                SubCriterion(
                    key=sub['key'],
                    name=sub.get('name', sub['key']),
                    tooltip=sub.get('tooltip', ''),
                    default_checked=sub.get('checked', True) is not False,
                )
                for sub in opt.get('sub', [])
            )
            criteria.append(FilterCriterion(
                key=opt['key'],
                name=opt.get('name', opt['key']),
                tooltip=opt.get('tooltip', ''),
                default_checked=bool(opt.get('checked', False)),
                subcriteria=subs,
            ))

        raw_items = data.get('items', data.get('characterData', []))
        items = []
        for raw in raw_items:
            tags = {}
            for key, value in raw.get('opts', {}).items():
                tags[key] = tuple(value) if isinstance(value, list) else bool(value)
            items.append(Item(name=raw['name'], image_ref=raw.get('img', ''), filter_tags=tags))

        return cls(version_id=version_id, items=tuple(items), filter_definitions=tuple(criteria))


class CatalogRegistry:
    """
    All known catalog versions keyed by version id.

    The registry is read-only once built and is never empty.
    """

    def __init__(self, versions: List[CatalogVersion]):
        if not versions:
            raise ValueError("Catalog registry needs at least one version")

        self._versions: Dict[str, CatalogVersion] = {}
        for version in sorted(versions, key=lambda v: v.released_at):
            if version.version_id in self._versions:
                raise ValueError(f"Duplicate catalog version: {version.version_id}")
            self._versions[version.version_id] = version

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self) -> Iterator[CatalogVersion]:
        return iter(self._versions.values())

    def __contains__(self, version_id: str) -> bool:
        return version_id in self._versions

    def get(self, version_id: str) -> CatalogVersion:
        return self._versions[version_id]

    @property
    def version_ids(self) -> List[str]:
        """Version ids in chronological order."""
        return list(self._versions)

    def latest(self) -> CatalogVersion:
        return list(self._versions.values())[-1]

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]]) -> "CatalogRegistry":
        return cls([CatalogVersion.from_dict(vid, body) for vid, body in data.items()])

    @classmethod
    def load_directory(cls, catalog_dir: str) -> "CatalogRegistry":
        """
        Load every catalog file in a directory.

        Args:
            catalog_dir: Folder containing <version>.json files

        Returns:
            Registry of all versions found
        """
        folder = Path(catalog_dir)
        if not folder.is_dir():
            raise ValueError(f"Catalog folder does not exist: {catalog_dir}")

        versions = []
        for path in sorted(folder.glob(f"*{CATALOG_SUFFIX}")):
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            version_id = data.get('version', path.stem)
            versions.append(CatalogVersion.from_dict(version_id, data))
            logger.debug(f"Loaded catalog {version_id} from {path}")

        logger.info(f"Loaded {len(versions)} catalog version(s) from {catalog_dir}")
        return cls(versions)
