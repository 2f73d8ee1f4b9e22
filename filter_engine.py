"""
Filter Engine - Reduces a catalog version to the working set for a run

Selections are held in a FilterSelection value: each criterion key maps to
a bool (ungrouped criteria, or a grouped criterion whose group box is off)
or to a tuple of bools, one per subcriterion, for a selected group.

Rules:
- Ungrouped criterion selected: drop every item whose tag is truthy
- Grouped criterion selected: keep only items tagged with a selected subkey
- Nothing selected: the catalog comes back unchanged and in order
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from catalog import CatalogVersion, FilterCriterion, Item, SorterError

logger = logging.getLogger(__name__)

MIN_WORKING_SET = 2

SelectionValue = Union[bool, Tuple[bool, ...]]


class InsufficientItems(SorterError):
    """Raised when filtering leaves fewer than two items to sort."""

    def __init__(self, count: int):
        super().__init__(f"Cannot sort with less than two items ({count} left). Please reselect.")
        self.count = count


class FilterSelection:
    """Immutable record of which criteria the user selected."""

    def __init__(self, values: Optional[Mapping[str, SelectionValue]] = None):
        self._values: Dict[str, SelectionValue] = {}
        for key, value in (values or {}).items():
            if isinstance(value, (list, tuple)):
                self._values[key] = tuple(bool(v) for v in value)
            else:
                self._values[key] = bool(value)

    def __repr__(self) -> str:
        return f"FilterSelection({self._values!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, FilterSelection):
            return NotImplemented
        return self._values == other._values

    def get(self, key: str) -> SelectionValue:
        return self._values.get(key, False)

    def is_selected(self, key: str) -> bool:
        value = self.get(key)
        return isinstance(value, tuple) or bool(value)

    def sub_values(self, criterion: FilterCriterion) -> Tuple[bool, ...]:
        """Per-subcriterion flags for a grouped criterion; True selects every subkey."""
        value = self.get(criterion.key)
        if isinstance(value, tuple):
            return value
        return tuple(bool(value) for _ in criterion.subcriteria)

    def as_dict(self) -> Dict[str, SelectionValue]:
        return dict(self._values)

    @classmethod
    def defaults(cls, catalog: CatalogVersion) -> "FilterSelection":
        """Selection matching each criterion's default checked state."""
        values: Dict[str, SelectionValue] = {}
        for criterion in catalog.filter_definitions:
            if criterion.is_grouped:
                if criterion.default_checked:
                    values[criterion.key] = tuple(s.default_checked for s in criterion.subcriteria)
                else:
                    values[criterion.key] = False
            else:
                values[criterion.key] = criterion.default_checked
        return cls(values)

    def to_bits(self, catalog: CatalogVersion) -> Tuple[str, List[str]]:
        """
        Encode the selection as save-string bit fields.

        Returns:
            (top-level bits, one sub-bit string per selected group)
        """
        top = ''
        subs = []
        for criterion in catalog.filter_definitions:
            selected = self.is_selected(criterion.key)
            top += '1' if selected else '0'
            if criterion.is_grouped and selected:
                sub_values = self.sub_values(criterion)
                if len(sub_values) != len(criterion.subcriteria):
                    raise ValueError(
                        f"Selection for {criterion.key} has {len(sub_values)} values, "
                        f"expected {len(criterion.subcriteria)}"
                    )
                subs.append(''.join('1' if v else '0' for v in sub_values))
        return top, subs

    @classmethod
    def from_bits(cls, catalog: CatalogVersion, top: str, subs: Sequence[str]) -> "FilterSelection":
        """
        Decode save-string bit fields against a catalog version.

        The sub-field cursor only moves past a group that was selected.
        Raises ValueError when the fields do not fit the catalog.
        """
        criteria = catalog.filter_definitions
        if len(top) != len(criteria) or set(top) - {'0', '1'}:
            raise ValueError(f"Option bits {top!r} do not match {len(criteria)} criteria")

        values: Dict[str, SelectionValue] = {}
        sub_index = 0
        for index, criterion in enumerate(criteria):
            selected = top[index] == '1'
            if not criterion.is_grouped:
                values[criterion.key] = selected
                continue
            if not selected:
                values[criterion.key] = False
                continue
            if sub_index >= len(subs):
                raise ValueError(f"Missing sub-option bits for {criterion.key}")
            bits = subs[sub_index]
            if len(bits) != len(criterion.subcriteria) or set(bits) - {'0', '1'}:
                raise ValueError(f"Sub-option bits {bits!r} do not match {criterion.key}")
            values[criterion.key] = tuple(b == '1' for b in bits)
            sub_index += 1

        if sub_index != len(subs):
            raise ValueError(f"Unexpected extra sub-option fields: {list(subs[sub_index:])}")

        return cls(values)


def build_working_set(catalog: CatalogVersion, selection: FilterSelection) -> List[Item]:
    """
    Apply a filter selection to a catalog version.

    Args:
        catalog: Version whose items and criteria are used
        selection: Criteria the user selected

    Returns:
        Filtered items in catalog order

    Raises:
        InsufficientItems: fewer than two items survive filtering
    """
    items = list(catalog.items)

    for criterion in catalog.filter_definitions:
        if not selection.is_selected(criterion.key):
            continue

        if criterion.is_grouped:
            sub_values = selection.sub_values(criterion)
            wanted = {
                sub.key for sub, checked in zip(criterion.subcriteria, sub_values) if checked
            }
            kept = []
            for item in items:
                tags = item.tag(criterion.key)
                if tags is None:
                    logger.warning(f"Warning: {criterion.key} not set for {item.name}.")
                    continue
                if isinstance(tags, tuple) and wanted.intersection(tags):
                    kept.append(item)
            items = kept
        else:
            items = [item for item in items if not item.tag(criterion.key)]

    if len(items) < MIN_WORKING_SET:
        raise InsufficientItems(len(items))

    logger.debug(f"Working set: {len(items)} of {len(catalog.items)} items")
    return items
