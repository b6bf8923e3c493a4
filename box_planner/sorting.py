from __future__ import annotations

from typing import Protocol

from box_planner.models import Box, Item, PackedBox


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


class ItemSorter(Protocol):
    def compare(self, a: Item, b: Item) -> int: ...


class BoxSorter(Protocol):
    def compare(self, a: Box, b: Box) -> int: ...


class PackedBoxSorter(Protocol):
    def compare(self, a: PackedBox, b: PackedBox) -> int: ...


class DefaultItemSorter:
    """Largest volume first, then heaviest, then by description."""

    def compare(self, a: Item, b: Item) -> int:
        return _cmp(b.volume, a.volume) or _cmp(b.weight, a.weight) or _cmp(a.description, b.description)


class DefaultBoxSorter:
    """Smallest box first, then lightest, then least spare weight capacity."""

    def compare(self, a: Box, b: Box) -> int:
        return (
            _cmp(a.inner_volume, b.inner_volume)
            or _cmp(a.empty_weight, b.empty_weight)
            or _cmp(a.payload_capacity, b.payload_capacity)
        )


class DefaultPackedBoxSorter:
    def compare(self, a: PackedBox, b: PackedBox) -> int:
        return (
            _cmp(len(b.items), len(a.items))
            or _cmp(b.volume_utilisation, a.volume_utilisation)
            or _cmp(b.used_volume, a.used_volume)
        )
