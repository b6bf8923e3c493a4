from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from box_planner.lists import PackedItemList
    from box_planner.models import Box, Item


class PlacementConstraint:
    """Item-specific placement rule.

    ``can_be_packed_in_box`` is asked once per item before any orientation is
    tried, ``can_be_packed`` for every candidate position and orientation.
    Neither is consulted when packing into a working volume.
    """

    def can_be_packed_in_box(self, item: "Item", box: "Box", packed_items: "PackedItemList") -> bool:
        return True

    def can_be_packed(
        self,
        item: "Item",
        box: "Box",
        packed_items: "PackedItemList",
        x: int,
        y: int,
        z: int,
        width: int,
        length: int,
        depth: int,
    ) -> bool:
        return True


class MaxCountPerBox(PlacementConstraint):
    """At most ``limit`` items sharing a description in one box."""

    def __init__(self, limit: int):
        self.limit = limit

    def _already_packed(self, item, packed_items) -> int:
        return sum(1 for packed in packed_items if packed.item.description == item.description)

    def can_be_packed_in_box(self, item, box, packed_items) -> bool:
        return self._already_packed(item, packed_items) + 1 <= self.limit

    def can_be_packed(self, item, box, packed_items, x, y, z, width, length, depth) -> bool:
        return self._already_packed(item, packed_items) + 1 <= self.limit

    def __repr__(self) -> str:
        return f"MaxCountPerBox({self.limit})"


class NoStackingOnSameType(PlacementConstraint):
    """Never rest directly on top of an item with the same description."""

    def can_be_packed(self, item, box, packed_items, x, y, z, width, length, depth) -> bool:
        for packed in packed_items:
            if packed.item.description != item.description:
                continue
            if packed.z + packed.depth != z:
                continue
            overlaps_x = x < packed.x + packed.width and packed.x < x + width
            overlaps_y = y < packed.y + packed.length and packed.y < y + length
            if overlaps_x and overlaps_y:
                return False
        return True

    def __repr__(self) -> str:
        return "NoStackingOnSameType()"
