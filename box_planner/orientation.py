from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import TYPE_CHECKING, Dict, List, Optional

from box_planner.lists import ItemList, PackedItemList
from box_planner.models import Box, Item, OrientatedItem, Rotation, WorkingVolume

if TYPE_CHECKING:
    from box_planner.timeout import TimeoutChecker

# lookahead runs nested packs, so only the next few queued items are simulated
LOOKAHEAD_ITEM_CAP = 8


@dataclass
class PackingCache:
    """Memo tables shared by every component of one packing run."""

    empty_box_stability: Dict[tuple, bool] = field(default_factory=dict)
    lookahead: Dict[tuple, int] = field(default_factory=dict)
    fits_alone: Dict[tuple, bool] = field(default_factory=dict)


def _exact_fit_decider(a_left: int, b_left: int) -> int:
    if a_left == 0 and b_left > 0:
        return -1
    if a_left > 0 and b_left == 0:
        return 1
    return 0


class OrientatedItemFactory:
    def __init__(
        self,
        box: Box,
        cache: Optional[PackingCache] = None,
        single_pass: bool = False,
        logger: Optional[logging.Logger] = None,
        timeout_checker: Optional["TimeoutChecker"] = None,
    ):
        self.box = box
        self.cache = cache if cache is not None else PackingCache()
        self.single_pass = single_pass
        self.logger = logger or logging.getLogger(__name__)
        self.timeout_checker = timeout_checker
        # set while a VolumePacker trial works in the width/length swapped frame
        self.box_is_rotated = False

    def get_best_orientation(
        self,
        item: Item,
        prev_item: Optional[OrientatedItem],
        next_items: ItemList,
        width_left: int,
        length_left: int,
        depth_left: int,
        row_length: int,
        x: int,
        y: int,
        z: int,
        packed_items: PackedItemList,
    ) -> Optional[OrientatedItem]:
        possible = self.get_possible_orientations(
            item, prev_item, width_left, length_left, depth_left, x, y, z, packed_items
        )
        usable = self.get_usable_orientations(item, possible)
        if not usable:
            return None

        sorter = OrientatedItemSorter(
            self,
            self.single_pass,
            width_left,
            length_left,
            depth_left,
            next_items,
            row_length,
            x,
            y,
            z,
            packed_items,
        )
        usable.sort(key=cmp_to_key(sorter.compare))
        best = usable[0]
        self.logger.debug(
            "selected orientation %sx%sx%s for %s", best.width, best.length, best.depth, item.description
        )
        return best

    def _permutations(self, item: Item, prev_item: Optional[OrientatedItem]) -> List[tuple[int, int, int]]:
        if self.box_is_rotated and item.allowed_rotation == Rotation.NEVER:
            # swapped back to (w, l, d) when the trial is un-rotated
            permitted = [(item.length, item.width, item.depth)]
        else:
            permitted = item.permutations()
        # keep runs of identical items aligned
        if prev_item is not None and prev_item.is_same_dimensions(item) and prev_item.dimensions in permitted:
            return [prev_item.dimensions]
        return permitted

    def get_possible_orientations(
        self,
        item: Item,
        prev_item: Optional[OrientatedItem],
        width_left: int,
        length_left: int,
        depth_left: int,
        x: int,
        y: int,
        z: int,
        packed_items: PackedItemList,
    ) -> List[OrientatedItem]:
        orientations = [
            OrientatedItem(item, w, l, d)
            for w, l, d in self._permutations(item, prev_item)
            if w <= width_left and l <= length_left and d <= depth_left
        ]
        if item.constraint is not None and not isinstance(self.box, WorkingVolume):
            orientations = [
                o
                for o in orientations
                if item.constraint.can_be_packed(
                    item, self.box, packed_items, x, y, z, o.width, o.length, o.depth
                )
            ]
        return orientations

    def is_stable_in_box(self, orientation: OrientatedItem) -> bool:
        return orientation.is_stable or orientation.depth == self.box.inner_depth

    def get_usable_orientations(self, item: Item, possible: List[OrientatedItem]) -> List[OrientatedItem]:
        stable = [o for o in possible if self.is_stable_in_box(o)]
        if stable:
            return stable
        unstable = [o for o in possible if not self.is_stable_in_box(o)]
        if unstable and not self.has_stable_orientation_in_empty_box(item):
            return unstable
        return []

    def has_stable_orientation_in_empty_box(self, item: Item) -> bool:
        width, length = self.box.inner_width, self.box.inner_length
        if self.box_is_rotated:
            width, length = length, width
        key = (item.width, item.length, item.depth, int(item.allowed_rotation), width, length, self.box.inner_depth)
        cached = self.cache.empty_box_stability.get(key)
        if cached is None:
            orientations = self.get_possible_orientations(
                item,
                None,
                width,
                length,
                self.box.inner_depth,
                0,
                0,
                0,
                PackedItemList(),
            )
            cached = any(self.is_stable_in_box(o) for o in orientations)
            self.cache.empty_box_stability[key] = cached
        return cached


class OrientatedItemSorter:
    """Orders candidate orientations best-first for one placement decision."""

    def __init__(
        self,
        factory: OrientatedItemFactory,
        single_pass: bool,
        width_left: int,
        length_left: int,
        depth_left: int,
        next_items: ItemList,
        row_length: int,
        x: int,
        y: int,
        z: int,
        packed_items: PackedItemList,
    ):
        self.factory = factory
        self.single_pass = single_pass
        self.width_left = width_left
        self.length_left = length_left
        self.depth_left = depth_left
        self.next_items = next_items
        self.row_length = row_length
        self.x = x
        self.y = y
        self.z = z
        self.packed_items = packed_items

    def compare(self, a: OrientatedItem, b: OrientatedItem) -> int:
        a_width_left = self.width_left - a.width
        b_width_left = self.width_left - b.width
        decider = _exact_fit_decider(a_width_left, b_width_left)
        if decider:
            return decider

        a_length_left = self.length_left - a.length
        b_length_left = self.length_left - b.length
        decider = _exact_fit_decider(a_length_left, b_length_left)
        if decider:
            return decider

        decider = _exact_fit_decider(self.depth_left - a.depth, self.depth_left - b.depth)
        if decider:
            return decider

        decider = self._lookahead_decider(a, b, a_width_left, b_width_left)
        if decider:
            return decider

        a_min_gap = min(a_width_left, a_length_left)
        b_min_gap = min(b_width_left, b_length_left)
        if a_min_gap != b_min_gap:
            return -1 if a_min_gap < b_min_gap else 1
        if a.surface_footprint != b.surface_footprint:
            return -1 if a.surface_footprint > b.surface_footprint else 1
        return 0

    def _lookahead_decider(self, a: OrientatedItem, b: OrientatedItem, a_width_left: int, b_width_left: int) -> int:
        if len(self.next_items) == 0:
            return 0

        next_item = self.next_items.top()
        next_fits_a = self.factory.get_possible_orientations(
            next_item, a, a_width_left, self.length_left, self.depth_left, self.x, self.y, self.z, self.packed_items
        )
        next_fits_b = self.factory.get_possible_orientations(
            next_item, b, b_width_left, self.length_left, self.depth_left, self.x, self.y, self.z, self.packed_items
        )
        if next_fits_a and not next_fits_b:
            return -1
        if next_fits_b and not next_fits_a:
            return 1

        additional_a = self.additional_items_packed(a)
        additional_b = self.additional_items_packed(b)
        if additional_a != additional_b:
            return -1 if additional_a > additional_b else 1
        return 0

    def additional_items_packed(self, candidate: OrientatedItem) -> int:
        """Estimate how many queued items still fit in the rest of the layer after ``candidate``."""
        if self.single_pass:
            return 0

        from box_planner.packing import VolumePacker

        current_row_length = max(candidate.length, self.row_length)
        items_to_pack = self.next_items.top_n(LOOKAHEAD_ITEM_CAP)

        key = (
            self.width_left,
            self.length_left,
            candidate.width,
            candidate.length,
            current_row_length,
            self.depth_left,
            self.factory.box_is_rotated,
        ) + tuple(
            value
            for item in items_to_pack
            for value in (item.width, item.length, item.depth, item.weight, int(item.allowed_rotation))
        )
        cache = self.factory.cache.lookahead
        if key in cache:
            return cache[key]

        capped_count = len(items_to_pack)
        volumes = [
            WorkingVolume.of(self.width_left - candidate.width, current_row_length, self.depth_left),
            WorkingVolume.of(self.width_left, self.length_left - current_row_length, self.depth_left),
        ]
        for volume in volumes:
            packer = VolumePacker(
                volume,
                items_to_pack,
                cache=self.factory.cache,
                single_pass=True,
                logger=self.factory.logger,
                timeout_checker=self.factory.timeout_checker,
                box_is_rotated=self.factory.box_is_rotated,
            )
            packed = packer.pack()
            items_to_pack.remove_packed_items(packed.items)

        packed_count = capped_count - len(items_to_pack)
        self.factory.logger.debug(
            "lookahead with %sx%sx%s packs %d more item(s)",
            candidate.width,
            candidate.length,
            candidate.depth,
            packed_count,
        )
        cache[key] = packed_count
        return packed_count
