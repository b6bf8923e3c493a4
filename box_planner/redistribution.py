from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from box_planner.errors import IncreasedBoxCountError
from box_planner.lists import BoxList, PackedBoxList
from box_planner.models import UNLIMITED_QUANTITY, Box, Item, PackedBox
from box_planner.orientation import PackingCache
from box_planner.sorting import BoxSorter, ItemSorter, PackedBoxSorter

if TYPE_CHECKING:
    from box_planner.timeout import TimeoutChecker


def _variance(box_a_weight: float, box_b_weight: float) -> float:
    # for two boxes both sit the same distance from their mean
    return (box_a_weight - (box_a_weight + box_b_weight) / 2) ** 2


def would_repack_help(over_items: List[Item], item: Item, under_items: List[Item], target_weight: float) -> bool:
    """Cheap test whether moving ``item`` to the lighter box evens out the pair."""
    over_weight = sum(i.weight for i in over_items)
    under_weight = sum(i.weight for i in under_items)
    if item.weight + under_weight > target_weight:
        return False
    old_variance = _variance(over_weight, under_weight)
    new_variance = _variance(over_weight - item.weight, under_weight + item.weight)
    return new_variance < old_variance


class WeightRedistributor:
    """Moves items between packed boxes to even out their weight without adding boxes."""

    def __init__(
        self,
        boxes: BoxList | Iterable[Box],
        box_quantities: Optional[Dict[Box, int]] = None,
        item_sorter: Optional[ItemSorter] = None,
        box_sorter: Optional[BoxSorter] = None,
        packed_box_sorter: Optional[PackedBoxSorter] = None,
        cache: Optional[PackingCache] = None,
        logger: Optional[logging.Logger] = None,
        timeout_checker: Optional["TimeoutChecker"] = None,
    ):
        self.boxes = list(boxes)
        self.box_quantities = dict(box_quantities or {})
        self.item_sorter = item_sorter
        self.box_sorter = box_sorter
        self.packed_box_sorter = packed_box_sorter
        self.cache = cache if cache is not None else PackingCache()
        self.logger = logger or logging.getLogger(__name__)
        self.timeout_checker = timeout_checker
        self._available: Dict[Box, int] = {}

    def redistribute_weight(self, original: PackedBoxList) -> PackedBoxList:
        target_weight = original.mean_item_weight
        self.logger.debug(
            "repacking for weight distribution, weight variance %s, target weight %s",
            original.weight_variance,
            target_weight,
        )

        self._available = {box: self.box_quantities.get(box, UNLIMITED_QUANTITY) for box in self.boxes}
        for packed_box in original:
            self._available[packed_box.box] = self._available.get(packed_box.box, UNLIMITED_QUANTITY) - 1

        boxes: List[Optional[PackedBox]] = sorted(original, key=lambda packed_box: packed_box.weight, reverse=True)
        try:
            changed = True
            while changed:
                changed = False
                for a in range(len(boxes)):
                    for b in range(a + 1, len(boxes)):
                        if boxes[a].weight == boxes[b].weight:
                            continue
                        changed = self._equalise_weight(boxes, a, b, target_weight)
                        if changed:
                            boxes = [packed_box for packed_box in boxes if packed_box is not None]
                            break
                    if changed:
                        break
        except IncreasedBoxCountError as exc:
            self.logger.warning("abandoning weight redistribution: %s", exc)
            return original

        result = PackedBoxList(self.packed_box_sorter)
        result.insert_all(boxes)
        self.logger.debug("weight variance after redistribution %s", result.weight_variance)
        return result

    def _equalise_weight(self, boxes: List[Optional[PackedBox]], a: int, b: int, target_weight: float) -> bool:
        if boxes[a].weight > boxes[b].weight:
            over_idx, under_idx = a, b
        else:
            over_idx, under_idx = b, a
        over_box = boxes[over_idx]
        under_box = boxes[under_idx]
        over_items = over_box.items.as_items()
        under_items = under_box.items.as_items()
        any_successful = False

        for item in list(over_items):
            if not would_repack_help(over_items, item, under_items, target_weight):
                continue

            self.logger.debug(
                "trying to move %s from %s to %s", item.description, over_box.box.reference, under_box.box.reference
            )
            new_lighter = self._repack(under_items + [item], under_box.box)
            if len(new_lighter) == 0:
                continue

            if len(over_items) == 1:
                # the heavier box is emptied entirely
                self._swap_quantities([over_box.box, under_box.box], [new_lighter.top().box])
                boxes[under_idx] = new_lighter.top()
                boxes[over_idx] = None
                self.logger.info("moved %s and eliminated a box", item.description)
                return True

            remaining = [i for i in over_items if i is not item]
            new_heavier = self._repack(remaining, over_box.box)
            if len(new_heavier) == 0:
                continue

            self._swap_quantities(
                [over_box.box, under_box.box], [new_lighter.top().box, new_heavier.top().box]
            )
            over_items = remaining
            under_items = under_items + [item]
            over_box = boxes[over_idx] = new_heavier.top()
            under_box = boxes[under_idx] = new_lighter.top()
            any_successful = True
            self.logger.info("moved %s to even out box weights", item.description)

        return any_successful

    def _swap_quantities(self, released: List[Box], taken: List[Box]) -> None:
        for box in released:
            self._available[box] = self._available.get(box, 0) + 1
        for box in taken:
            self._available[box] = self._available.get(box, 0) - 1

    def _repack(self, items: List[Item], current_box: Box) -> PackedBoxList:
        """Trial repack into a single box; an empty list means no single box takes them all."""
        from box_planner.planner import Packer

        packer = Packer(
            item_sorter=self.item_sorter,
            box_sorter=self.box_sorter,
            packed_box_sorter=self.packed_box_sorter,
            logger=self.logger,
            timeout_checker=self.timeout_checker,
        )
        packer.set_boxes(self.boxes)
        for box in self.boxes:
            packer.set_box_quantity(box, self._available_quantity(box))
        packer.set_box_quantity(current_box, self._available_quantity(current_box) + 1)
        packer.set_items(items)
        repacked = packer.pack_basic(enforce_single_box=True, cache=self.cache)
        if len(repacked) > 1:
            raise IncreasedBoxCountError(
                f"Moving items into {current_box.reference} needed {len(repacked)} boxes instead of 1"
            )
        return repacked

    def _available_quantity(self, box: Box) -> int:
        if box in self._available:
            return self._available[box]
        return self.box_quantities.get(box, UNLIMITED_QUANTITY)
