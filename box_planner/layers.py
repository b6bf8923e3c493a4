from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, List, Optional

from box_planner.lists import ItemList, PackedItemList
from box_planner.models import Box, Item, OrientatedItem, PackedItem, PackedLayer, WorkingVolume
from box_planner.orientation import OrientatedItemFactory, PackingCache

if TYPE_CHECKING:
    from box_planner.timeout import TimeoutChecker


def _same_dimensions(a: Item, b: Item) -> bool:
    return a is b or a.sorted_dimensions == b.sorted_dimensions


class LayerPacker:
    """Fills one layer of a box row by row, stacking into spare height as it goes."""

    def __init__(
        self,
        box: Box,
        cache: Optional[PackingCache] = None,
        single_pass: bool = False,
        logger: Optional[logging.Logger] = None,
        timeout_checker: Optional["TimeoutChecker"] = None,
    ):
        self.box = box
        self.logger = logger or logging.getLogger(__name__)
        self.factory = OrientatedItemFactory(
            box, cache=cache, single_pass=single_pass, logger=self.logger, timeout_checker=timeout_checker
        )

    def set_box_is_rotated(self, box_is_rotated: bool) -> None:
        self.factory.box_is_rotated = box_is_rotated

    def _accepts(self, item: Item, packed_items: PackedItemList) -> bool:
        if item.weight > self.box.max_weight - self.box.empty_weight - packed_items.weight:
            return False
        if item.constraint is not None and not isinstance(self.box, WorkingVolume):
            return item.constraint.can_be_packed_in_box(item, self.box, packed_items)
        return True

    def pack_layer(
        self,
        items: ItemList,
        packed_items: PackedItemList,
        start_x: int,
        start_y: int,
        start_z: int,
        width_for_layer: int,
        length_for_layer: int,
        depth_for_layer: int,
        guideline_depth: int,
    ) -> tuple[PackedLayer, ItemList]:
        """Pack one layer inside ``[start_x, width_for_layer) x [start_y, length_for_layer)``.

        ``items`` is consumed; the returned list holds everything left unplaced,
        in queue order. Placed items are also appended to ``packed_items``.
        """
        layer = PackedLayer()
        x, y, z = start_x, start_y, start_z
        row_length = 0
        prev_item: Optional[OrientatedItem] = None
        skipped: List[Item] = []
        rejected: List[Item] = []
        depth_limit = guideline_depth or depth_for_layer

        while len(items) > 0:
            item = items.extract()

            if not self._accepts(item, packed_items):
                self.logger.debug("%s rejected for box %s", item.description, self.box.reference)
                rejected.append(item)
                continue

            orientated = self.factory.get_best_orientation(
                item,
                prev_item,
                items,
                width_for_layer - x,
                length_for_layer - y,
                depth_limit,
                row_length,
                x,
                y,
                z,
                packed_items,
            )

            if orientated is not None:
                packed = PackedItem.from_orientated(orientated, x, y, z)
                layer.insert(packed)
                packed_items.insert(packed)
                row_length = max(row_length, packed.length)
                prev_item = orientated
                self.logger.debug("placed %s at (%d, %d, %d)", item.description, x, y, z)

                # infill above the item, up to the layer height
                stackable_depth = (guideline_depth or layer.depth) - packed.depth
                if stackable_depth > 0:
                    stacked, items = self.pack_layer(
                        items,
                        packed_items,
                        x,
                        y,
                        z + packed.depth,
                        x + packed.width,
                        y + packed.length,
                        stackable_depth,
                        stackable_depth,
                    )
                    layer.merge(stacked)

                x += packed.width

                # infill beside the item, up to the current row length
                if row_length > packed.length and len(items) > 0:
                    beside, items = self.pack_layer(
                        items,
                        packed_items,
                        x - packed.width,
                        y + packed.length,
                        z,
                        x,
                        y + row_length,
                        depth_for_layer,
                        layer.depth,
                    )
                    layer.merge(beside)

                if len(items) == 0 and skipped:
                    items = ItemList.from_items(skipped, pre_sorted=True, sorter=items.sorter)
                    skipped = []
                continue

            if len(items) > 0:
                self.logger.debug("%s doesn't fit, skipping for now", item.description)
                skipped.append(item)
                # identical followers will not fit either; the last one is kept to trigger a reset
                while len(items) > 1 and _same_dimensions(item, items.top()):
                    skipped.append(items.extract())
                continue

            if x > start_x:
                self.logger.debug("no more fit width wise, starting a new row")
                y += row_length
                x = start_x
                row_length = 0
                prev_item = None
                skipped.append(item)
                items = ItemList.from_items(skipped, pre_sorted=True, sorter=items.sorter)
                skipped = []
                continue

            self.logger.debug("no items fit, layer finished")
            skipped.append(item)
            break

        remaining = ItemList.from_items(skipped + items.as_list() + rejected, pre_sorted=True, sorter=items.sorter)
        return layer, remaining


class LayerStabiliser:
    """Reorders finished layers broadest first and recomputes their heights."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def stabilise(self, layers: List[PackedLayer]) -> List[PackedLayer]:
        ordered = sorted(layers, key=lambda layer: (-layer.footprint, -layer.depth))
        stabilised: List[PackedLayer] = []
        current_z = 0
        for old_layer in ordered:
            old_start = old_layer.start_z
            new_layer = PackedLayer()
            for packed in old_layer.items:
                new_layer.insert(replace(packed, z=packed.z - old_start + current_z))
            stabilised.append(new_layer)
            current_z += new_layer.depth
        return stabilised
