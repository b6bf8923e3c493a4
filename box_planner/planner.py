from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional

from box_planner.errors import ItemTooLargeError, NoBoxesAvailableError, PackingError
from box_planner.lists import BoxList, ItemList, PackedBoxList, PackedItemList
from box_planner.models import UNLIMITED_QUANTITY, Box, Item, PackedBox
from box_planner.orientation import OrientatedItemFactory, PackingCache
from box_planner.packing import VolumePacker
from box_planner.redistribution import WeightRedistributor
from box_planner.sorting import (
    BoxSorter,
    DefaultPackedBoxSorter,
    ItemSorter,
    PackedBoxSorter,
)
from box_planner.timeout import TimeoutChecker

DEFAULT_MAX_BOXES_TO_BALANCE_WEIGHT = 12


class PackerState(str, Enum):
    ACCUMULATING = "accumulating"
    PACKING = "packing"
    DONE = "done"
    FAILED = "failed"


class Packer:
    def __init__(
        self,
        item_sorter: Optional[ItemSorter] = None,
        box_sorter: Optional[BoxSorter] = None,
        packed_box_sorter: Optional[PackedBoxSorter] = None,
        logger: Optional[logging.Logger] = None,
        max_boxes_to_balance_weight: int = DEFAULT_MAX_BOXES_TO_BALANCE_WEIGHT,
        timeout_checker: Optional[TimeoutChecker] = None,
        enforce_single_box: bool = False,
    ):
        self.enforce_single_box = enforce_single_box
        self.item_sorter = item_sorter
        self.box_sorter = box_sorter
        self.packed_box_sorter = packed_box_sorter or DefaultPackedBoxSorter()
        self.logger = logger or logging.getLogger(__name__)
        self.max_boxes_to_balance_weight = max_boxes_to_balance_weight
        self.timeout_checker = timeout_checker
        self.items = ItemList(item_sorter)
        self.boxes = BoxList(box_sorter)
        self.box_quantities: Dict[Box, int] = {}
        self.state = PackerState.ACCUMULATING

    def add_item(self, item: Item, qty: int = 1) -> None:
        """Queue ``qty`` copies of ``item``; every copy is a distinct object."""
        for i in range(qty):
            self.items.insert(item if i == 0 else replace(item))
        self.logger.info("added %d x %s", qty, item.description)

    def set_items(self, items: Iterable[Item]) -> None:
        self.items = ItemList.from_items(items, sorter=self.item_sorter)

    def add_box(self, box: Box) -> None:
        self.boxes.insert(box)
        self.box_quantities[box] = UNLIMITED_QUANTITY if box.quantity_available is None else box.quantity_available
        self.logger.info("added box %s", box.reference)

    def set_boxes(self, boxes: Iterable[Box]) -> None:
        self.boxes = BoxList(self.box_sorter)
        self.box_quantities = {}
        for box in boxes:
            self.boxes.insert(box)
            self.box_quantities[box] = UNLIMITED_QUANTITY if box.quantity_available is None else box.quantity_available

    def set_box_quantity(self, box: Box, qty: int) -> None:
        self.box_quantities[box] = qty

    def set_max_boxes_to_balance_weight(self, max_boxes: int) -> None:
        self.max_boxes_to_balance_weight = max_boxes

    def set_timeout_checker(self, timeout_checker: Optional[TimeoutChecker]) -> None:
        self.timeout_checker = timeout_checker

    def set_logger(self, logger: logging.Logger) -> None:
        self.logger = logger

    def pack(self) -> PackedBoxList:
        if self.timeout_checker is not None:
            self.timeout_checker.start()
        return self._pack_items()

    def _pack_items(self) -> PackedBoxList:
        """One packing attempt against a timeout budget that is already running."""
        self.state = PackerState.PACKING
        self.logger.info("packing %d item(s) into %d box type(s)", len(self.items), len(self.boxes))
        cache = PackingCache()
        try:
            self.precheck(cache)
            packed_boxes = self.pack_basic(self.enforce_single_box, cache=cache)
            if len(packed_boxes) == 0 and len(self.items) > 0:
                raise NoBoxesAvailableError(self.items.as_list())
            if 1 < len(packed_boxes) <= self.max_boxes_to_balance_weight:
                redistributor = WeightRedistributor(
                    self.boxes,
                    self.box_quantities,
                    item_sorter=self.item_sorter,
                    box_sorter=self.box_sorter,
                    packed_box_sorter=self.packed_box_sorter,
                    cache=cache,
                    logger=self.logger,
                    timeout_checker=self.timeout_checker,
                )
                packed_boxes = redistributor.redistribute_weight(packed_boxes)
        except PackingError:
            self.state = PackerState.FAILED
            raise
        self.state = PackerState.DONE
        self.logger.info("packing completed, %d box(es)", len(packed_boxes))
        return packed_boxes

    def pack_box(self, box: Box, items: Optional[Iterable[Item]] = None) -> PackedBox:
        """Pack as much as possible into a single box, ignoring the catalog."""
        queue = self.items if items is None else ItemList.from_items(items, sorter=self.item_sorter)
        packer = VolumePacker(box, queue, logger=self.logger, timeout_checker=self.timeout_checker)
        return packer.pack()

    def precheck(self, cache: Optional[PackingCache] = None) -> None:
        """Raise ItemTooLargeError for the first item that fits no box even when packed alone."""
        cache = cache if cache is not None else PackingCache()
        for item in self.items:
            if not any(self._fits_alone(item, box, cache) for box in self.boxes):
                self.logger.warning("%s does not fit into any box", item.description)
                raise ItemTooLargeError(item)

    def _fits_alone(self, item: Item, box: Box, cache: PackingCache) -> bool:
        key = (item.width, item.length, item.depth, int(item.allowed_rotation), item.weight, id(box))
        if key in cache.fits_alone and item.constraint is None:
            return cache.fits_alone[key]
        fits = False
        if item.weight <= box.payload_capacity:
            # the box as given only; turning it sideways would turn a Never item too
            factory = OrientatedItemFactory(box, cache=cache, logger=self.logger)
            fits = bool(
                factory.get_possible_orientations(
                    item, None, box.inner_width, box.inner_length, box.inner_depth, 0, 0, 0, PackedItemList()
                )
            )
        cache.fits_alone[key] = fits
        return fits

    def _candidate_boxes(self, items: ItemList, quantities: Dict[Box, int], enforce_single_box: bool) -> List[Box]:
        item_volume = items.volume
        preferred: List[Box] = []
        others: List[Box] = []
        for box in self.boxes:
            if quantities.get(box, UNLIMITED_QUANTITY) <= 0:
                continue
            if box.inner_volume >= item_volume:
                preferred.append(box)
            elif not enforce_single_box:
                others.append(box)
        return preferred + others

    def pack_basic(self, enforce_single_box: bool = False, cache: Optional[PackingCache] = None) -> PackedBoxList:
        """Pack round by round without weight balancing.

        With ``enforce_single_box`` only boxes that could hold everything are
        tried, and a stalled round returns an empty list instead of raising.
        """
        cache = cache if cache is not None else PackingCache()
        items = self.items.copy()
        quantities = dict(self.box_quantities)
        packed_boxes = PackedBoxList(self.packed_box_sorter)

        while len(items) > 0:
            candidates: List[PackedBox] = []
            for box in self._candidate_boxes(items, quantities, enforce_single_box):
                if self.timeout_checker is not None:
                    self.timeout_checker.throw_on_timeout(f"Timed out evaluating box {box.reference}")
                packer = VolumePacker(
                    box, items, cache=cache, logger=self.logger, timeout_checker=self.timeout_checker
                )
                packed_box = packer.pack()
                self.logger.debug(
                    "box %s takes %d of %d item(s)", box.reference, len(packed_box.items), len(items)
                )
                if len(packed_box.items) > 0:
                    candidates.append(packed_box)
                    if len(packed_box.items) == len(items):
                        break

            if not candidates:
                if enforce_single_box:
                    return PackedBoxList(self.packed_box_sorter)
                raise NoBoxesAvailableError(items.as_list())

            best = sorted(candidates, key=cmp_to_key(self.packed_box_sorter.compare))[0]
            items.remove_packed_items(best.items)
            packed_boxes.insert(best)
            quantities[best.box] = quantities.get(best.box, UNLIMITED_QUANTITY) - 1
            self.logger.info(
                "packed %d item(s) into %s, %d remaining", len(best.items), best.box.reference, len(items)
            )

        return packed_boxes


class InfalliblePacker(Packer):
    """Packer that sets aside unpackable items instead of failing."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.unpacked_items = ItemList(self.item_sorter)

    def pack(self) -> PackedBoxList:
        self.unpacked_items = ItemList(self.item_sorter)
        # one budget covers every retry
        if self.timeout_checker is not None:
            self.timeout_checker.start()
        original_items = self.items
        working = self.items.copy()
        try:
            while True:
                self.items = working
                try:
                    return self._pack_items()
                except ItemTooLargeError as exc:
                    self._set_aside([exc.item], working)
                except NoBoxesAvailableError as exc:
                    self._set_aside(exc.items, working)
        finally:
            self.items = original_items

    def _set_aside(self, items: Iterable[Item], working: ItemList) -> None:
        for item in items:
            self.logger.warning("%s could not be packed", item.description)
            self.unpacked_items.insert(item)
            working.remove(item)
