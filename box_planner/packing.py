from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Iterable, List, Optional

from box_planner.layers import LayerPacker, LayerStabiliser
from box_planner.lists import ItemList, PackedItemList
from box_planner.models import Box, Item, PackedBox, PackedLayer
from box_planner.orientation import PackingCache

if TYPE_CHECKING:
    from box_planner.timeout import TimeoutChecker


class VolumePacker:
    """Packs as many of the given items as possible into a single box.

    ``box_is_rotated`` marks a box already given with width and length swapped,
    as the lookahead volumes of a rotated trial are.
    """

    def __init__(
        self,
        box: Box,
        items: ItemList | Iterable[Item],
        cache: Optional[PackingCache] = None,
        single_pass: bool = False,
        logger: Optional[logging.Logger] = None,
        timeout_checker: Optional["TimeoutChecker"] = None,
        box_is_rotated: bool = False,
    ):
        self.box = box
        self.box_is_rotated = box_is_rotated
        if isinstance(items, ItemList):
            self.items = items.copy()
        else:
            self.items = ItemList.from_items(items)
        self.cache = cache if cache is not None else PackingCache()
        self.single_pass = single_pass
        self.logger = logger or logging.getLogger(__name__)
        self.timeout_checker = timeout_checker
        self.layer_packer = LayerPacker(
            box, cache=self.cache, single_pass=single_pass, logger=self.logger, timeout_checker=timeout_checker
        )
        self.stabiliser = LayerStabiliser(logger=self.logger)
        self.has_constrained_items = any(item.constraint is not None for item in self.items)

    def pack(self) -> PackedBox:
        self.logger.debug("evaluating box %s", self.box.reference)
        rotations = [False]
        if not self.single_pass and self.box.inner_width != self.box.inner_length:
            rotations.append(True)

        trials: List[PackedBox] = []
        for rotated in rotations:
            if rotated:
                width, length = self.box.inner_length, self.box.inner_width
            else:
                width, length = self.box.inner_width, self.box.inner_length
            trial = self._pack_rotation(width, length, rotated)
            if len(trial.items) == len(self.items):
                return trial
            trials.append(trial)

        # max() keeps the first trial on a tie
        return max(trials, key=lambda packed_box: packed_box.volume_utilisation)

    def _pack_rotation(self, width: int, length: int, rotated: bool) -> PackedBox:
        self.logger.debug("packing %s as %dx%d", self.box.reference, width, length)
        # Never items keep their source order once the trial is swapped back
        self.layer_packer.set_box_is_rotated(rotated != self.box_is_rotated)
        layers: List[PackedLayer] = []
        items = self.items.copy()
        inner_depth = self.box.inner_depth

        while len(items) > 0:
            if self.timeout_checker is not None:
                self.timeout_checker.throw_on_timeout(f"Timed out packing box {self.box.reference}")

            start_z = sum(layer.depth for layer in layers)
            packed_items = self._packed_item_list(layers)

            # a preliminary pass discovers how deep this layer wants to be
            preliminary, preliminary_items = self.layer_packer.pack_layer(
                items.copy(), packed_items.copy(), 0, 0, start_z, width, length, inner_depth - start_z, 0
            )
            if not preliminary.items:
                break

            if preliminary.depth == preliminary.items[0].depth:
                layer, items = preliminary, preliminary_items
            else:
                layer, items = self.layer_packer.pack_layer(
                    items, packed_items, 0, 0, start_z, width, length, inner_depth - start_z, preliminary.depth
                )
                if not layer.items:
                    break
            layers.append(layer)
            self.logger.debug(
                "layer %d finished for %s: %d item(s), depth %d",
                len(layers),
                self.box.reference,
                len(layer.items),
                layer.depth,
            )

        if rotated:
            layers = self._unrotate(layers)
        if not self.single_pass and not self.has_constrained_items:
            layers = self.stabiliser.stabilise(layers)

        return PackedBox(self.box, self._packed_item_list(layers))

    @staticmethod
    def _unrotate(layers: List[PackedLayer]) -> List[PackedLayer]:
        corrected = []
        for layer in layers:
            new_layer = PackedLayer()
            for packed in layer.items:
                new_layer.insert(
                    replace(packed, x=packed.y, y=packed.x, width=packed.length, length=packed.width)
                )
            corrected.append(new_layer)
        return corrected

    @staticmethod
    def _packed_item_list(layers: List[PackedLayer]) -> PackedItemList:
        packed_items = PackedItemList()
        for layer in layers:
            for packed in layer.items:
                packed_items.insert(packed)
        return packed_items
