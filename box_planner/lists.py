from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable, Iterator, List, Optional

from box_planner.models import Box, Item, PackedBox, PackedItem
from box_planner.rounding import round_percent, round_tenth
from box_planner.sorting import (
    BoxSorter,
    DefaultBoxSorter,
    DefaultItemSorter,
    DefaultPackedBoxSorter,
    ItemSorter,
    PackedBoxSorter,
)


class ItemList:
    """Items waiting to be packed, kept in sorter order (sorted lazily)."""

    def __init__(self, sorter: Optional[ItemSorter] = None):
        self.sorter = sorter or DefaultItemSorter()
        self._items: List[Item] = []
        self._sorted = True

    @classmethod
    def from_items(cls, items: Iterable[Item], pre_sorted: bool = False, sorter: Optional[ItemSorter] = None) -> "ItemList":
        result = cls(sorter)
        result._items = list(items)
        result._sorted = pre_sorted
        return result

    def _ensure_sorted(self) -> None:
        if not self._sorted:
            self._items.sort(key=cmp_to_key(self.sorter.compare))
            self._sorted = True

    def insert(self, item: Item) -> None:
        self._items.append(item)
        self._sorted = False

    def extract(self) -> Item:
        self._ensure_sorted()
        return self._items.pop(0)

    def top(self) -> Item:
        self._ensure_sorted()
        return self._items[0]

    def top_n(self, n: int) -> "ItemList":
        self._ensure_sorted()
        return ItemList.from_items(self._items[:n], pre_sorted=True, sorter=self.sorter)

    def remove(self, item: Item) -> None:
        for idx, candidate in enumerate(self._items):
            if candidate is item:
                del self._items[idx]
                return
        raise ValueError(f"Item {item.description} is not in the list")

    def remove_packed_items(self, packed_items: Iterable[PackedItem]) -> None:
        packed_ids = {id(packed.item) for packed in packed_items}
        self._items = [item for item in self._items if id(item) not in packed_ids]

    def copy(self) -> "ItemList":
        self._ensure_sorted()
        return ItemList.from_items(self._items, pre_sorted=True, sorter=self.sorter)

    def as_list(self) -> List[Item]:
        self._ensure_sorted()
        return list(self._items)

    @property
    def volume(self) -> int:
        return sum(item.volume for item in self._items)

    @property
    def weight(self) -> int:
        return sum(item.weight for item in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Item]:
        self._ensure_sorted()
        return iter(list(self._items))


class BoxList:
    def __init__(self, sorter: Optional[BoxSorter] = None):
        self.sorter = sorter or DefaultBoxSorter()
        self._boxes: List[Box] = []

    @classmethod
    def from_boxes(cls, boxes: Iterable[Box], sorter: Optional[BoxSorter] = None) -> "BoxList":
        result = cls(sorter)
        for box in boxes:
            result.insert(box)
        return result

    def insert(self, box: Box) -> None:
        self._boxes.append(box)

    def __len__(self) -> int:
        return len(self._boxes)

    def __iter__(self) -> Iterator[Box]:
        return iter(sorted(self._boxes, key=cmp_to_key(self.sorter.compare)))


class PackedItemList:
    def __init__(self, items: Iterable[PackedItem] = ()):
        self._items: List[PackedItem] = list(items)

    def insert(self, packed_item: PackedItem) -> None:
        self._items.append(packed_item)

    def copy(self) -> "PackedItemList":
        return PackedItemList(self._items)

    def as_items(self) -> List[Item]:
        return [packed.item for packed in self._items]

    @property
    def weight(self) -> int:
        return sum(packed.item.weight for packed in self._items)

    @property
    def volume(self) -> int:
        return sum(packed.volume for packed in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[PackedItem]:
        return iter(list(self._items))


class PackedBoxList:
    """The packing result: packed boxes in sorter order."""

    def __init__(self, sorter: Optional[PackedBoxSorter] = None):
        self.sorter = sorter or DefaultPackedBoxSorter()
        self._boxes: List[PackedBox] = []
        self._sorted = True

    def insert(self, packed_box: PackedBox) -> None:
        self._boxes.append(packed_box)
        self._sorted = False

    def insert_all(self, packed_boxes: Iterable[PackedBox]) -> None:
        for packed_box in packed_boxes:
            self.insert(packed_box)

    def _ensure_sorted(self) -> None:
        if not self._sorted:
            self._boxes.sort(key=cmp_to_key(self.sorter.compare))
            self._sorted = True

    def top(self) -> PackedBox:
        self._ensure_sorted()
        return self._boxes[0]

    def __len__(self) -> int:
        return len(self._boxes)

    def __iter__(self) -> Iterator[PackedBox]:
        self._ensure_sorted()
        return iter(list(self._boxes))

    @property
    def total_weight(self) -> int:
        return sum(packed_box.weight for packed_box in self._boxes)

    @property
    def mean_weight(self) -> float:
        if not self._boxes:
            return 0.0
        return self.total_weight / len(self._boxes)

    @property
    def mean_item_weight(self) -> float:
        if not self._boxes:
            return 0.0
        return sum(packed_box.item_weight for packed_box in self._boxes) / len(self._boxes)

    @property
    def weight_variance(self) -> float:
        if not self._boxes:
            return 0.0
        mean = self.mean_weight
        variance = sum((packed_box.weight - mean) ** 2 for packed_box in self._boxes) / len(self._boxes)
        return round_tenth(variance)

    @property
    def volume_utilisation(self) -> float:
        used = sum(packed_box.used_volume for packed_box in self._boxes)
        inner = sum(packed_box.inner_volume for packed_box in self._boxes)
        return round_percent(used, inner)

    def to_dict(self) -> list:
        return [packed_box.to_dict() for packed_box in self]
