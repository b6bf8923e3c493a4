from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, List, Optional

from box_planner.rounding import round_percent

if TYPE_CHECKING:
    from box_planner.constraints import PlacementConstraint
    from box_planner.lists import PackedItemList


UNLIMITED_WEIGHT = sys.maxsize
UNLIMITED_QUANTITY = sys.maxsize

# tip angle of roughly 15 degrees
STABILITY_ANGLE = 0.261


class Rotation(IntEnum):
    NEVER = 1
    KEEP_FLAT = 2
    BEST_FIT = 6


@dataclass(frozen=True, eq=False)
class Item:
    description: str
    width: int
    length: int
    depth: int
    weight: int
    allowed_rotation: Rotation = Rotation.BEST_FIT
    constraint: Optional["PlacementConstraint"] = None

    @property
    def volume(self) -> int:
        return self.width * self.length * self.depth

    @property
    def sorted_dimensions(self) -> tuple[int, int, int]:
        return tuple(sorted((self.width, self.length, self.depth)))

    def permutations(self) -> List[tuple[int, int, int]]:
        w, l, d = self.width, self.length, self.depth
        candidates = [(w, l, d)]
        if self.allowed_rotation in (Rotation.KEEP_FLAT, Rotation.BEST_FIT):
            candidates.append((l, w, d))
        if self.allowed_rotation == Rotation.BEST_FIT:
            candidates.extend([(w, d, l), (l, d, w), (d, w, l), (d, l, w)])
        seen = set()
        result = []
        for dims in candidates:
            if dims in seen:
                continue
            seen.add(dims)
            result.append(dims)
        return result


@dataclass(frozen=True, eq=False)
class Box:
    reference: str
    outer_width: int
    outer_length: int
    outer_depth: int
    empty_weight: int
    inner_width: int
    inner_length: int
    inner_depth: int
    max_weight: int
    quantity_available: Optional[int] = None

    @property
    def inner_volume(self) -> int:
        return self.inner_width * self.inner_length * self.inner_depth

    @property
    def payload_capacity(self) -> int:
        return self.max_weight - self.empty_weight


@dataclass(frozen=True, eq=False)
class WorkingVolume(Box):
    """Leftover space inside a box, used for lookahead simulations only."""

    @classmethod
    def of(cls, width: int, length: int, depth: int, max_weight: int = UNLIMITED_WEIGHT) -> "WorkingVolume":
        return cls(
            reference=f"Working Volume {width}x{length}x{depth}",
            outer_width=width,
            outer_length=length,
            outer_depth=depth,
            empty_weight=0,
            inner_width=width,
            inner_length=length,
            inner_depth=depth,
            max_weight=max_weight,
        )


@dataclass(frozen=True)
class OrientatedItem:
    item: Item
    width: int
    length: int
    depth: int

    @property
    def surface_footprint(self) -> int:
        return self.width * self.length

    @property
    def dimensions(self) -> tuple[int, int, int]:
        return (self.width, self.length, self.depth)

    @property
    def is_stable(self) -> bool:
        return math.atan(min(self.length, self.width) / (self.depth or 1)) > STABILITY_ANGLE

    def is_same_dimensions(self, item: Item) -> bool:
        if item is self.item:
            return True
        return tuple(sorted(self.dimensions)) == item.sorted_dimensions


@dataclass(frozen=True)
class PackedItem:
    item: Item
    x: int
    y: int
    z: int
    width: int
    length: int
    depth: int

    @classmethod
    def from_orientated(cls, orientated: OrientatedItem, x: int, y: int, z: int) -> "PackedItem":
        return cls(
            item=orientated.item,
            x=x,
            y=y,
            z=z,
            width=orientated.width,
            length=orientated.length,
            depth=orientated.depth,
        )

    @property
    def volume(self) -> int:
        return self.width * self.length * self.depth

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "width": self.width,
            "length": self.length,
            "depth": self.depth,
            "item": {
                "description": self.item.description,
                "width": self.item.width,
                "length": self.item.length,
                "depth": self.item.depth,
                "allowedRotation": int(self.item.allowed_rotation),
            },
        }


@dataclass
class PackedLayer:
    items: List[PackedItem] = field(default_factory=list)

    def insert(self, packed_item: PackedItem) -> None:
        self.items.append(packed_item)

    def merge(self, other: "PackedLayer") -> None:
        self.items.extend(other.items)

    @property
    def start_x(self) -> int:
        return min((item.x for item in self.items), default=0)

    @property
    def start_y(self) -> int:
        return min((item.y for item in self.items), default=0)

    @property
    def start_z(self) -> int:
        return min((item.z for item in self.items), default=0)

    @property
    def width(self) -> int:
        return max((item.x + item.width for item in self.items), default=0) - self.start_x

    @property
    def length(self) -> int:
        return max((item.y + item.length for item in self.items), default=0) - self.start_y

    @property
    def depth(self) -> int:
        return max((item.z + item.depth for item in self.items), default=0) - self.start_z

    @property
    def footprint(self) -> int:
        return self.width * self.length

    @property
    def weight(self) -> int:
        return sum(item.item.weight for item in self.items)


@dataclass(eq=False)
class PackedBox:
    box: Box
    items: "PackedItemList"

    @property
    def item_weight(self) -> int:
        return self.items.weight

    @property
    def weight(self) -> int:
        return self.box.empty_weight + self.item_weight

    @property
    def remaining_weight(self) -> int:
        return self.box.max_weight - self.weight

    @property
    def used_width(self) -> int:
        return max((item.x + item.width for item in self.items), default=0)

    @property
    def used_length(self) -> int:
        return max((item.y + item.length for item in self.items), default=0)

    @property
    def used_depth(self) -> int:
        return max((item.z + item.depth for item in self.items), default=0)

    @property
    def remaining_width(self) -> int:
        return self.box.inner_width - self.used_width

    @property
    def remaining_length(self) -> int:
        return self.box.inner_length - self.used_length

    @property
    def remaining_depth(self) -> int:
        return self.box.inner_depth - self.used_depth

    @property
    def inner_volume(self) -> int:
        return self.box.inner_volume

    @property
    def used_volume(self) -> int:
        return self.items.volume

    @property
    def unused_volume(self) -> int:
        return self.inner_volume - self.used_volume

    @property
    def volume_utilisation(self) -> float:
        return round_percent(self.used_volume, self.inner_volume)

    def to_dict(self) -> dict:
        return {
            "box": {
                "reference": self.box.reference,
                "innerWidth": self.box.inner_width,
                "innerLength": self.box.inner_length,
                "innerDepth": self.box.inner_depth,
            },
            "items": [packed.to_dict() for packed in self.items],
        }


@dataclass
class ItemRow:
    description: str
    qty: int
    width: int
    length: int
    depth: int
    weight: int
    allowed_rotation: Rotation = Rotation.BEST_FIT
    max_per_box: Optional[int] = None
    no_stacking: bool = False
