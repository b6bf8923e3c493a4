from __future__ import annotations

from typing import Iterable

import pandas as pd

from box_planner.models import Item, PackedBox


def label_box(reference: str, index: int) -> str:
    return f"{reference} #{index}"


def build_placement_rows(packed_boxes: Iterable[PackedBox]) -> pd.DataFrame:
    rows = []
    for index, packed_box in enumerate(packed_boxes, start=1):
        for packed in packed_box.items:
            item = packed.item
            rows.append(
                {
                    "box_label": label_box(packed_box.box.reference, index),
                    "box_reference": packed_box.box.reference,
                    "box_index": index,
                    "description": item.description,
                    "width": item.width,
                    "length": item.length,
                    "depth": item.depth,
                    "weight": item.weight,
                    "rotation": item.allowed_rotation.name,
                    "x": packed.x,
                    "y": packed.y,
                    "z": packed.z,
                    "packed_width": packed.width,
                    "packed_length": packed.length,
                    "packed_depth": packed.depth,
                }
            )
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    df = df.sort_values(by=["box_index", "z", "y", "x"], kind="stable")
    return df.reset_index(drop=True)


def build_box_summary_rows(packed_boxes: Iterable[PackedBox]) -> pd.DataFrame:
    rows = []
    for index, packed_box in enumerate(packed_boxes, start=1):
        rows.append(
            {
                "box_label": label_box(packed_box.box.reference, index),
                "box_reference": packed_box.box.reference,
                "box_index": index,
                "item_count": len(packed_box.items),
                "gross_weight": packed_box.weight,
                "item_weight": packed_box.item_weight,
                "remaining_weight": packed_box.remaining_weight,
                "used_volume": packed_box.used_volume,
                "unused_volume": packed_box.unused_volume,
                "volume_utilisation_pct": packed_box.volume_utilisation,
            }
        )
    return pd.DataFrame(rows)


def build_unpacked_rows(items: Iterable[Item]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "description": item.description,
                "width": item.width,
                "length": item.length,
                "depth": item.depth,
                "weight": item.weight,
                "rotation": item.allowed_rotation.name,
            }
            for item in items
        ]
    )


def build_visualiser_payload(packed_boxes: Iterable[PackedBox]) -> dict:
    """Compact JSON document: an item table plus per-box placements referencing it."""
    item_ids: dict[tuple, int] = {}
    item_table = []
    boxes = []
    for packed_box in packed_boxes:
        placements = []
        for packed in packed_box.items:
            item = packed.item
            key = (item.description, item.width, item.length, item.depth)
            if key not in item_ids:
                item_ids[key] = len(item_table)
                item_table.append(
                    {
                        "description": item.description,
                        "width": item.width,
                        "length": item.length,
                        "depth": item.depth,
                    }
                )
            placements.append([item_ids[key], packed.x, packed.y, packed.z, packed.width, packed.length, packed.depth])
        boxes.append(
            {
                "reference": packed_box.box.reference,
                "innerWidth": packed_box.box.inner_width,
                "innerLength": packed_box.box.inner_length,
                "innerDepth": packed_box.box.inner_depth,
                "items": placements,
            }
        )
    return {"items": item_table, "boxes": boxes}
