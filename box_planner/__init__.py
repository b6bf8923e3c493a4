from box_planner.config import PackerSettings, SettingsError, build_packer, load_settings_yaml
from box_planner.constraints import MaxCountPerBox, NoStackingOnSameType, PlacementConstraint
from box_planner.errors import ItemTooLargeError, NoBoxesAvailableError, PackingError, PackingTimeoutError
from box_planner.io import CatalogInputError, expand_items, load_box_catalog_yaml, load_items_csv, normalize_item_rows
from box_planner.models import Box, Item, PackedBox, PackedItem, Rotation, WorkingVolume
from box_planner.packing import VolumePacker
from box_planner.planner import InfalliblePacker, Packer, PackerState
from box_planner.redistribution import WeightRedistributor
from box_planner.reporting import (
    build_box_summary_rows,
    build_placement_rows,
    build_unpacked_rows,
    build_visualiser_payload,
)
from box_planner.timeout import DefaultTimeoutChecker

__all__ = [
    "PackerSettings",
    "SettingsError",
    "build_packer",
    "load_settings_yaml",
    "MaxCountPerBox",
    "NoStackingOnSameType",
    "PlacementConstraint",
    "ItemTooLargeError",
    "NoBoxesAvailableError",
    "PackingError",
    "PackingTimeoutError",
    "CatalogInputError",
    "expand_items",
    "load_box_catalog_yaml",
    "load_items_csv",
    "normalize_item_rows",
    "Box",
    "Item",
    "PackedBox",
    "PackedItem",
    "Rotation",
    "WorkingVolume",
    "VolumePacker",
    "InfalliblePacker",
    "Packer",
    "PackerState",
    "build_box_summary_rows",
    "build_placement_rows",
    "build_unpacked_rows",
    "build_visualiser_payload",
    "WeightRedistributor",
    "DefaultTimeoutChecker",
]
