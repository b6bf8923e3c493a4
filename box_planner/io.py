from __future__ import annotations

import io
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

import pandas as pd
import yaml

from box_planner.constraints import MaxCountPerBox, NoStackingOnSameType, PlacementConstraint
from box_planner.models import Box, Item, ItemRow, Rotation
from box_planner.rounding import ceil_int, to_decimal

ITEM_REQUIRED_COLUMNS = [
    "description",
    "qty",
    "width",
    "length",
    "depth",
    "weight",
]

ITEM_OPTIONAL_COLUMNS = {
    "rotation": "",
    "keep_flat": None,
    "max_per_box": None,
    "no_stacking": False,
}

BOX_REQUIRED_COLUMNS = [
    "reference",
    "outer_width",
    "outer_length",
    "outer_depth",
    "empty_weight",
    "inner_width",
    "inner_length",
    "inner_depth",
    "max_weight",
]

MAX_DIM = Decimal("100000")
MAX_WEIGHT = Decimal("100000000")
MAX_QTY = 10000

COLUMN_ALIASES = {
    "desc": "description",
    "description": "description",
    "name": "description",
    "item": "description",
    "qty": "qty",
    "quantity": "qty",
    "w": "width",
    "width": "width",
    "l": "length",
    "length": "length",
    "d": "depth",
    "h": "depth",
    "depth": "depth",
    "height": "depth",
    "weight": "weight",
    "rotation": "rotation",
    "allowedrotation": "rotation",
    "keepflat": "keep_flat",
    "maxperbox": "max_per_box",
    "nostacking": "no_stacking",
    "ref": "reference",
    "reference": "reference",
    "outerwidth": "outer_width",
    "outerlength": "outer_length",
    "outerdepth": "outer_depth",
    "emptyweight": "empty_weight",
    "innerwidth": "inner_width",
    "innerlength": "inner_length",
    "innerdepth": "inner_depth",
    "maxweight": "max_weight",
    "available": "qty",
}

ROTATION_NAMES = {
    "never": Rotation.NEVER,
    "keep_flat": Rotation.KEEP_FLAT,
    "keepflat": Rotation.KEEP_FLAT,
    "best_fit": Rotation.BEST_FIT,
    "bestfit": Rotation.BEST_FIT,
    "1": Rotation.NEVER,
    "2": Rotation.KEEP_FLAT,
    "6": Rotation.BEST_FIT,
}


class CatalogInputError(ValueError):
    pass


def _normalize_column_name(name: str) -> str:
    return "".join(ch for ch in str(name).strip() if ch.isalnum()).lower()


def _apply_column_aliases(df: pd.DataFrame) -> pd.DataFrame:
    rename_map: dict[str, str] = {}
    for col in df.columns:
        target = COLUMN_ALIASES.get(_normalize_column_name(col))
        if target and target != col:
            rename_map[col] = target
    if rename_map:
        df = df.rename(columns=rename_map)
    return df


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


def _parse_bool(value, default: bool) -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    return default


def _parse_rotation(rotation, keep_flat, row_no: int) -> Rotation:
    if not _is_blank(rotation):
        text = str(rotation).strip().lower().replace("-", "_").replace(" ", "_")
        if text.endswith(".0"):
            text = text[:-2]
        if text not in ROTATION_NAMES:
            raise CatalogInputError(f"unknown rotation '{rotation}' (row {row_no})")
        return ROTATION_NAMES[text]
    if _parse_bool(keep_flat, False):
        return Rotation.KEEP_FLAT
    return Rotation.BEST_FIT


def _parse_units(row, field_name: str, row_no: int) -> int:
    raw = row.get(field_name)
    if _is_blank(raw):
        raise CatalogInputError(f"{field_name} is missing (row {row_no})")
    try:
        return ceil_int(to_decimal(raw))
    except (InvalidOperation, ValueError) as exc:
        raise CatalogInputError(f"{field_name} value '{raw}' is not a number (row {row_no})") from exc


def _parse_count(row, field_name: str, row_no: int) -> Optional[int]:
    raw = row.get(field_name)
    if _is_blank(raw):
        return None
    try:
        value = to_decimal(raw)
    except (InvalidOperation, ValueError) as exc:
        raise CatalogInputError(f"{field_name} value '{raw}' is not an integer (row {row_no})") from exc
    if value != value.to_integral_value():
        raise CatalogInputError(f"{field_name} value '{raw}' is not an integer (row {row_no})")
    return int(value)


def load_items_csv(content: str) -> pd.DataFrame:
    return _apply_column_aliases(pd.read_csv(io.StringIO(content)))


def load_boxes_csv(content: str) -> pd.DataFrame:
    return _apply_column_aliases(pd.read_csv(io.StringIO(content)))


def _ensure_columns(df: pd.DataFrame, required: list[str], optional: Optional[dict] = None) -> pd.DataFrame:
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise CatalogInputError(f"missing required columns: {', '.join(missing)}")
    df = df.copy()
    for col, default in (optional or {}).items():
        if col not in df.columns:
            df[col] = default
    return df


def normalize_item_rows(df: pd.DataFrame) -> list[ItemRow]:
    df = _apply_column_aliases(df)
    df = _ensure_columns(df, ITEM_REQUIRED_COLUMNS, ITEM_OPTIONAL_COLUMNS)
    rows: list[ItemRow] = []
    for row_no, (_, row) in enumerate(df.iterrows(), start=1):
        qty = _parse_count(row, "qty", row_no)
        if qty is None or qty <= 0:
            raise CatalogInputError(f"qty must be 1 or more (row {row_no})")
        if qty > MAX_QTY:
            raise CatalogInputError(f"qty exceeds the limit of {MAX_QTY} (row {row_no})")

        width = _parse_units(row, "width", row_no)
        length = _parse_units(row, "length", row_no)
        depth = _parse_units(row, "depth", row_no)
        weight = _parse_units(row, "weight", row_no)
        for label, value in (("width", width), ("length", length), ("depth", depth)):
            if value <= 0:
                raise CatalogInputError(f"{label} must be greater than 0 (row {row_no})")
            if value > MAX_DIM:
                raise CatalogInputError(f"{label} exceeds the limit of {MAX_DIM} (row {row_no})")
        if weight < 0:
            raise CatalogInputError(f"weight must be 0 or more (row {row_no})")
        if weight > MAX_WEIGHT:
            raise CatalogInputError(f"weight exceeds the limit of {MAX_WEIGHT} (row {row_no})")

        max_per_box = _parse_count(row, "max_per_box", row_no)
        if max_per_box is not None and max_per_box <= 0:
            raise CatalogInputError(f"max_per_box must be 1 or more (row {row_no})")

        description = row.get("description")
        if _is_blank(description):
            raise CatalogInputError(f"description is missing (row {row_no})")

        rows.append(
            ItemRow(
                description=str(description).strip(),
                qty=qty,
                width=width,
                length=length,
                depth=depth,
                weight=weight,
                allowed_rotation=_parse_rotation(row.get("rotation"), row.get("keep_flat"), row_no),
                max_per_box=max_per_box,
                no_stacking=_parse_bool(row.get("no_stacking"), False),
            )
        )
    return rows


def _constraint_for(row: ItemRow) -> Optional[PlacementConstraint]:
    # one constraint per item; a count limit wins over the stacking rule
    if row.max_per_box is not None:
        return MaxCountPerBox(row.max_per_box)
    if row.no_stacking:
        return NoStackingOnSameType()
    return None


def expand_items(rows: Iterable[ItemRow]) -> list[Item]:
    """One distinct Item object per unit of quantity."""
    items: list[Item] = []
    for row in rows:
        prototype = Item(
            description=row.description,
            width=row.width,
            length=row.length,
            depth=row.depth,
            weight=row.weight,
            allowed_rotation=row.allowed_rotation,
            constraint=_constraint_for(row),
        )
        items.append(prototype)
        for _ in range(row.qty - 1):
            items.append(replace(prototype))
    return items


def _box_from_mapping(data, row_no: int) -> Box:
    reference = data.get("reference")
    if _is_blank(reference):
        raise CatalogInputError(f"reference is missing (row {row_no})")
    values = {name: _parse_units(data, name, row_no) for name in BOX_REQUIRED_COLUMNS if name != "reference"}
    for name in ("outer_width", "outer_length", "outer_depth", "inner_width", "inner_length", "inner_depth"):
        if values[name] <= 0:
            raise CatalogInputError(f"{name} must be greater than 0 (row {row_no})")
    for inner, outer in (("inner_width", "outer_width"), ("inner_length", "outer_length"), ("inner_depth", "outer_depth")):
        if values[inner] > values[outer]:
            raise CatalogInputError(f"{inner} is larger than {outer} (row {row_no})")
    if values["empty_weight"] < 0:
        raise CatalogInputError(f"empty_weight must be 0 or more (row {row_no})")
    if values["max_weight"] < values["empty_weight"]:
        raise CatalogInputError(f"max_weight is less than empty_weight (row {row_no})")
    quantity = _parse_count(data, "qty", row_no)
    if quantity is not None and quantity < 0:
        raise CatalogInputError(f"quantity must be 0 or more (row {row_no})")
    return Box(reference=str(reference).strip(), quantity_available=quantity, **values)


def normalize_box_rows(df: pd.DataFrame) -> list[Box]:
    df = _apply_column_aliases(df)
    df = _ensure_columns(df, BOX_REQUIRED_COLUMNS)
    return [_box_from_mapping(row, row_no) for row_no, (_, row) in enumerate(df.iterrows(), start=1)]


def load_box_catalog_yaml(text: str) -> list[Box]:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise CatalogInputError(f"box catalog is not valid YAML: {exc}") from exc
    entries = data.get("boxes", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise CatalogInputError("boxes must be a list")
    boxes: list[Box] = []
    for row_no, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise CatalogInputError(f"box entry must be a mapping (row {row_no})")
        normalized = {COLUMN_ALIASES.get(_normalize_column_name(key), key): value for key, value in entry.items()}
        boxes.append(_box_from_mapping(normalized, row_no))
    return boxes
