from __future__ import annotations

import json
import logging
from pathlib import Path

import pandas as pd
from pandas.errors import EmptyDataError
import pydeck as pdk
import streamlit as st

from box_planner import (
    CatalogInputError,
    InfalliblePacker,
    ItemTooLargeError,
    NoBoxesAvailableError,
    PackerSettings,
    PackingTimeoutError,
    SettingsError,
    build_box_summary_rows,
    build_packer,
    build_placement_rows,
    build_unpacked_rows,
    build_visualiser_payload,
    expand_items,
    load_box_catalog_yaml,
    load_items_csv,
    load_settings_yaml,
    normalize_item_rows,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("box_planner.app")

st.set_page_config(page_title="Box Packing Planner", layout="wide")
st.title("Box Packing Planner")
st.caption("Load a box catalog and a packing list, then work out which boxes to use and where each item goes.")

# Units are whatever the catalog uses (mm and g in the samples)
DEFAULT_BOXES_YAML = """
boxes:
  - reference: Small parcel
    outer_width: 300
    outer_length: 300
    outer_depth: 100
    empty_weight: 200
    inner_width: 296
    inner_length: 296
    inner_depth: 96
    max_weight: 10000
  - reference: Medium carton
    outer_width: 400
    outer_length: 300
    outer_depth: 300
    empty_weight: 400
    inner_width: 396
    inner_length: 296
    inner_depth: 296
    max_weight: 20000
  - reference: Large carton
    outer_width: 600
    outer_length: 400
    outer_depth: 400
    empty_weight: 700
    inner_width: 596
    inner_length: 396
    inner_depth: 396
    max_weight: 30000
""".strip()

ITEM_COLUMNS = ["description", "qty", "width", "length", "depth", "weight", "rotation", "max_per_box", "no_stacking"]
ROTATION_CHOICES = ["best_fit", "keep_flat", "never"]


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _empty_items_df() -> pd.DataFrame:
    return pd.DataFrame(columns=ITEM_COLUMNS)


def _normalize_items_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for col in ITEM_COLUMNS:
        if col not in out.columns:
            out[col] = None
    out = out[ITEM_COLUMNS]
    if out.empty:
        return _empty_items_df()
    out["rotation"] = out["rotation"].fillna("best_fit")
    out["no_stacking"] = out["no_stacking"].fillna(False)
    return out


def _box_chart(placements: pd.DataFrame) -> pdk.Deck:
    chart_data = placements[["x", "y", "z", "packed_width", "packed_length", "packed_depth", "description"]].copy()
    chart_data["centre_x"] = chart_data["x"] + chart_data["packed_width"] / 2
    chart_data["centre_y"] = chart_data["y"] + chart_data["packed_length"] / 2
    chart_data["top"] = chart_data["z"] + chart_data["packed_depth"]
    return pdk.Deck(
        map_style=None,
        views=[pdk.View(type="OrbitView", controller=True)],
        initial_view_state=pdk.ViewState(target=[0, 0, 0], zoom=0, rotation_orbit=30, rotation_x=30),
        layers=[
            pdk.Layer(
                "ColumnLayer",
                data=chart_data,
                get_position="[centre_x, centre_y]",
                get_elevation="top",
                elevation_scale=1,
                radius=10,
                disk_resolution=4,
                extruded=True,
                get_fill_color="[0, 120, 255, 160]",
                pickable=True,
                auto_highlight=True,
            )
        ],
        tooltip={"text": "{description}\nz={z} top={top}"},
    )


def _render_results(packed_boxes, unpacked_items) -> None:
    summary_df = build_box_summary_rows(packed_boxes)
    placement_df = build_placement_rows(packed_boxes)

    st.subheader("Boxes used")
    metric_col1, metric_col2, metric_col3 = st.columns(3)
    metric_col1.metric("Boxes", len(packed_boxes))
    metric_col2.metric("Weight variance", packed_boxes.weight_variance)
    metric_col3.metric("Volume utilisation (%)", packed_boxes.volume_utilisation)
    st.dataframe(summary_df, use_container_width=True)
    st.download_button(
        "Download box summary CSV",
        data=summary_df.to_csv(index=False).encode("utf-8-sig"),
        file_name="box_summary.csv",
        use_container_width=True,
    )

    st.subheader("Placements")
    st.dataframe(placement_df, use_container_width=True)
    download_col1, download_col2 = st.columns(2)
    with download_col1:
        st.download_button(
            "Download placements CSV",
            data=placement_df.to_csv(index=False).encode("utf-8-sig"),
            file_name="placements.csv",
            use_container_width=True,
        )
    with download_col2:
        st.download_button(
            "Download visualiser JSON",
            data=json.dumps(build_visualiser_payload(packed_boxes)).encode("utf-8"),
            file_name="packing.json",
            mime="application/json",
            use_container_width=True,
        )

    st.subheader("Unpacked items")
    if unpacked_items:
        st.dataframe(build_unpacked_rows(unpacked_items), use_container_width=True)
    else:
        st.success("Every item was packed.")

    if not placement_df.empty:
        st.subheader("3D view")
        labels = list(dict.fromkeys(placement_df["box_label"]))
        chosen = st.selectbox("Box", labels)
        st.pydeck_chart(_box_chart(placement_df[placement_df["box_label"] == chosen]), use_container_width=True)


with st.sidebar:
    st.header("Packer settings")
    max_boxes_to_balance = st.number_input(
        "Max boxes to balance weight",
        min_value=0,
        max_value=100,
        value=PackerSettings().max_boxes_to_balance_weight,
        help="Weight is redistributed only when the solution uses at most this many boxes.",
    )
    timeout_seconds = st.number_input("Timeout (seconds, 0 = none)", min_value=0.0, value=0.0, step=1.0)
    enforce_single_box = st.checkbox("Only accept a single box", value=False)
    infallible = st.checkbox("Set aside items that cannot be packed", value=True)
    st.subheader("Settings YAML (optional)")
    settings_text = st.text_area(
        "Overrides the controls above",
        key="settings_text_input",
        height=120,
        placeholder="packer:\n  max_boxes_to_balance_weight: 12\n  timeout_seconds: 5",
    )

if "items_df" not in st.session_state:
    st.session_state["items_df"] = _empty_items_df()

plan_tab, catalog_tab = st.tabs(["Plan", "Box catalog"])

with catalog_tab:
    st.header("Box catalog")
    st.caption("Dimensions are inner and outer sizes of each box type; qty limits how many of a type may be used.")
    if st.button("Load sample catalog", use_container_width=True):
        st.session_state["boxes_text_input"] = _read_text("data/boxes.sample.yaml")
        st.success("Sample catalog loaded.")
    st.file_uploader("Upload boxes.yaml", type=["yaml", "yml"], key="boxes_file")
    if "boxes_text_input" not in st.session_state:
        st.session_state["boxes_text_input"] = DEFAULT_BOXES_YAML
    st.text_area("boxes.yaml", key="boxes_text_input", height=320)

boxes_yaml = st.session_state.get("boxes_text_input", "")
if st.session_state.get("boxes_file") is not None:
    boxes_yaml = st.session_state["boxes_file"].getvalue().decode("utf-8")

try:
    boxes = load_box_catalog_yaml(boxes_yaml) if boxes_yaml.strip() else []
except CatalogInputError as exc:
    st.error(f"Box catalog: {exc}")
    st.stop()

if not boxes:
    st.warning("The box catalog is empty. Add box types on the Box catalog tab.")
    st.stop()

try:
    if settings_text.strip():
        settings = load_settings_yaml(settings_text)
    else:
        settings = PackerSettings(
            max_boxes_to_balance_weight=int(max_boxes_to_balance),
            timeout_seconds=float(timeout_seconds) if timeout_seconds > 0 else None,
            enforce_single_box=enforce_single_box,
            infallible=infallible,
        )
except SettingsError as exc:
    st.error(f"Settings: {exc}")
    st.stop()

with plan_tab:
    st.header("Packing list")
    items_col1, items_col2 = st.columns(2)
    with items_col1:
        items_file = st.file_uploader("Upload items CSV", type=["csv"], key="items_file")
    with items_col2:
        items_text = st.text_area(
            "Paste items CSV",
            height=160,
            placeholder="description,qty,width,length,depth,weight,rotation\nBook,4,210,297,30,800,keep_flat",
        )

    load_col1, load_col2 = st.columns(2)
    if load_col1.button("Load sample items", use_container_width=True):
        try:
            st.session_state["items_df"] = _normalize_items_dataframe(load_items_csv(_read_text("data/items.sample.csv")))
            st.success("Sample items loaded.")
        except CatalogInputError as exc:
            st.error(str(exc))

    if load_col2.button("Apply CSV input", use_container_width=True):
        try:
            if items_file is not None:
                loaded_df = load_items_csv(items_file.getvalue().decode("utf-8"))
                st.session_state["items_df"] = _normalize_items_dataframe(loaded_df)
                st.success("Items loaded.")
            elif items_text.strip():
                loaded_df = load_items_csv(items_text)
                st.session_state["items_df"] = _normalize_items_dataframe(loaded_df)
                st.success("Items loaded.")
            else:
                st.warning("Upload a CSV file or paste CSV text first.")
        except EmptyDataError:
            st.error("The items CSV is empty.")
        except CatalogInputError as exc:
            st.error(str(exc))

    edited_df = st.data_editor(
        st.session_state["items_df"],
        use_container_width=True,
        num_rows="dynamic",
        column_config={
            "description": st.column_config.TextColumn("description", help="Required. Items with the same description count as one type."),
            "qty": st.column_config.NumberColumn("qty", min_value=1),
            "width": st.column_config.NumberColumn("width", min_value=0),
            "length": st.column_config.NumberColumn("length", min_value=0),
            "depth": st.column_config.NumberColumn("depth", min_value=0),
            "weight": st.column_config.NumberColumn("weight", min_value=0),
            "rotation": st.column_config.SelectboxColumn("rotation", options=ROTATION_CHOICES),
            "max_per_box": st.column_config.NumberColumn("max_per_box", min_value=1, help="Optional cap per box"),
            "no_stacking": st.column_config.CheckboxColumn("no_stacking", help="Never on top of the same item"),
        },
    )
    st.session_state["items_df"] = _normalize_items_dataframe(edited_df)

    items_df = st.session_state["items_df"]
    if items_df.empty:
        st.info("No items yet. Load a CSV or add rows to the table.")
        st.stop()

    try:
        items = expand_items(normalize_item_rows(items_df))
    except CatalogInputError as exc:
        st.error(str(exc))
        st.stop()

    st.caption(f"{len(items)} item(s) against {len(boxes)} box type(s).")

    if st.button("Pack", type="primary", use_container_width=True):
        st.session_state.pop("packing_result", None)
        packer = build_packer(boxes, items, settings, logger=logger)
        try:
            packed_boxes = packer.pack()
        except ItemTooLargeError as exc:
            st.error(f"{exc.item.description} does not fit into any box in the catalog.")
            st.stop()
        except NoBoxesAvailableError as exc:
            st.error(f"Ran out of boxes with {len(exc.items)} item(s) left to pack.")
            st.stop()
        except PackingTimeoutError as exc:
            st.error(f"Packing stopped after {exc.spent_time:.1f}s (limit {exc.timeout:.1f}s).")
            st.stop()

        unpacked = packer.unpacked_items.as_list() if isinstance(packer, InfalliblePacker) else []
        st.session_state["packing_result"] = (packed_boxes, unpacked)

    # kept across reruns so the 3D box selector does not discard the result
    if "packing_result" in st.session_state:
        _render_results(*st.session_state["packing_result"])
