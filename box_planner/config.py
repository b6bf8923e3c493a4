from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Iterable, Optional

import yaml

from box_planner.models import Box, Item
from box_planner.planner import DEFAULT_MAX_BOXES_TO_BALANCE_WEIGHT, InfalliblePacker, Packer
from box_planner.timeout import DefaultTimeoutChecker


class SettingsError(ValueError):
    pass


@dataclass
class PackerSettings:
    max_boxes_to_balance_weight: int = DEFAULT_MAX_BOXES_TO_BALANCE_WEIGHT
    timeout_seconds: Optional[float] = None
    enforce_single_box: bool = False
    infallible: bool = False


def load_settings_yaml(text: str) -> PackerSettings:
    """Read a ``packer:`` mapping; omitted keys keep their defaults."""
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise SettingsError(f"settings are not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise SettingsError("settings YAML must be a mapping")
    section = data.get("packer", data)
    if section is None:
        return PackerSettings()
    if not isinstance(section, dict):
        raise SettingsError("packer section must be a mapping")

    known = {f.name for f in fields(PackerSettings)}
    values = {key: value for key, value in section.items() if key in known}
    settings = PackerSettings(**values)

    if isinstance(settings.max_boxes_to_balance_weight, bool) or not isinstance(settings.max_boxes_to_balance_weight, int):
        raise SettingsError(f"max_boxes_to_balance_weight must be an integer: {settings.max_boxes_to_balance_weight!r}")
    if settings.max_boxes_to_balance_weight < 0:
        raise SettingsError("max_boxes_to_balance_weight must be 0 or more")
    if settings.timeout_seconds is not None:
        try:
            settings.timeout_seconds = float(settings.timeout_seconds)
        except (TypeError, ValueError) as exc:
            raise SettingsError(f"timeout_seconds must be a number: {settings.timeout_seconds!r}") from exc
        if settings.timeout_seconds <= 0:
            raise SettingsError("timeout_seconds must be greater than 0")
    for flag in ("enforce_single_box", "infallible"):
        if not isinstance(getattr(settings, flag), bool):
            raise SettingsError(f"{flag} must be true or false")
    return settings


def build_packer(
    boxes: Iterable[Box],
    items: Iterable[Item],
    settings: Optional[PackerSettings] = None,
    logger: Optional[logging.Logger] = None,
) -> Packer:
    settings = settings or PackerSettings()
    packer_cls = InfalliblePacker if settings.infallible else Packer
    packer = packer_cls(
        logger=logger,
        max_boxes_to_balance_weight=settings.max_boxes_to_balance_weight,
        enforce_single_box=settings.enforce_single_box,
    )
    packer.set_boxes(boxes)
    packer.set_items(items)
    if settings.timeout_seconds is not None:
        packer.set_timeout_checker(DefaultTimeoutChecker(settings.timeout_seconds))
    return packer
