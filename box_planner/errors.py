from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from box_planner.models import Item


class PackingError(RuntimeError):
    pass


class ItemTooLargeError(PackingError):
    """An item does not fit any configured box, even on its own."""

    def __init__(self, item: "Item", message: str | None = None):
        self.item = item
        super().__init__(message or f"Item {item.description} is too large to fit into any box")


class NoBoxesAvailableError(PackingError):
    """A packing round placed nothing. Carries the items still waiting to be packed."""

    def __init__(self, items: Iterable["Item"], message: str | None = None):
        self.items = list(items)
        super().__init__(message or f"No boxes could be found for {len(self.items)} remaining item(s)")


class PackingTimeoutError(PackingError):
    def __init__(self, message: str, spent_time: float, timeout: float):
        self.spent_time = spent_time
        self.timeout = timeout
        super().__init__(f"{message} ({spent_time:.3f}s spent, budget {timeout:.3f}s)")


class IncreasedBoxCountError(PackingError):
    pass
