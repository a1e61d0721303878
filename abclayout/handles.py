"""HandleTable: two-way lookup between source items and placed geometry."""

from __future__ import annotations

from dataclasses import dataclass

from abclayout.exceptions import StaleHandleError
from abclayout.geometry import Extent
from abclayout.tune_models import Item


@dataclass(frozen=True)
class PlacedItem:
    item: Item
    handle: int
    root_extent: Extent
    total_extent: Extent


class HandleTable:
    """
    Item to handle and handle to item lookup, owned by one layout pass.

    Once ``invalidate()`` has been called every query raises
    ``StaleHandleError``; handles from a finished pass must not be reused.
    """

    def __init__(self) -> None:
        self._by_item: dict[Item, PlacedItem] = {}
        self._by_handle: dict[int, PlacedItem] = {}
        self._valid = True

    def __len__(self) -> int:
        return len(self._by_item)

    def _check(self) -> None:
        if not self._valid:
            raise StaleHandleError("Handle table belongs to a discarded layout pass.")

    @property
    def is_valid(self) -> bool:
        return self._valid

    def register(self, item: Item, handle: int, root_extent: Extent, total_extent: Extent) -> PlacedItem:
        self._check()
        placed = PlacedItem(item, handle, root_extent, total_extent)
        self._by_item[item] = placed
        self._by_handle[handle] = placed
        return placed

    def handle_for(self, item: Item) -> int | None:
        self._check()
        placed = self._by_item.get(item)
        return placed.handle if placed is not None else None

    def item_for(self, handle: int) -> Item | None:
        self._check()
        placed = self._by_handle.get(handle)
        return placed.item if placed is not None else None

    def extent_for(self, item: Item) -> Extent | None:
        """Total extent of a placed item, local to its measure."""
        self._check()
        placed = self._by_item.get(item)
        return placed.total_extent if placed is not None else None

    def placed(self) -> list[PlacedItem]:
        """Every placed item, in placement order."""
        self._check()
        return list(self._by_item.values())

    def invalidate(self) -> None:
        self._by_item.clear()
        self._by_handle.clear()
        self._valid = False
