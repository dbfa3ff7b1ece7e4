"""Windowed rendering of result lists.

Only the rows intersecting the viewport (plus ``overscan`` rows on each side)
are materialized. Every other row is represented by reserved space, so the
scrollable extent is always ``item_count * item_height`` and each rendered
row sits at ``index * item_height``.
"""

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class VisibleRange:
    """Inclusive index range; empty when ``end_index < start_index``."""

    start_index: int
    end_index: int

    @property
    def is_empty(self) -> bool:
        return self.end_index < self.start_index

    def __len__(self) -> int:
        return max(0, self.end_index - self.start_index + 1)

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start_index, self.end_index + 1))

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and self.start_index <= index <= self.end_index


EMPTY_RANGE = VisibleRange(0, -1)


def compute_visible_range(
    scroll_offset: float,
    viewport_height: float,
    item_height: float,
    overscan: int,
    item_count: int,
) -> VisibleRange:
    """
    Compute the rows to materialize for a scroll position.

    Never raises: negative or oversized inputs are clamped.

    Args:
        scroll_offset: Pixels scrolled from the top
        viewport_height: Height of the scroll container
        item_height: Fixed row height
        overscan: Extra rows on each side of the visible rows
        item_count: Number of rows in the list

    Returns:
        VisibleRange covering every row intersecting the viewport
    """
    if item_count <= 0 or item_height <= 0:
        return EMPTY_RANGE

    viewport_height = max(0.0, viewport_height)
    overscan = max(0, overscan)
    max_scroll = max(0.0, item_count * item_height - viewport_height)
    scroll = min(max(0.0, scroll_offset), max_scroll)

    first = int(scroll // item_height)
    if viewport_height == 0:
        last = first
    else:
        last = math.ceil((scroll + viewport_height) / item_height) - 1
    first = min(first, item_count - 1)
    last = min(max(last, first), item_count - 1)

    return VisibleRange(
        start_index=max(0, first - overscan),
        end_index=min(item_count - 1, last + overscan),
    )


@dataclass(frozen=True)
class RowPlacement(Generic[T]):
    """A materialized row and its absolute offset."""

    index: int
    offset: float
    item: T


class ResultWindow(Generic[T]):
    """Virtualized view over a result list with a near-bottom trigger.

    ``on_near_end`` fires once when the distance to the bottom drops below
    ``prefetch_threshold``. It fires again only after the distance climbs
    back above the threshold or the list grows, and never while a previous
    trigger's awaitable is still pending.
    """

    def __init__(
        self,
        item_height: float = 48,
        overscan: int = 5,
        prefetch_threshold: float = 200,
        on_near_end: Optional[Callable[[], Any]] = None,
    ):
        if item_height <= 0:
            raise ValueError("item_height must be positive")
        self.item_height = item_height
        self.overscan = max(0, overscan)
        self.prefetch_threshold = prefetch_threshold
        self.on_near_end = on_near_end

        self._items: list[T] = []
        self.scroll_top = 0.0
        self.client_height = 0.0
        self._armed = True
        self._pending: Optional["asyncio.Future[Any]"] = None

    @property
    def items(self) -> Sequence[T]:
        return self._items

    @property
    def item_count(self) -> int:
        return len(self._items)

    @property
    def total_height(self) -> float:
        return self.item_count * self.item_height

    @property
    def max_scroll_top(self) -> float:
        return max(0.0, self.total_height - self.client_height)

    @property
    def is_prefetch_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def set_items(self, items: Sequence[T]) -> None:
        """Replace the list, keeping the scroll position within the new extent."""
        grew = len(items) > len(self._items)
        self._items = list(items)
        self.scroll_top = min(self.scroll_top, self.max_scroll_top)
        if grew:
            self._armed = True

    def extend(self, items: Sequence[T]) -> None:
        """Append rows streamed in from the next page."""
        if items:
            self._items.extend(items)
            self._armed = True

    def reset(self, items: Sequence[T] = ()) -> None:
        """Start over for a new search: new rows, scrolled to the top."""
        self._items = list(items)
        self.scroll_top = 0.0
        self._armed = True

    def distance_to_end(self, scroll_height: Optional[float] = None) -> float:
        """``scrollHeight - scrollTop - clientHeight``."""
        if scroll_height is None:
            scroll_height = self.total_height
        return scroll_height - self.scroll_top - self.client_height

    def visible_range(self) -> VisibleRange:
        return compute_visible_range(
            self.scroll_top,
            self.client_height,
            self.item_height,
            self.overscan,
            self.item_count,
        )

    def visible_rows(self) -> list[RowPlacement[T]]:
        """Rows to materialize, each at ``index * item_height``."""
        return [
            RowPlacement(index=i, offset=i * self.item_height, item=self._items[i])
            for i in self.visible_range()
        ]

    def on_scroll(
        self,
        scroll_top: float,
        client_height: float,
        scroll_height: Optional[float] = None,
    ) -> list[RowPlacement[T]]:
        """
        Handle a scroll event from the container.

        Args:
            scroll_top: Container scrollTop
            client_height: Container clientHeight
            scroll_height: Container scrollHeight (defaults to the list extent)

        Returns:
            Rows to materialize for the new position
        """
        self.client_height = max(0.0, client_height)
        self.scroll_top = max(0.0, scroll_top)
        self._check_near_end(scroll_height)
        return self.visible_rows()

    def _check_near_end(self, scroll_height: Optional[float]) -> None:
        if self.distance_to_end(scroll_height) >= self.prefetch_threshold:
            self._armed = True
            return
        if not self._armed or self.is_prefetch_pending:
            return
        if self.on_near_end is None or not self._items:
            return

        self._armed = False
        logger.debug(f"Near end of {self.item_count} rows, requesting next page")
        result = self.on_near_end()
        if inspect.isawaitable(result):
            self._pending = asyncio.ensure_future(result)
