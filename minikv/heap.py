"""Binary min-heap whose items report their position back to their owner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class HeapRef:
    """Where an owner's item sits in the heap; ``index`` is None when absent."""

    owner: Any = None
    index: int | None = None


@dataclass
class HeapItem:
    """A heap entry ordered by ``val``."""

    val: int
    ref: HeapRef


def _parent(i: int) -> int:
    return (i + 1) // 2 - 1


def _place(items: list[HeapItem], pos: int, item: HeapItem) -> None:
    items[pos] = item
    item.ref.index = pos


def _up(items: list[HeapItem], pos: int) -> None:
    t = items[pos]
    while pos > 0 and items[_parent(pos)].val > t.val:
        _place(items, pos, items[_parent(pos)])
        pos = _parent(pos)
    _place(items, pos, t)


def _down(items: list[HeapItem], pos: int) -> None:
    t = items[pos]
    length = len(items)
    while True:
        left = pos * 2 + 1
        right = pos * 2 + 2
        min_pos = pos
        min_val = t.val
        if left < length and items[left].val < min_val:
            min_pos = left
            min_val = items[left].val
        if right < length and items[right].val < min_val:
            min_pos = right
        if min_pos == pos:
            break
        _place(items, pos, items[min_pos])
        pos = min_pos
    _place(items, pos, t)


def heap_update(items: list[HeapItem], pos: int) -> None:
    """Restore heap order after the item at ``pos`` changed."""
    if pos > 0 and items[_parent(pos)].val > items[pos].val:
        _up(items, pos)
    else:
        _down(items, pos)


def heap_delete(items: list[HeapItem], pos: int) -> HeapItem:
    """Remove and return the item at ``pos``."""
    removed = items[pos]
    last = items.pop()
    if pos < len(items):
        items[pos] = last
        heap_update(items, pos)
    removed.ref.index = None
    return removed


def heap_upsert(items: list[HeapItem], pos: int | None, item: HeapItem) -> None:
    """Replace the item at ``pos``, or add ``item`` if ``pos`` is not in the heap."""
    if pos is not None and 0 <= pos < len(items):
        items[pos] = item
    else:
        items.append(item)
        pos = len(items) - 1
    heap_update(items, pos)