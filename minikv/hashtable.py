"""Chained hash map with progressive rehashing over intrusive nodes."""

from __future__ import annotations

from typing import Callable, Iterator

_REHASHING_WORK = 128
_MAX_LOAD_FACTOR = 8
_INITIAL_SLOTS = 4


def str_hash(data: bytes) -> int:
    """32-bit FNV-style hash of ``data``."""
    h = 0x811C9DC5
    for byte in data:
        h = ((h + byte) * 0x01000193) & 0xFFFFFFFF
    return h


class HNode:
    """A hash map node; payload classes subclass or embed it."""

    def __init__(self, hcode: int = 0) -> None:
        self.next: HNode | None = None
        self.hcode = hcode


Eq = Callable[[HNode, HNode], bool]


class _HTab:
    """A fixed-size table of chains; the slot count is a power of two."""

    def __init__(self, n: int = 0) -> None:
        if n:
            if n & (n - 1):
                raise ValueError("table size must be a power of 2")
            self.tab: list[HNode | None] | None = [None] * n
            self.mask = n - 1
        else:
            self.tab = None
            self.mask = 0
        self.size = 0

    def insert(self, node: HNode) -> None:
        pos = node.hcode & self.mask
        node.next = self.tab[pos]
        self.tab[pos] = node
        self.size += 1

    def find(self, key: HNode, eq: Eq) -> tuple[int, HNode | None, HNode] | None:
        """Locate a node as (slot, predecessor, node)."""
        if self.tab is None:
            return None
        pos = key.hcode & self.mask
        prev = None
        cur = self.tab[pos]
        while cur is not None:
            if cur.hcode == key.hcode and eq(cur, key):
                return pos, prev, cur
            prev, cur = cur, cur.next
        return None

    def detach(self, pos: int, prev: HNode | None, node: HNode) -> HNode:
        if prev is None:
            self.tab[pos] = node.next
        else:
            prev.next = node.next
        node.next = None
        self.size -= 1
        return node

    def __iter__(self) -> Iterator[HNode]:
        if self.tab is None:
            return
        for head in self.tab:
            node = head
            while node is not None:
                nxt = node.next
                yield node
                node = nxt


class HMap:
    """Hash map that migrates keys to a larger table a little at a time."""

    def __init__(self) -> None:
        self._newer = _HTab()
        self._older = _HTab()
        self._migrate_pos = 0

    def _help_rehashing(self) -> None:
        older = self._older
        nwork = 0
        while nwork < _REHASHING_WORK and older.size > 0:
            pos = self._migrate_pos
            head = older.tab[pos]
            if head is None:
                self._migrate_pos += 1
                continue
            self._newer.insert(older.detach(pos, None, head))
            nwork += 1
        if older.size == 0 and older.tab is not None:
            self._older = _HTab()

    def _trigger_rehashing(self) -> None:
        self._older = self._newer
        self._newer = _HTab((self._older.mask + 1) * 2)
        self._migrate_pos = 0

    def lookup(self, key: HNode, eq: Eq) -> HNode | None:
        """Return the node equal to ``key``, or None."""
        self._help_rehashing()
        found = self._newer.find(key, eq) or self._older.find(key, eq)
        return found[2] if found else None

    def insert(self, node: HNode) -> None:
        """Add ``node``; duplicates are not checked."""
        if self._newer.tab is None:
            self._newer = _HTab(_INITIAL_SLOTS)
        self._newer.insert(node)
        if self._older.tab is None:
            threshold = (self._newer.mask + 1) * _MAX_LOAD_FACTOR
            if self._newer.size >= threshold:
                self._trigger_rehashing()
        self._help_rehashing()

    def delete(self, key: HNode, eq: Eq) -> HNode | None:
        """Remove and return the node equal to ``key``, or None."""
        self._help_rehashing()
        for table in (self._newer, self._older):
            found = table.find(key, eq)
            if found:
                return table.detach(*found)
        return None

    def clear(self) -> None:
        """Drop every node."""
        self._newer = _HTab()
        self._older = _HTab()
        self._migrate_pos = 0

    def __len__(self) -> int:
        return self._newer.size + self._older.size

    def __iter__(self) -> Iterator[HNode]:
        yield from self._newer
        yield from self._older