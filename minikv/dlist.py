"""Circular intrusive doubly linked list."""

from __future__ import annotations

from typing import Any


class DList:
    """A list node; a fresh node is an empty list head linked to itself."""

    def __init__(self, owner: Any = None) -> None:
        self.prev: DList = self
        self.next: DList = self
        self.owner = owner

    def empty(self) -> bool:
        """True if this head has no other nodes linked to it."""
        return self.next is self

    def detach(self) -> None:
        """Unlink this node from whatever list it is in."""
        prev, nxt = self.prev, self.next
        prev.next = nxt
        nxt.prev = prev
        self.prev = self.next = self

    def insert_before(self, rookie: DList) -> None:
        """Link ``rookie`` just before this node (at the tail if this is the head)."""
        prev = self.prev
        prev.next = rookie
        rookie.prev = prev
        rookie.next = self
        self.prev = rookie