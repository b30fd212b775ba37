"""Sorted set indexed both by name and by (score, name) order."""

from __future__ import annotations

from . import avl
from .avl import AVLNode
from .hashtable import HMap, HNode, str_hash


def _as_bytes(name: bytes | str) -> bytes:
    return name.encode("utf-8") if isinstance(name, str) else bytes(name)


class ZNode(AVLNode, HNode):
    """A (name, score) member, linked into both the tree and the hash map."""

    def __init__(self, name: bytes, score: float) -> None:
        AVLNode.__init__(self)
        HNode.__init__(self, str_hash(name))
        self.name = name
        self.score = score

    def _reset_tree_links(self) -> None:
        AVLNode.__init__(self)

    def __repr__(self) -> str:
        return f"ZNode(name={self.name!r}, score={self.score!r})"


class _NameKey(HNode):
    """A throwaway hash map key used for lookups by name."""

    def __init__(self, name: bytes, hcode: int | None = None) -> None:
        super().__init__(str_hash(name) if hcode is None else hcode)
        self.name = name


def _name_eq(node: HNode, key: HNode) -> bool:
    return node.name == key.name  # type: ignore[attr-defined]


def _less(node: AVLNode, score: float, name: bytes) -> bool:
    """True if ``node`` orders before the (score, name) pair."""
    return (node.score, node.name) < (score, name)  # type: ignore[attr-defined]


class ZSet:
    """Members are unique by name and ordered by (score, name)."""

    def __init__(self) -> None:
        self.root: AVLNode | None = None
        self._hmap = HMap()

    def __len__(self) -> int:
        return len(self._hmap)

    def _tree_insert(self, node: ZNode) -> None:
        parent: AVLNode | None = None
        cur = self.root
        go_left = False
        while cur is not None:
            parent = cur
            go_left = _less(node, cur.score, cur.name)  # type: ignore[attr-defined]
            cur = cur.left if go_left else cur.right
        node.parent = parent
        if parent is None:
            self.root = node
        elif go_left:
            parent.left = node
        else:
            parent.right = node
        self.root = avl.fix(node)

    def _update(self, node: ZNode, score: float) -> None:
        if node.score == score:
            return
        self.root = avl.remove(node)
        node._reset_tree_links()
        node.score = score
        self._tree_insert(node)

    def insert(self, name: bytes | str, score: float) -> bool:
        """Add a member or update its score; True if it was newly added."""
        name = _as_bytes(name)
        node = self.lookup(name)
        if node is not None:
            self._update(node, score)
            return False
        node = ZNode(name, score)
        self._hmap.insert(node)
        self._tree_insert(node)
        return True

    def lookup(self, name: bytes | str) -> ZNode | None:
        """Return the member called ``name``, or None."""
        if self.root is None:
            return None
        found = self._hmap.lookup(_NameKey(_as_bytes(name)), _name_eq)
        return found  # type: ignore[return-value]

    def delete(self, node: ZNode) -> None:
        """Remove ``node`` from the set."""
        found = self._hmap.delete(_NameKey(node.name, node.hcode), _name_eq)
        if found is None:
            raise KeyError(node.name)
        self.root = avl.remove(node)
        node._reset_tree_links()

    def seek_ge(self, score: float, name: bytes | str) -> ZNode | None:
        """Return the first member whose (score, name) is >= the given pair."""
        name = _as_bytes(name)
        found: AVLNode | None = None
        node = self.root
        while node is not None:
            if _less(node, score, name):
                node = node.right
            else:
                found = node
                node = node.left
        return found  # type: ignore[return-value]

    def clear(self) -> None:
        """Remove every member."""
        self._hmap.clear()
        self.root = None


def znode_offset(node: ZNode | None, offset: int) -> ZNode | None:
    """Return the member ``offset`` ranks away from ``node``, or None."""
    if node is None:
        return None
    return avl.offset(node, offset)  # type: ignore[return-value]