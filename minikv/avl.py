"""Intrusive AVL tree with subtree sizes, supporting rank offsets."""

from __future__ import annotations


class AVLNode:
    """A tree node that carries its subtree height and size.

    Payload classes subclass this (or hold one) and link nodes themselves.
    """

    def __init__(self) -> None:
        self.parent: AVLNode | None = None
        self.left: AVLNode | None = None
        self.right: AVLNode | None = None
        self.height = 1
        self.cnt = 1


def height(node: AVLNode | None) -> int:
    """Height of the subtree rooted at ``node`` (0 for an empty tree)."""
    return node.height if node is not None else 0


def count(node: AVLNode | None) -> int:
    """Number of nodes in the subtree rooted at ``node``."""
    return node.cnt if node is not None else 0


def _update(node: AVLNode) -> None:
    node.height = 1 + max(height(node.left), height(node.right))
    node.cnt = 1 + count(node.left) + count(node.right)


def _rot_left(node: AVLNode) -> AVLNode:
    parent = node.parent
    new_node = node.right
    inner = new_node.left
    node.right = inner
    if inner is not None:
        inner.parent = node
    new_node.parent = parent
    new_node.left = node
    node.parent = new_node
    _update(node)
    _update(new_node)
    return new_node


def _rot_right(node: AVLNode) -> AVLNode:
    parent = node.parent
    new_node = node.left
    inner = new_node.right
    node.left = inner
    if inner is not None:
        inner.parent = node
    new_node.parent = parent
    new_node.right = node
    node.parent = new_node
    _update(node)
    _update(new_node)
    return new_node


def _fix_left(node: AVLNode) -> AVLNode:
    # the left subtree is taller by 2
    if height(node.left.left) < height(node.left.right):
        node.left = _rot_left(node.left)
    return _rot_right(node)


def _fix_right(node: AVLNode) -> AVLNode:
    # the right subtree is taller by 2
    if height(node.right.right) < height(node.right.left):
        node.right = _rot_right(node.right)
    return _rot_left(node)


def fix(node: AVLNode) -> AVLNode:
    """Rebalance from ``node`` up to the root and return the new root."""
    while True:
        parent = node.parent
        is_left = parent is not None and parent.left is node
        _update(node)
        lh = height(node.left)
        rh = height(node.right)
        fixed = node
        if lh == rh + 2:
            fixed = _fix_left(node)
        elif lh + 2 == rh:
            fixed = _fix_right(node)
        if parent is None:
            return fixed
        if is_left:
            parent.left = fixed
        else:
            parent.right = fixed
        node = parent


def _remove_easy(node: AVLNode) -> AVLNode | None:
    # detach a node that has at most one child
    child = node.left if node.left is not None else node.right
    parent = node.parent
    if child is not None:
        child.parent = parent
    if parent is None:
        return child
    if parent.left is node:
        parent.left = child
    else:
        parent.right = child
    return fix(parent)


def remove(node: AVLNode) -> AVLNode | None:
    """Detach ``node`` from its tree and return the new root."""
    if node.left is None or node.right is None:
        return _remove_easy(node)
    victim = node.right
    while victim.left is not None:
        victim = victim.left
    root = _remove_easy(victim)
    # the successor takes over the removed node's position
    victim.left = node.left
    victim.right = node.right
    victim.parent = node.parent
    victim.height = node.height
    victim.cnt = node.cnt
    if victim.left is not None:
        victim.left.parent = victim
    if victim.right is not None:
        victim.right.parent = victim
    parent = node.parent
    if parent is None:
        root = victim
    elif parent.left is node:
        parent.left = victim
    else:
        parent.right = victim
    return root


def offset(node: AVLNode, offset: int) -> AVLNode | None:
    """Return the node ``offset`` ranks away from ``node``, or None.

    The walk is O(log N) regardless of the offset's magnitude.
    """
    pos = 0
    while offset != pos:
        if pos < offset and pos + count(node.right) >= offset:
            node = node.right
            pos += count(node.left) + 1
        elif pos > offset and pos - count(node.left) <= offset:
            node = node.left
            pos -= count(node.right) + 1
        else:
            parent = node.parent
            if parent is None:
                return None
            if parent.right is node:
                pos -= count(node.left) + 1
            else:
                pos += count(node.right) + 1
            node = parent
    return node