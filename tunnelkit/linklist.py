"""Doubly linked list with head and tail sentinel nodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional


@dataclass(eq=False)
class Node:
    """A list node; ``prior`` and ``next`` link to its neighbours."""

    val: Any = None
    prior: Optional["Node"] = field(default=None, repr=False)
    next: Optional["Node"] = field(default=None, repr=False)


class Linklist:
    """A doubly linked list whose ends are marked by sentinel nodes."""

    def __init__(self) -> None:
        self.head = Node()
        self.tail = Node()
        self.head.next = self.tail
        self.tail.prior = self.head

    def __iter__(self) -> Iterator[Any]:
        node = self.head.next
        while node is not self.tail:
            yield node.val
            node = node.next

    def front(self) -> Optional[Node]:
        """Return the first real node, or None when the list is empty."""
        node = self.head.next
        return None if node is self.tail else node

    def back(self) -> Optional[Node]:
        """Return the last real node, or None when the list is empty."""
        node = self.tail.prior
        return None if node is self.head else node

    def empty(self) -> bool:
        return self.head.next is self.tail

    def insert_after(self, prior: Node, val: Any) -> Optional[Node]:
        """Insert ``val`` after ``prior``; nothing can follow the tail."""
        if prior is self.tail:
            return None
        node = Node(val=val, prior=prior, next=prior.next)
        prior.next.prior = node
        prior.next = node
        return node

    def push_front(self, val: Any) -> Node:
        return self.insert_after(self.head, val)

    def push_back(self, val: Any) -> Node:
        return self.insert_after(self.tail.prior, val)

    def promote(self, node: Node) -> None:
        """Move ``node`` to the front of the list."""
        if node is self.front():
            return
        node.prior.next = node.next
        node.next.prior = node.prior
        node.prior = self.head
        node.next = self.head.next
        self.head.next.prior = node
        self.head.next = node

    def demote(self, node: Node) -> None:
        """Move ``node`` to the back of the list."""
        if node is self.back():
            return
        node.prior.next = node.next
        node.next.prior = node.prior
        node.prior = self.tail.prior
        node.next = self.tail
        self.tail.prior.next = node
        self.tail.prior = node

    def remove(self, node: Node) -> None:
        """Unlink ``node``; the sentinels are never removed."""
        if node is self.head or node is self.tail:
            return
        node.prior.next = node.next
        node.next.prior = node.prior