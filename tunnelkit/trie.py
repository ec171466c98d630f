"""Static trie answering longest-prefix queries, with path compression."""

from __future__ import annotations

from typing import Dict, Iterable, Optional


class _Node:
    __slots__ = ("children", "end")

    def __init__(self) -> None:
        self.children: Dict[str, _Edge] = {}
        self.end = False


class _Edge:
    __slots__ = ("node", "skip")

    def __init__(self, node: _Node) -> None:
        self.node = node
        self.skip: Optional[str] = None


def _make_jump(cur: _Edge, origin: _Edge, path: str) -> None:
    node = cur.node
    fork = node.end or len(node.children) > 1
    if fork and len(path) > 1:
        origin.skip = path
        origin.node = node
    for ch, child in list(node.children.items()):
        if fork:
            _make_jump(child, child, ch)
        else:
            _make_jump(child, origin, path + ch)


class Trie:
    """Trie built once from a word list; ``match`` finds a word prefix."""

    def __init__(self, words: Iterable[str]) -> None:
        self._root = _Node()
        for word in words:
            node = self._root
            for ch in word:
                edge = node.children.get(ch)
                if edge is None:
                    edge = node.children[ch] = _Edge(_Node())
                node = edge.node
            if word:
                node.end = True
        for ch, edge in list(self._root.children.items()):
            _make_jump(edge, edge, ch)

    def match(self, text: str) -> str:
        """Return the longest word of the trie that ``text`` starts with."""
        prefix = ""
        built = ""
        length = len(text)
        node = self._root
        i = 0
        while i < length:
            ch = text[i]
            edge = node.children.get(ch)
            if edge is None:
                return prefix
            if edge.skip is None:
                built += ch
            else:
                size = len(edge.skip)
                if len(built) + size <= length:
                    if text[i:i + size] == edge.skip:
                        built += edge.skip
                        i += size - 1
                    else:
                        break
            if edge.node.end:
                prefix = built
                if len(prefix) == length:
                    break
            node = edge.node
            i += 1
        return prefix