"""Abstract document model consumed by the extraction engine.

The resolver and extractors only ever talk to ``Document`` / ``Node``; a
concrete adapter (``collector.core.soup`` for HTML snapshots) binds them to a
parsing library. Adapters must be read-only and return nodes in document
order.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterator, Optional, Sequence

NodePredicate = Callable[["Node"], bool]


class Node(ABC):
    @abstractmethod
    def find_all(self, selector: str) -> Sequence["Node"]:
        """Descendants matching a CSS selector, document order; [] on bad selector."""

    def find(self, selector: str) -> Optional["Node"]:
        found = self.find_all(selector)
        return found[0] if found else None

    @abstractmethod
    def text(self) -> str:
        """Rendered text, whitespace collapsed."""

    @abstractmethod
    def attribute(self, name: str) -> Optional[str]:
        ...

    @abstractmethod
    def parent(self) -> Optional["Node"]:
        ...

    @property
    @abstractmethod
    def tag(self) -> str:
        ...

    @abstractmethod
    def is_hidden(self) -> bool:
        ...

    def ancestors(self) -> Iterator["Node"]:
        node = self.parent()
        while node is not None:
            yield node
            node = node.parent()

    def closest(self, predicate: NodePredicate) -> Optional["Node"]:
        """Nearest ancestor (self excluded) satisfying ``predicate``."""
        for node in self.ancestors():
            if predicate(node):
                return node
        return None

    def classes(self) -> list[str]:
        return (self.attribute("class") or "").split()


class Document(ABC):
    """Read-only snapshot of the page at scrape time."""

    @property
    @abstractmethod
    def root(self) -> Node:
        ...

    def find_all(self, selector: str) -> Sequence[Node]:
        return self.root.find_all(selector)

    def find(self, selector: str) -> Optional[Node]:
        return self.root.find(selector)

    def text(self) -> str:
        return self.root.text()


def tag_in(*names: str) -> NodePredicate:
    wanted = {n.lower() for n in names}
    return lambda node: node.tag.lower() in wanted


def has_class(fragment: str) -> NodePredicate:
    return lambda node: any(fragment in c for c in node.classes())


__all__ = ["Node", "Document", "NodePredicate", "tag_in", "has_class"]
