"""BeautifulSoup adapter for the document model (HTML snapshots)."""
from __future__ import annotations

import re
from typing import Optional, Sequence

import structlog
from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

from .document import Document, Node
from ..utils import normalize_whitespace

logger = structlog.get_logger(__name__)

_HIDDEN_STYLE_RE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)


class SoupNode(Node):
    __slots__ = ("_tag",)

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SoupNode) and other._tag is self._tag

    def __hash__(self) -> int:
        return id(self._tag)

    def __repr__(self) -> str:
        return f"SoupNode(<{self._tag.name}>)"

    def find_all(self, selector: str) -> Sequence[Node]:
        try:
            return [SoupNode(t) for t in self._tag.select(selector)]
        except (SelectorSyntaxError, NotImplementedError, ValueError) as exc:
            logger.debug("selector_invalid", selector=selector, error=str(exc))
            return []

    def text(self) -> str:
        return normalize_whitespace(self._tag.get_text(" ", strip=True))

    def attribute(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return " ".join(value)
        return str(value)

    def parent(self) -> Optional[Node]:
        parent = self._tag.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return None
        return SoupNode(parent)

    @property
    def tag(self) -> str:
        return self._tag.name or ""

    def is_hidden(self) -> bool:
        node: Optional[Tag] = self._tag
        while node is not None and not isinstance(node, BeautifulSoup):
            if node.has_attr("hidden"):
                return True
            style = node.get("style")
            if style and _HIDDEN_STYLE_RE.search(str(style)):
                return True
            node = node.parent
        return False


class SoupDocument(Document):
    def __init__(self, soup: BeautifulSoup) -> None:
        self._soup = soup
        # fragments parsed with html.parser have no <body>
        self._root = SoupNode(soup.body if soup.body is not None else soup)

    @classmethod
    def from_html(cls, html: str, parser: str = "html.parser") -> "SoupDocument":
        return cls(BeautifulSoup(html or "", parser))

    @property
    def root(self) -> Node:
        return self._root

    def find_all(self, selector: str) -> Sequence[Node]:
        try:
            return [SoupNode(t) for t in self._soup.select(selector)]
        except (SelectorSyntaxError, NotImplementedError, ValueError) as exc:
            logger.debug("selector_invalid", selector=selector, error=str(exc))
            return []

    @property
    def lang(self) -> Optional[str]:
        html = self._soup.find("html")
        if isinstance(html, Tag):
            value = html.get("lang")
            return str(value) if value else None
        return None


__all__ = ["SoupNode", "SoupDocument"]
