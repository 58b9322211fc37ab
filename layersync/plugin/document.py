"""Host design-document interface and an in-memory implementation.

The projector never touches a host document directly; it goes through
``DocumentHost``. ``InMemoryDocument`` implements the interface over a
plain node tree that can be loaded from and saved to JSON, which is how
the CLI applies records to exported documents.
"""

from __future__ import annotations

import copy
import hashlib
import itertools
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from loguru import logger

SCOPES = ("document", "page", "selection")

IMAGE_NODE_TYPES = {"RECTANGLE", "ELLIPSE", "POLYGON", "FRAME", "INSTANCE", "COMPONENT"}
FILLABLE_NODE_TYPES = IMAGE_NODE_TYPES | {"TEXT", "VECTOR", "STAR"}


@dataclass(eq=False)
class DesignNode:
    id: str
    name: str = ""
    type: str = "FRAME"
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 100
    characters: Optional[str] = None
    font_name: str = "Inter Regular"
    layout_mode: str = "NONE"
    fills: List[Dict[str, Any]] = field(default_factory=list)
    children: List["DesignNode"] = field(default_factory=list)
    parent: Optional["DesignNode"] = field(default=None, repr=False)

    def walk(self) -> Iterator["DesignNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        if self.characters is not None:
            data["characters"] = self.characters
            data["fontName"] = self.font_name
        if self.layout_mode != "NONE":
            data["layoutMode"] = self.layout_mode
        if self.fills:
            data["fills"] = self.fills
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


class DocumentHost(ABC):
    """Narrow view of a host design document.

    Nodes handed out by a host expose ``id``, ``name``, ``type``, ``y`` and
    ``height``; everything else goes through these methods.
    """

    @abstractmethod
    def nodes_for_scope(self, scope: str) -> List[Any]:
        """Top-level nodes for 'document', 'page' or 'selection'."""

    @abstractmethod
    def list_children(self, node: Any) -> List[Any]:
        ...

    @abstractmethod
    def parent_of(self, node: Any) -> Optional[Any]:
        """Parent node, or None at page level."""

    @abstractmethod
    def get_node(self, node_id: str) -> Optional[Any]:
        ...

    @abstractmethod
    def clone_node(self, node: Any) -> Any:
        """Copy ``node`` into the same parent and return the copy."""

    @abstractmethod
    async def load_font(self, node: Any) -> None:
        """Make the text node's font available before mutation."""

    @abstractmethod
    def set_text(self, node: Any, text: str) -> None:
        ...

    @abstractmethod
    def set_image_fill(self, node: Any, data: bytes) -> None:
        ...

    @abstractmethod
    def supports_fills(self, node: Any) -> bool:
        ...

    @abstractmethod
    def has_auto_layout(self, node: Any) -> bool:
        ...

    @abstractmethod
    def move_below(self, node: Any, anchor: Any, offset: float) -> None:
        """Place ``node`` at ``anchor.y + offset``."""


class InMemoryDocument(DocumentHost):
    """JSON-backed document tree.

    JSON shape::

        {"currentPage": 0, "selection": ["id", ...],
         "pages": [{"id": "0:1", "name": "Page 1", "children": [node, ...]}]}
    """

    def __init__(
        self,
        pages: Optional[List[DesignNode]] = None,
        current_page: int = 0,
        selection: Optional[Iterable[str]] = None,
        missing_fonts: Optional[Set[str]] = None,
    ) -> None:
        self.pages = pages or [DesignNode(id="0:1", name="Page 1", type="PAGE")]
        self.current_page = current_page
        self.selection = list(selection or [])
        self.missing_fonts = set(missing_fonts or ())
        self._clone_ids = itertools.count(1)
        for page in self.pages:
            _link_parents(page)

    # --- loading/saving -------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryDocument":
        ids = itertools.count(1)
        pages = [_node_from_dict(page, ids, default_type="PAGE") for page in data.get("pages") or []]
        return cls(
            pages=pages or None,
            current_page=int(data.get("currentPage", 0) or 0),
            selection=data.get("selection") or [],
        )

    @classmethod
    def load(cls, path: Path) -> "InMemoryDocument":
        with Path(path).open("r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "selection": list(self.selection),
            "pages": [page.to_dict() for page in self.pages],
        }

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)
        logger.info(f"💾 Document written: {path}")
        return path

    # --- DocumentHost ---------------------------------------------------

    @property
    def page(self) -> DesignNode:
        return self.pages[self.current_page]

    def nodes_for_scope(self, scope: str) -> List[DesignNode]:
        if scope == "document":
            return [child for page in self.pages for child in page.children]
        if scope == "page":
            return list(self.page.children)
        selected = [node for node in (self.get_node(i) for i in self.selection) if node is not None]
        return selected or list(self.page.children)

    def list_children(self, node: DesignNode) -> List[DesignNode]:
        return list(node.children)

    def parent_of(self, node: DesignNode) -> Optional[DesignNode]:
        parent = node.parent
        if parent is None or parent.type in ("PAGE", "DOCUMENT"):
            return None
        return parent

    def get_node(self, node_id: str) -> Optional[DesignNode]:
        for page in self.pages:
            for node in page.walk():
                if node.id == node_id:
                    return node
        return None

    def clone_node(self, node: DesignNode) -> DesignNode:
        parent = node.parent
        node.parent = None
        clone = copy.deepcopy(node)
        node.parent = parent
        suffix = next(self._clone_ids)
        for copied in clone.walk():
            copied.id = f"{copied.id}:c{suffix}"
        _link_parents(clone)
        clone.parent = parent
        if parent is not None:
            parent.children.insert(parent.children.index(node) + 1, clone)
        return clone

    async def load_font(self, node: DesignNode) -> None:
        if node.font_name in self.missing_fonts:
            raise LookupError(f"Font not available: {node.font_name}")

    def set_text(self, node: DesignNode, text: str) -> None:
        if node.type != "TEXT":
            raise TypeError(f"Node {node.id} is not a text node")
        node.characters = text

    def set_image_fill(self, node: DesignNode, data: bytes) -> None:
        image_hash = hashlib.sha1(data).hexdigest()
        node.fills = [{"type": "IMAGE", "scaleMode": "FILL", "imageHash": image_hash}]

    def supports_fills(self, node: DesignNode) -> bool:
        return node.type in FILLABLE_NODE_TYPES

    def has_auto_layout(self, node: DesignNode) -> bool:
        return node.layout_mode != "NONE"

    def move_below(self, node: DesignNode, anchor: DesignNode, offset: float) -> None:
        node.y = anchor.y + offset


def _link_parents(node: DesignNode) -> None:
    for child in node.children:
        child.parent = node
        _link_parents(child)


def _node_from_dict(data: Dict[str, Any], ids: Iterator[int], default_type: str = "FRAME") -> DesignNode:
    node = DesignNode(
        id=str(data.get("id") or f"n{next(ids)}"),
        name=str(data.get("name", "")),
        type=str(data.get("type") or default_type),
        x=data.get("x", 0) or 0,
        y=data.get("y", 0) or 0,
        width=data.get("width", 100) or 0,
        height=data.get("height", 100) or 0,
        characters=data.get("characters"),
        font_name=str(data.get("fontName") or "Inter Regular"),
        layout_mode=str(data.get("layoutMode") or "NONE"),
        fills=list(data.get("fills") or []),
    )
    node.children = [_node_from_dict(child, ids) for child in data.get("children") or []]
    return node
