"""Shared fixtures: config, fake browser pages/sessions, document builders."""

from typing import Any, Dict, List, Optional

import pytest

from layersync.adapters.datalayer import DATALAYER_SCRIPT
from layersync.adapters.xhr_interceptor import STATE_SCRIPT
from layersync.config import load_config
from layersync.plugin.document import InMemoryDocument
from layersync.storage.store import open_storage

REDBUS_URL = (
    "https://www.redbus.in/bus-tickets/bangalore-to-tirupathi"
    "?fromCityId=122&toCityId=71756&onward=23-Jan-2026"
)


class FakeElement:
    def __init__(self, value: str):
        self.value = value
        self.calls: List[Dict[str, Any]] = []

    async def evaluate(self, script: str, arg: Dict[str, Any]) -> str:
        self.calls.append(arg)
        return self.value


class FakePage:
    """Enough of a Playwright page for the strategies.

    ``elements`` maps a CSS selector to element values; a selector listed in
    ``broken`` raises like an invalid selector would.
    """

    def __init__(
        self,
        elements: Optional[Dict[str, List[str]]] = None,
        data_layer: Any = None,
        state: Optional[List[List[Any]]] = None,
        broken: Optional[Dict[str, str]] = None,
    ):
        self.elements = {k: [FakeElement(v) for v in values] for k, values in (elements or {}).items()}
        self.data_layer = data_layer
        self.state = state or []
        self.broken = broken or {}
        self.scripts: List[str] = []

    def _check(self, selector: str) -> None:
        if selector in self.broken:
            raise Exception(self.broken[selector])

    async def query_selector(self, selector: str):
        self._check(selector)
        found = self.elements.get(selector) or []
        return found[0] if found else None

    async def query_selector_all(self, selector: str):
        self._check(selector)
        return list(self.elements.get(selector) or [])

    async def evaluate(self, script: str, *args):
        self.scripts.append(script)
        if script == DATALAYER_SCRIPT:
            return self.data_layer
        if script == STATE_SCRIPT:
            return self.state
        return None


class FakeSession:
    """Stands in for ``BrowserSession``; no browser is launched."""

    def __init__(self, page: Optional[FakePage] = None, responses=None, error: Optional[Exception] = None):
        self._page = page or FakePage()
        self.responses = list(responses or [])
        self.error = error
        self.page_load_ms = 0
        self.page_calls = 0
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    async def page(self):
        self.page_calls += 1
        if self.error is not None:
            raise self.error
        self.page_load_ms = 120
        return self._page


def session_factory_for(session: FakeSession):
    def factory(config, url, options):
        return session
    return factory


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def config():
    return load_config(use_env=False)


@pytest.fixture
def storage():
    return open_storage("sqlite://")


def text(node_id: str, name: str, y: float = 0, font: Optional[str] = None) -> Dict[str, Any]:
    node = {"id": node_id, "name": name, "type": "TEXT", "y": y, "height": 20, "characters": ""}
    if font:
        node["fontName"] = font
    return node


def frame(node_id: str, name: str, children=(), node_type: str = "FRAME", **extra) -> Dict[str, Any]:
    return {"id": node_id, "name": name, "type": node_type, "children": list(children), **extra}


def make_document(children, selection=()) -> InMemoryDocument:
    return InMemoryDocument.from_dict({
        "currentPage": 0,
        "selection": list(selection),
        "pages": [{"id": "0:1", "name": "Page 1", "children": list(children)}],
    })


@pytest.fixture
def card_document():
    """Three cards tagged @[0], @[1], @[2] with operator and price fields."""
    return make_document([
        frame(f"card{i}", f"Card @[{i}]", [
            text(f"op{i}", "@{operator}"),
            text(f"price{i}", "Price @{priceFormatted}"),
        ])
        for i in range(3)
    ])
