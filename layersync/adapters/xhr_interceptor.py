"""XHR interception and page-state injection strategies.

Both read from the shared ``BrowserSession``:

- ``XhrInterceptStrategy`` looks at JSON responses the page fetched while
  loading and picks the ones whose URL matches the preset patterns.
- ``InjectionStrategy`` reads well-known global state objects from the
  loaded page and searches them for the bus list.

Payload shapes are resolved here and normalized with ``XHR_FIELDS``.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Pattern, Sequence, Tuple, Union

from loguru import logger

from layersync.adapters.base import ExtractionStrategy
from layersync.core.errors import friendly_error
from layersync.core.models import BusResult, ExtractionResult, ScrapeOptions, StrategyName
from layersync.core.normalizer import XHR_FIELDS, get_nested_value, normalize_bus
from layersync.services.browser_pool import BrowserSession

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class XhrPreset:
    """Which responses to intercept and how long to wait for them.

    Attributes:
        url_patterns: Compiled regexes or plain substrings
        max_items: Item cap after parsing
        settle_seconds: Wait before giving the page a scroll
        scroll_wait_seconds: Wait after the scroll
    """
    url_patterns: Tuple[Union[Pattern, str], ...]
    max_items: int = 50
    settle_seconds: float = 2.0
    scroll_wait_seconds: float = 3.0

    def matches(self, url: str) -> bool:
        for pattern in self.url_patterns:
            if isinstance(pattern, str):
                if pattern in url:
                    return True
            elif pattern.search(url):
                return True
        return False


XHR_PRESETS: Dict[str, XhrPreset] = {
    "redbus": XhrPreset(
        url_patterns=(
            re.compile(r"/search/getbuslist", re.I),
            re.compile(r"/bus-tickets.*getbuslist", re.I),
            re.compile(r"api.*buslist", re.I),
            re.compile(r"getSearchResult", re.I),
        ),
    ),
}

# First non-empty list wins; '' is the payload itself
BUS_LIST_PATHS = (
    "inventoryItems",
    "busListData.busList",
    "busList",
    "result.inventoryItems",
    "",
    "data.busList",
    "data.inventoryItems",
)


def find_bus_list(payload: Any) -> List[Any]:
    """Locate the record array inside an intercepted payload."""
    for path in BUS_LIST_PATHS:
        candidate = payload if path == "" else get_nested_value(payload, path)
        if isinstance(candidate, list) and candidate:
            return candidate
    return []


class XhrInterceptStrategy(ExtractionStrategy):
    name = StrategyName.XHR

    def __init__(self, session: BrowserSession, preset: XhrPreset, sleep: Sleep = asyncio.sleep) -> None:
        self.session = session
        self.preset = preset
        self._sleep = sleep

    def _matched(self):
        return [r for r in self.session.responses if self.preset.matches(r.url)]

    async def extract(self, url: str, options: ScrapeOptions) -> ExtractionResult:
        started = time.monotonic()
        try:
            page = await self.session.page()
            matched = self._matched()
            if not matched:
                await self._sleep(self.preset.settle_seconds)
                matched = self._matched()
            if not matched:
                logger.info("🔄 Scrolling to trigger XHR requests...")
                await page.evaluate("() => window.scrollBy(0, 500)")
                await self._sleep(self.preset.scroll_wait_seconds)
                matched = self._matched()
        except Exception as exc:  # noqa: BLE001
            return self._result(started, errors=[friendly_error(exc)])

        if not matched:
            return self._result(started, errors=["No matching XHR requests intercepted"])

        items: List[BusResult] = []
        for response in matched:
            logger.info(f"📡 Intercepted XHR: {response.url[:100]}")
            items.extend(normalize_bus(raw, XHR_FIELDS) for raw in find_bus_list(response.data))

        total = len(items)
        items = items[: self.preset.max_items]
        errors = [] if items else ["XHR intercepted but no items extracted - data format may have changed"]
        return self._result(
            started,
            success=bool(items),
            items=items,
            total_found=total,
            errors=errors,
            intercepted_url=matched[-1].url,
        )


# --- page-state injection ------------------------------------------------

STATE_SCRIPT = """
() => {
    const w = window;
    const pick = (value) => {
        if (value === undefined || value === null) return null;
        try { return JSON.parse(JSON.stringify(value)); } catch (e) { return null; }
    };
    const next = w.__NEXT_DATA__;
    const script = document.querySelector('script#__NEXT_DATA__');
    return [
        ['__INITIAL_STATE__', pick(w.__INITIAL_STATE__)],
        ['__PRELOADED_STATE__', pick(w.__PRELOADED_STATE__)],
        ['__REDUX_STATE__', pick(w.__REDUX_STATE__)],
        ['busListData', pick(w.busListData)],
        ['searchResult', pick(w.searchResult)],
        ['pageData', pick(w.pageData)],
        ['__NEXT_DATA__.props.pageProps', pick(next && next.props && next.props.pageProps)],
        ['script#__NEXT_DATA__', script ? script.textContent : null],
    ];
}
"""

STATE_KEY_HINTS = ("bus", "inventory", "result")
SENTINEL_FIELD = "travels"
MAX_STATE_DEPTH = 5


def find_records(
    obj: Any,
    sentinel: str = SENTINEL_FIELD,
    max_depth: int = MAX_STATE_DEPTH,
    key_hints: Sequence[str] = STATE_KEY_HINTS,
    depth: int = 0,
) -> Optional[List[Any]]:
    """Depth-bounded search for a list whose first element has ``sentinel``.

    Only descends into dict keys that mention one of ``key_hints``.
    """
    if depth > max_depth or not obj:
        return None
    if isinstance(obj, list):
        first = obj[0]
        if isinstance(first, dict) and first.get(sentinel):
            return obj
        return None
    if isinstance(obj, dict):
        for key, value in obj.items():
            lowered = str(key).lower()
            if any(hint in lowered for hint in key_hints):
                found = find_records(value, sentinel, max_depth, key_hints, depth + 1)
                if found:
                    return found
    return None


def _decode_state(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


# Ordered (source, extractor) table: first hit wins
StateExtractor = Callable[[Any], Optional[List[Any]]]
STATE_EXTRACTORS: Tuple[Tuple[str, StateExtractor], ...] = tuple(
    (source, lambda value: find_records(_decode_state(value)))
    for source in (
        "__INITIAL_STATE__",
        "__PRELOADED_STATE__",
        "__REDUX_STATE__",
        "busListData",
        "searchResult",
        "pageData",
        "__NEXT_DATA__.props.pageProps",
        "script#__NEXT_DATA__",
    )
)


def records_from_state(sources: Sequence[Sequence[Any]]) -> Tuple[Optional[str], Optional[List[Any]]]:
    """Run the extractor table over ``[name, value]`` pairs from the page."""
    values = {name: value for name, value in sources}
    for source, extractor in STATE_EXTRACTORS:
        value = values.get(source)
        if value is None:
            continue
        records = extractor(value)
        if records:
            return source, records
    return None, None


class InjectionStrategy(ExtractionStrategy):
    name = StrategyName.INJECTION

    def __init__(self, session: BrowserSession, max_items: int = 50) -> None:
        self.session = session
        self.max_items = max_items

    async def extract(self, url: str, options: ScrapeOptions) -> ExtractionResult:
        started = time.monotonic()
        try:
            page = await self.session.page()
            sources = await page.evaluate(STATE_SCRIPT)
        except Exception as exc:  # noqa: BLE001
            return self._result(started, errors=[f"Injection extraction failed: {friendly_error(exc)}"])

        source, records = records_from_state(sources or [])
        if not records:
            return self._result(started, errors=["Could not find bus data in page state"])

        items = [normalize_bus(raw, XHR_FIELDS) for raw in records]
        logger.success(f"✅ Found {len(items)} buses in page state ({source})")
        return self._result(
            started,
            success=True,
            items=items[: self.max_items],
            total_found=len(items),
        )
