"""Data models shared by strategies, the pipeline and the plugin side.

Python attributes are snake_case; ``to_dict``/``from_dict`` speak the
camelCase wire shape used by the scrape backend and the plugin UI.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class ExtractionMode(str, Enum):
    """Requested extraction mode on the wire."""
    AUTO = "auto"
    DIRECT = "direct"
    XHR = "xhr"
    DATALAYER = "dataLayer"
    SELECTORS = "selectors"


class StrategyName(str, Enum):
    """One concrete strategy in a fallback chain."""
    DIRECT = "direct"
    XHR = "xhr"
    INJECTION = "injection"
    DATALAYER = "dataLayer"
    SELECTORS = "selectors"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class BusResult:
    """Canonical bus listing, independent of the strategy that produced it."""
    id: str = ""
    operator: str = ""
    operator_id: str = ""
    service_name: str = ""

    bus_type: str = ""
    is_ac: bool = False
    is_sleeper: bool = False
    is_seater: bool = False
    is_electric_vehicle: bool = False

    departure_time: str = ""
    arrival_time: str = ""
    duration: str = ""
    duration_minutes: int = 0

    price: Union[int, float] = 0
    price_formatted: str = ""
    original_price: Union[int, float] = 0
    original_price_formatted: str = ""
    discount: str = ""

    rating: str = "0"
    number_of_reviews: int = 0

    seats_available: int = 0
    total_seats: int = 0
    single_seats: int = 0
    window_seats: int = 0

    route: str = ""
    via_route: str = ""
    boarding_point: str = ""
    dropping_point: str = ""
    boarding_points: Tuple[str, ...] = ()
    dropping_points: Tuple[str, ...] = ()

    amenities: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    is_primo: bool = False
    is_live_tracking: bool = False
    has_free_date_change: bool = False

    offer_tag: str = ""
    special_message: str = ""

    cancellation_policy: str = ""
    is_sponsored: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape: camelCase keys, lists instead of tuples."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[_camel(f.name)] = list(value) if isinstance(value, tuple) else value
        data["totalRatings"] = self.number_of_reviews
        return data


@dataclass(frozen=True)
class SelectorConfig:
    """One CSS-selector extraction request."""
    id: str
    selector: str
    type: str = "text"  # text | image
    modifier: Optional[str] = None
    attribute: Optional[str] = None
    index: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectorConfig":
        index = data.get("index")
        return cls(
            id=str(data.get("id", "")),
            selector=str(data.get("selector", "")),
            type=data.get("type") or "text",
            modifier=data.get("modifier"),
            attribute=data.get("attribute"),
            index=int(index) if isinstance(index, (int, float)) and not isinstance(index, bool) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "selector": self.selector, "type": self.type}
        if self.modifier:
            data["modifier"] = self.modifier
        if self.attribute:
            data["attribute"] = self.attribute
        if self.index is not None:
            data["index"] = self.index
        return data


@dataclass
class ExtractedResult:
    """One selector result (or one item rendered as JSON text)."""
    id: str
    found: bool
    type: str = "text"
    data: Optional[str] = None
    original_id: Optional[str] = None
    index: Optional[int] = None
    error: Optional[str] = None
    # downloaded image content, never serialized
    image_bytes: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedResult":
        return cls(
            id=str(data.get("id", "")),
            found=bool(data.get("found")),
            type=data.get("type") or "text",
            data=data.get("data"),
            original_id=data.get("originalId"),
            index=data.get("index"),
            error=data.get("error"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "found": self.found, "type": self.type}
        for key, value in (
            ("data", self.data),
            ("originalId", self.original_id),
            ("index", self.index),
            ("error", self.error),
        ):
            if value is not None:
                out[key] = value
        return out


@dataclass
class ScrapeOptions:
    """Per-request extraction options (wire name in comments)."""
    wait_for_js: bool = True             # waitForJs
    timeout: int = 30000                 # timeout (ms)
    wait_for_selector: Optional[str] = None
    max_results: int = 20                # maxResults
    extraction_mode: ExtractionMode = ExtractionMode.AUTO
    data_layer_preset: Optional[str] = None
    data_layer_config: Optional[Dict[str, Any]] = None
    xhr_preset: Optional[str] = None
    fallback_on_error: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ScrapeOptions":
        data = data or {}
        opts = cls()
        if data.get("waitForJs") is not None:
            opts.wait_for_js = bool(data["waitForJs"])
        if data.get("timeout") is not None:
            opts.timeout = int(data["timeout"])
        opts.wait_for_selector = data.get("waitForSelector") or None
        if data.get("maxResults") is not None:
            opts.max_results = int(data["maxResults"])
        if data.get("extractionMode"):
            opts.extraction_mode = ExtractionMode(data["extractionMode"])
        opts.data_layer_preset = data.get("dataLayerPreset") or None
        opts.data_layer_config = data.get("dataLayerConfig") or None
        opts.xhr_preset = data.get("xhrPreset") or None
        if data.get("fallbackOnError") is not None:
            opts.fallback_on_error = bool(data["fallbackOnError"])
        return opts

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "waitForJs": self.wait_for_js,
            "timeout": self.timeout,
            "maxResults": self.max_results,
            "extractionMode": self.extraction_mode.value,
            "fallbackOnError": self.fallback_on_error,
        }
        for key, value in (
            ("waitForSelector", self.wait_for_selector),
            ("dataLayerPreset", self.data_layer_preset),
            ("dataLayerConfig", self.data_layer_config),
            ("xhrPreset", self.xhr_preset),
        ):
            if value is not None:
                data[key] = value
        return data


@dataclass
class ScrapeRequest:
    url: str
    selectors: List[SelectorConfig] = field(default_factory=list)
    options: ScrapeOptions = field(default_factory=ScrapeOptions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "selectors": [s.to_dict() for s in self.selectors],
            "options": self.options.to_dict(),
        }


@dataclass
class Timing:
    page_load: int = 0
    extraction: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"pageLoad": self.page_load, "extraction": self.extraction, "total": self.total}


Item = Union[BusResult, Dict[str, Any]]


def item_to_dict(item: Item) -> Dict[str, Any]:
    return item.to_dict() if isinstance(item, BusResult) else dict(item)


@dataclass
class ExtractionResult:
    """Outcome of one strategy run.

    ``items`` holds canonical records (or mapped dataLayer dicts);
    ``results`` holds per-selector results for the selector strategy.
    """
    source: StrategyName
    success: bool = False
    items: List[Item] = field(default_factory=list)
    results: List[ExtractedResult] = field(default_factory=list)
    total_found: int = 0
    timing_ms: int = 0
    errors: List[str] = field(default_factory=list)
    intercepted_url: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return bool(self.items) or any(r.found for r in self.results)


@dataclass
class ScrapeResponse:
    success: bool
    url: str
    results: List[ExtractedResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    timing: Timing = field(default_factory=Timing)
    data_layer_items: Optional[List[Dict[str, Any]]] = None
    total_items_found: Optional[int] = None
    extraction_mode: Optional[str] = None
    intercepted_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "url": self.url,
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
            "timing": self.timing.to_dict(),
        }
        for key, value in (
            ("dataLayerItems", self.data_layer_items),
            ("totalItemsFound", self.total_items_found),
            ("extractionMode", self.extraction_mode),
            ("interceptedUrl", self.intercepted_url),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrapeResponse":
        timing = data.get("timing") or {}
        return cls(
            success=bool(data.get("success")),
            url=str(data.get("url", "")),
            results=[ExtractedResult.from_dict(r) for r in data.get("results") or []],
            errors=[str(e) for e in data.get("errors") or []],
            timing=Timing(
                page_load=int(timing.get("pageLoad", 0) or 0),
                extraction=int(timing.get("extraction", 0) or 0),
                total=int(timing.get("total", 0) or 0),
            ),
            data_layer_items=data.get("dataLayerItems"),
            total_items_found=data.get("totalItemsFound"),
            extraction_mode=data.get("extractionMode"),
            intercepted_url=data.get("interceptedUrl"),
        )
