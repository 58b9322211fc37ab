"""Scrape pipeline - request validation, strategy routing and response shaping.

Flow:
    payload -> validate_request() -> ScrapeRequest
            -> DecisionEngine.decide() -> ordered chain
            -> ExtractionEngine.run() over strategies sharing one BrowserSession
            -> ScrapeResponse

The browser session opens lazily, so a request answered by the Direct API
never launches a browser.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from loguru import logger

from layersync.adapters.base import ExtractionStrategy
from layersync.adapters.datalayer import DataLayerConfig, DataLayerStrategy, detect_preset, get_presets
from layersync.adapters.direct_api import DirectApiStrategy, parse_redbus_url
from layersync.adapters.selector import SelectorStrategy
from layersync.adapters.xhr_interceptor import XHR_PRESETS, InjectionStrategy, XhrInterceptStrategy
from layersync.config import Config
from layersync.core.errors import ScrapeInputError
from layersync.core.extraction_engine import ExtractionEngine
from layersync.core.models import (
    ExtractedResult,
    ExtractionMode,
    ScrapeOptions,
    ScrapeRequest,
    ScrapeResponse,
    SelectorConfig,
    StrategyName,
    Timing,
    item_to_dict,
)
from layersync.router.decision_engine import DecisionEngine, RouteContext
from layersync.services.browser_pool import BrowserSession

MAX_SELECTORS = 50
MAX_RESULTS_LIMIT = 100
TIMEOUT_CAP_MS = 55000
NO_STRATEGY_ERROR = "No extraction strategy available for this URL. Provide selectors or a dataLayer preset."

SessionFactory = Callable[[Config, str, ScrapeOptions], BrowserSession]


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def sanitize_url(url: str) -> str:
    """Add ``https://`` when the scheme is missing."""
    if not url.startswith("http://") and not url.startswith("https://"):
        return f"https://{url}"
    return url


def _validate_selectors(raw: Any, required: bool) -> List[SelectorConfig]:
    if raw is None and not required:
        return []
    if not isinstance(raw, list):
        raise ScrapeInputError("Selectors array is required for selector extraction mode")
    if required and not raw:
        raise ScrapeInputError("At least one selector is required")
    if len(raw) > MAX_SELECTORS:
        raise ScrapeInputError(f"Too many selectors. Maximum is {MAX_SELECTORS}.")
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("id") or not entry.get("selector"):
            raise ScrapeInputError("Each selector must have an id and selector property")
    return [SelectorConfig.from_dict(entry) for entry in raw]


def validate_request(payload: Any, config: Optional[Config] = None) -> ScrapeRequest:
    """Check a scrape request body and apply defaults and caps.

    Args:
        payload: Decoded JSON body ``{url, selectors?, options?}``
        config: Supplies defaults and extra dataLayer presets

    Returns:
        A request ready for ``ScrapePipeline.run``.

    Raises:
        ScrapeInputError: With the message to show the caller.
    """
    if not isinstance(payload, dict):
        raise ScrapeInputError("Request body must be a JSON object")
    url = payload.get("url")
    if not url or not isinstance(url, str):
        raise ScrapeInputError("URL is required")
    url = sanitize_url(url.strip())
    if not is_valid_url(url):
        raise ScrapeInputError("Invalid URL. Please provide a valid HTTP/HTTPS URL.")

    raw_options = payload.get("options") or {}
    if not isinstance(raw_options, dict):
        raise ScrapeInputError("options must be an object")
    try:
        options = ScrapeOptions.from_dict(raw_options)
    except ValueError as exc:
        modes = ", ".join(m.value for m in ExtractionMode)
        raise ScrapeInputError(f"Invalid options: {exc}. Extraction modes: {modes}") from exc
    except TypeError as exc:
        raise ScrapeInputError(f"Invalid options: {exc}") from exc

    if config is not None:
        if raw_options.get("maxResults") is None:
            options.max_results = config.scraper.max_results
        if raw_options.get("timeout") is None:
            options.timeout = config.scraper.timeout_ms
        if raw_options.get("waitForJs") is None:
            options.wait_for_js = config.scraper.wait_for_js
        if raw_options.get("fallbackOnError") is None:
            options.fallback_on_error = config.scraper.fallback_on_error
    options.timeout = min(options.timeout, TIMEOUT_CAP_MS)
    options.max_results = max(1, min(options.max_results, MAX_RESULTS_LIMIT))

    selector_mode = options.extraction_mode == ExtractionMode.SELECTORS and not (
        options.data_layer_preset or options.data_layer_config or options.xhr_preset
    )
    selectors = _validate_selectors(payload.get("selectors"), required=selector_mode)

    presets = get_presets(config)
    if options.data_layer_preset and options.data_layer_preset not in presets:
        raise ScrapeInputError(
            f"Unknown dataLayer preset: {options.data_layer_preset}. Available: {', '.join(presets)}"
        )
    if options.data_layer_config is not None:
        DataLayerConfig.from_dict(options.data_layer_config)
    if options.xhr_preset and options.xhr_preset not in XHR_PRESETS:
        raise ScrapeInputError(
            f"Unknown XHR preset: {options.xhr_preset}. Available: {', '.join(XHR_PRESETS)}"
        )

    return ScrapeRequest(url=url, selectors=selectors, options=options)


def _default_session(config: Config, url: str, options: ScrapeOptions) -> BrowserSession:
    return BrowserSession(
        config,
        url,
        timeout_ms=options.timeout,
        wait_for_js=options.wait_for_js,
        wait_for_selector=options.wait_for_selector,
    )


class ScrapePipeline:
    """One scrape request end to end.

    Args:
        config: Application configuration
        http_client: Optional client shared with the Direct API strategy
        session_factory: Builds the browser session (swapped out in tests)
        decision_engine: Chain policy
    """

    def __init__(
        self,
        config: Config,
        http_client: Optional[httpx.AsyncClient] = None,
        session_factory: Optional[SessionFactory] = None,
        decision_engine: Optional[DecisionEngine] = None,
    ) -> None:
        self.config = config
        self.http_client = http_client
        self.session_factory = session_factory or _default_session
        self.decision_engine = decision_engine or DecisionEngine()
        self.extraction_engine = ExtractionEngine()

    def _datalayer_config(self, request: ScrapeRequest) -> Tuple[DataLayerConfig, Optional[str]]:
        options = request.options
        if options.data_layer_config:
            return DataLayerConfig.from_dict(options.data_layer_config), None
        presets = get_presets(self.config)
        for name in (options.data_layer_preset, options.xhr_preset, detect_preset(request.url)):
            if name and name in presets:
                return presets[name], name
        return presets["products"], "products"

    def route(self, request: ScrapeRequest) -> Dict[str, Any]:
        options = request.options
        provider = detect_preset(request.url)
        xhr_name = options.xhr_preset or provider
        ctx = RouteContext(
            url=request.url,
            mode=options.extraction_mode,
            provider=provider,
            has_xhr_preset=bool(xhr_name and xhr_name in XHR_PRESETS),
            has_search_params=parse_redbus_url(request.url) is not None,
            has_selectors=bool(request.selectors),
            has_datalayer_config=bool(options.data_layer_preset or options.data_layer_config),
            fallback_on_error=options.fallback_on_error,
        )
        return self.decision_engine.decide(ctx)

    def build_stages(
        self, request: ScrapeRequest, chain: List[StrategyName], session: BrowserSession
    ) -> List[ExtractionStrategy]:
        options = request.options
        xhr_name = options.xhr_preset or detect_preset(request.url) or "redbus"
        xhr_preset = XHR_PRESETS.get(xhr_name, XHR_PRESETS["redbus"])

        stages: List[ExtractionStrategy] = []
        for name in chain:
            if name == StrategyName.DIRECT:
                stages.append(DirectApiStrategy(self.config, client=self.http_client))
            elif name == StrategyName.XHR:
                stages.append(XhrInterceptStrategy(session, xhr_preset))
            elif name == StrategyName.INJECTION:
                stages.append(InjectionStrategy(session, max_items=xhr_preset.max_items))
            elif name == StrategyName.DATALAYER:
                dl_config, preset_name = self._datalayer_config(request)
                stages.append(DataLayerStrategy(session, dl_config, preset_name))
            elif name == StrategyName.SELECTORS:
                stages.append(SelectorStrategy(session, request.selectors))
        return stages

    async def run(self, request: ScrapeRequest) -> ScrapeResponse:
        """Run the fallback chain for a validated request."""
        started = time.monotonic()
        decision = self.route(request)
        chain: List[StrategyName] = decision["chain"]
        logger.info(f"🧭 {request.url[:80]} -> {' > '.join(decision['chain_names']) or 'nothing'}")
        for reason in decision["reasons"]:
            logger.debug(f"   reason: {reason}")

        if not chain:
            return ScrapeResponse(
                success=False,
                url=request.url,
                errors=[NO_STRATEGY_ERROR],
                timing=Timing(total=int((time.monotonic() - started) * 1000)),
            )

        async with self.session_factory(self.config, request.url, request.options) as session:
            stages = self.build_stages(request, chain, session)
            result = await self.extraction_engine.run(stages, request.url, request.options)
            page_load = session.page_load_ms

        timing = Timing(
            page_load=page_load,
            extraction=result.timing_ms,
            total=int((time.monotonic() - started) * 1000),
        )
        if not result.has_data:
            return ScrapeResponse(
                success=False,
                url=request.url,
                results=result.results,
                errors=result.errors or ["No data extracted"],
                timing=timing,
                extraction_mode=result.source.value,
            )

        if not result.items:
            return ScrapeResponse(
                success=True,
                url=request.url,
                results=result.results,
                errors=result.errors,
                timing=timing,
                extraction_mode=result.source.value,
            )

        items = [item_to_dict(item) for item in result.items[: request.options.max_results]]
        return ScrapeResponse(
            success=True,
            url=request.url,
            results=[
                ExtractedResult(id=f"item_{i}", found=True, type="text", data=json.dumps(item, ensure_ascii=False))
                for i, item in enumerate(items)
            ],
            errors=result.errors,
            timing=timing,
            data_layer_items=items,
            total_items_found=result.total_found or len(result.items),
            extraction_mode=result.source.value,
            intercepted_url=result.intercepted_url,
        )


async def scrape(payload: Any, config: Config, **kwargs) -> ScrapeResponse:
    """Validate a raw request body and run it."""
    request = validate_request(payload, config)
    return await ScrapePipeline(config, **kwargs).run(request)
