"""CSS-selector strategy - evaluates each selector against the loaded page.

Every ``SelectorConfig`` is handled on its own: a broken selector yields a
``found=False`` result with an error and the rest keep going.
"""

from __future__ import annotations

import time
from typing import List, Sequence

from loguru import logger

from layersync.adapters.base import ExtractionStrategy
from layersync.core.errors import friendly_error
from layersync.core.models import (
    ExtractedResult,
    ExtractionResult,
    ScrapeOptions,
    SelectorConfig,
    StrategyName,
)
from layersync.services.browser_pool import BrowserSession

# Runs in the page with (element, {modifier, attribute, type})
ELEMENT_SCRIPT = """
(element, config) => {
    if (config.modifier === 'attr' && config.attribute) {
        return element.getAttribute(config.attribute) || '';
    }
    if (config.modifier === 'href' && element instanceof HTMLAnchorElement) {
        return element.href || '';
    }
    if (config.modifier === 'src' || config.type === 'image') {
        if (element instanceof HTMLImageElement) {
            return element.currentSrc || element.src || '';
        }
        const bg = window.getComputedStyle(element).backgroundImage;
        if (bg && bg !== 'none') {
            const match = bg.match(/url\\(['"]?(.*?)['"]?\\)/);
            if (match) return match[1];
        }
        const srcset = element.getAttribute('srcset');
        if (srcset) return srcset.split(',')[0].trim().split(' ')[0];
        return '';
    }
    if (config.modifier === 'html') {
        return element.innerHTML || '';
    }
    return (element.textContent || '').trim();
}
"""


async def extract_from_element(element, config: SelectorConfig) -> str:
    value = await element.evaluate(
        ELEMENT_SCRIPT,
        {"modifier": config.modifier, "attribute": config.attribute, "type": config.type},
    )
    return value if isinstance(value, str) else ""


async def extract_selector(page, config: SelectorConfig, max_results: int) -> List[ExtractedResult]:
    """Results for one selector: single, indexed or ``.all``.

    Args:
        page: Loaded Playwright page
        config: Selector request
        max_results: Cap on the number of ``.all`` matches returned

    Returns:
        One result, or one per matched element for ``.all``.
    """
    if config.modifier == "all":
        elements = await page.query_selector_all(config.selector)
        if not elements:
            return [ExtractedResult(id=config.id, found=False, type=config.type, error="No elements found")]
        results = []
        for index, element in enumerate(elements[:max_results]):
            results.append(
                ExtractedResult(
                    id=f"{config.id}_{index}",
                    original_id=config.id,
                    found=True,
                    data=await extract_from_element(element, config),
                    type=config.type,
                    index=index,
                )
            )
        return results

    if config.index is not None:
        elements = await page.query_selector_all(config.selector)
        if not elements:
            return [ExtractedResult(
                id=config.id, found=False, type=config.type,
                error=f"No elements found for selector: {config.selector}",
            )]
        if config.index >= len(elements):
            return [ExtractedResult(
                id=config.id, found=False, type=config.type,
                error=f"Index {config.index} out of bounds (found {len(elements)} elements)",
            )]
        element = elements[config.index]
    else:
        element = await page.query_selector(config.selector)
        if element is None:
            return [ExtractedResult(
                id=config.id, found=False, type=config.type,
                error=f"Element not found for selector: {config.selector}",
            )]

    data = await extract_from_element(element, config)
    return [ExtractedResult(id=config.id, found=True, data=data, type=config.type)]


class SelectorStrategy(ExtractionStrategy):
    name = StrategyName.SELECTORS

    def __init__(self, session: BrowserSession, selectors: Sequence[SelectorConfig]) -> None:
        self.session = session
        self.selectors = list(selectors)

    async def extract(self, url: str, options: ScrapeOptions) -> ExtractionResult:
        started = time.monotonic()
        if not self.selectors:
            return self._result(started, errors=["No selectors provided"])
        try:
            page = await self.session.page()
        except Exception as exc:  # noqa: BLE001
            return self._result(started, errors=[friendly_error(exc)])

        logger.info(f"🎯 Evaluating {len(self.selectors)} selectors")
        results: List[ExtractedResult] = []
        for config in self.selectors:
            try:
                results.extend(await extract_selector(page, config, options.max_results))
            except Exception as exc:  # noqa: BLE001
                logger.debug(f"selector {config.selector!r} failed: {exc}")
                results.append(
                    ExtractedResult(id=config.id, found=False, type=config.type, error=str(exc) or "Extraction error")
                )

        found = sum(1 for r in results if r.found)
        logger.info(f"🎯 {found}/{len(results)} selector results found")
        return self._result(
            started,
            success=found > 0,
            results=results,
            total_found=found,
            errors=[f"{r.id}: {r.error}" for r in results if not r.found and r.error],
        )
