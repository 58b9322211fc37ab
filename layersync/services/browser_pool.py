"""Browser Pool - shared Playwright browser plus per-run page sessions.

``BrowserPool`` keeps one launched browser for the whole process with a
reference count. ``BrowserSession`` is the short-lived resource a single
pipeline run owns: one context and one page, opened lazily on first use
and always closed in ``__aexit__``.

Note:
    - The session records JSON responses from page creation on, so XHR
      interception sees requests fired during the initial navigation.
    - Navigation happens once per session; a failed load is remembered and
      re-raised to every later strategy instead of retrying the page.
"""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from layersync.config import Config


class BrowserPool:
    _lock = asyncio.Lock()
    _playwright: Optional[Playwright] = None
    _browser: Optional[Browser] = None
    _ref: int = 0

    @classmethod
    @asynccontextmanager
    async def acquire(cls, launch_kwargs: Dict[str, Any], browser_type: str = "chromium") -> AsyncIterator[Browser]:
        async with cls._lock:
            if cls._playwright is None:
                cls._playwright = await async_playwright().start()
            if cls._browser is None:
                launcher = getattr(cls._playwright, browser_type, cls._playwright.chromium)
                cls._browser = await launcher.launch(**launch_kwargs)
                logger.info(f"[BrowserPool] Shared {browser_type} browser started")
            cls._ref += 1

        try:
            yield cls._browser
        finally:
            async with cls._lock:
                cls._ref = max(0, cls._ref - 1)

    @classmethod
    async def shutdown(cls) -> None:
        async with cls._lock:
            if cls._browser:
                try:
                    await cls._browser.close()
                except Exception as exc:  # noqa: BLE001
                    logger.debug(f"[BrowserPool] browser close failed: {exc}")
                cls._browser = None
            if cls._playwright:
                try:
                    await cls._playwright.stop()
                except Exception as exc:  # noqa: BLE001
                    logger.debug(f"[BrowserPool] playwright stop failed: {exc}")
                cls._playwright = None
            cls._ref = 0
            logger.info("[BrowserPool] Shared browser closed")


@dataclass
class CapturedResponse:
    url: str
    status: int
    data: Any


class BrowserSession:
    """One page for one pipeline run.

    Args:
        config: Application configuration (browser and scraper sections)
        url: Page every browser strategy reads from
        timeout_ms: Navigation timeout
        wait_for_js: Wait for network idle instead of DOM ready
        wait_for_selector: Optional selector awaited after navigation
    """

    def __init__(
        self,
        config: Config,
        url: str,
        timeout_ms: int = 30000,
        wait_for_js: bool = True,
        wait_for_selector: Optional[str] = None,
    ) -> None:
        self.config = config
        self.url = url
        self.timeout_ms = timeout_ms
        self.wait_for_js = wait_for_js
        self.wait_for_selector = wait_for_selector
        self.responses: List[CapturedResponse] = []
        self.page_load_ms = 0
        self._stack = AsyncExitStack()
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._loaded = False
        self._load_error: Optional[BaseException] = None

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _launch_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headless": self.config.browser.headless}
        if self.config.browser.proxy:
            kwargs["proxy"] = {"server": self.config.browser.proxy}
        return kwargs

    async def _open(self) -> Page:
        browser = await self._stack.enter_async_context(
            BrowserPool.acquire(self._launch_kwargs(), self.config.browser.browser_type)
        )
        self._context = await browser.new_context(
            user_agent=self.config.scraper.user_agent,
            viewport=self.config.browser.viewport,
        )
        page = await self._context.new_page()
        blocked = set(self.config.browser.block_resources)

        async def block_resources(route, request):
            if request.resource_type in blocked:
                await route.abort()
            else:
                await route.continue_()

        await page.route("**/*", block_resources)
        page.on("response", self._handle_response)
        self._page = page
        logger.debug("🌐 Browser page opened")
        return page

    async def _handle_response(self, response) -> None:
        """Record JSON responses for later interception."""
        try:
            ctype = (response.headers.get("content-type") or "").lower()
        except Exception:  # noqa: BLE001
            ctype = ""
        if "application/json" not in ctype:
            return
        try:
            try:
                data = await response.json()
            except Exception:  # noqa: BLE001
                data = json.loads(await response.text())
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"⚠️ JSON parse failed for {response.url[:80]}: {exc}")
            return
        self.responses.append(CapturedResponse(url=response.url, status=response.status, data=data))

    async def page(self) -> Page:
        """The loaded page; navigates on first call."""
        if self._load_error is not None:
            raise self._load_error
        if self._page is None:
            try:
                await self._open()
            except Exception as exc:
                self._load_error = exc
                raise
        if not self._loaded:
            start = time.monotonic()
            try:
                await self._page.goto(
                    self.url,
                    wait_until="networkidle" if self.wait_for_js else "domcontentloaded",
                    timeout=self.timeout_ms,
                )
                if self.wait_for_selector:
                    await self._page.wait_for_selector(self.wait_for_selector, timeout=self.timeout_ms)
            except Exception as exc:
                self._load_error = exc
                logger.warning(f"⚠️ Page load failed: {exc}")
                raise
            finally:
                self.page_load_ms = int((time.monotonic() - start) * 1000)
            self._loaded = True
            logger.info(f"📄 Page loaded in {self.page_load_ms}ms: {self.url[:80]}")
        return self._page

    async def close(self) -> None:
        if self._page is not None:
            try:
                await self._page.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug(f"page close failed: {exc}")
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug(f"context close failed: {exc}")
        self._page = None
        self._context = None
        await self._stack.aclose()
