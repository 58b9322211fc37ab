"""UI side of the plugin: fetch data from the backend, hand it to the sandbox.

``PluginWorkflow`` plays the role of the plugin panel. It owns the
backend client, talks to a ``SandboxController`` with the same messages
the real UI sends, and refuses a new fetch while one is outstanding.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from layersync.core.errors import LayerSyncError, ScrapeApiError
from layersync.core.models import ExtractedResult, ExtractionMode, ScrapeOptions, ScrapeRequest, ScrapeResponse
from layersync.plugin.controller import SandboxController
from layersync.services.api_client import BatchResult, ScrapeApiClient
from layersync.storage.store import history_entry

NO_BUS_DATA_ERROR = "No bus data found. Check the URL or try a different route."


class FetchInProgress(LayerSyncError):
    """A fetch was requested while another one is still running."""


class PluginWorkflow:
    """Drives fetch -> apply round trips.

    Args:
        client: Scrape backend client
        controller: Sandbox side; its ``post`` is routed back here
        on_message: Optional observer for every sandbox message
    """

    def __init__(
        self,
        client: ScrapeApiClient,
        controller: SandboxController,
        on_message: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        self.client = client
        self.controller = controller
        self.on_message = on_message
        self.inbox: List[Dict[str, Any]] = []
        self.busy = False
        controller.post_message = self._receive

    def _receive(self, message: Dict[str, Any]) -> None:
        self.inbox.append(message)
        if self.on_message:
            self.on_message(message)

    async def _send(self, message: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Deliver one message to the sandbox and return its replies."""
        start = len(self.inbox)
        await self.controller.handle(message)
        return self.inbox[start:]

    def _begin(self) -> None:
        if self.busy:
            raise FetchInProgress("A fetch is already in progress")
        self.busy = True

    def _record_history(self, url: str, items: Sequence[Dict[str, Any]]) -> None:
        storage = self.controller.storage
        if storage is None or not items:
            return
        route_name = str(items[0].get("route") or "")
        storage.add_history_item(history_entry(url, route_name, len(items)))

    async def fetch_items(
        self,
        url: str,
        mode: ExtractionMode = ExtractionMode.AUTO,
        max_items: int = 10,
        data_layer_preset: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch listing records for ``url`` (auto, xhr, direct or dataLayer mode).

        Raises:
            FetchInProgress: Another fetch is running
            ScrapeApiError: Backend failure or nothing extracted
        """
        self._begin()
        url = url.strip()
        try:
            options = ScrapeOptions(
                extraction_mode=mode,
                max_results=max_items,
                data_layer_preset=data_layer_preset,
                xhr_preset="redbus" if mode == ExtractionMode.XHR else None,
                timeout=45000,
            )
            response = await self.client.fetch_with_retry(ScrapeRequest(url=url, options=options))
            items = self._items_from(response)
            logger.success(f"✅ {response.extraction_mode or mode.value}: found {len(items)} records")
            self._record_history(url, items)
            return items
        finally:
            self.busy = False

    @staticmethod
    def _items_from(response: ScrapeResponse) -> List[Dict[str, Any]]:
        if not response.success:
            raise ScrapeApiError(", ".join(response.errors) or "Extraction failed")
        if not response.data_layer_items:
            raise ScrapeApiError(NO_BUS_DATA_ERROR)
        return list(response.data_layer_items)

    async def apply_items(self, items: Sequence[Dict[str, Any]], scope: str = "selection") -> Dict[str, Any]:
        """Project records onto indexed frames; returns the final sandbox message."""
        replies = await self._send({"type": "apply-datalayer", "items": list(items), "scope": scope})
        return replies[-1] if replies else {}

    async def _with_images(self, results: List[ExtractedResult]) -> List[ExtractedResult]:
        for result in results:
            if result.type == "image" and result.found and result.data:
                try:
                    result.image_bytes = await self.client.fetch_image_bytes(result.data)
                except Exception as e:  # noqa: BLE001
                    logger.warning(f"⚠️ Image fetch failed for {result.id}: {e}")
                    result.found = False
                    result.error = "Image fetch failed"
        return results

    async def sync(
        self,
        url: str,
        scope: str = "selection",
        wait_for_js: bool = True,
        include_images: bool = True,
    ) -> Dict[str, Any]:
        """Selector-mode round trip: scan layers, scrape, write results back.

        Returns the final sandbox message (``sync-complete`` or ``error``).
        """
        self._begin()
        try:
            replies = await self._send({
                "type": "sync",
                "url": url.strip(),
                "scope": scope,
                "options": {"waitForJs": wait_for_js, "includeImages": include_images},
            })
            fetch = next((m for m in replies if m.get("type") == "fetch-data"), None)
            if fetch is None:
                return replies[-1] if replies else {}

            response = await self.client.scrape({
                "url": fetch["url"],
                "selectors": fetch["selectors"],
                "options": {"waitForJs": wait_for_js, "timeout": 30000, "extractionMode": ExtractionMode.SELECTORS.value},
            })
            if not response.success:
                message = {"type": "error", "message": ", ".join(response.errors) or "Scraping failed"}
                self._receive(message)
                return message

            results = response.results
            if include_images:
                results = await self._with_images(results)
            await self.controller.handle(_apply_data_message(results))
            return self.inbox[-1]
        finally:
            self.busy = False

    async def fetch_batch(self, urls: Sequence[str], max_items: int = 10) -> BatchResult:
        """Sequential multi-URL fetch; stops at the first URL that keeps failing."""
        self._begin()
        try:
            batch = await self.client.fetch_batch(
                urls,
                ScrapeOptions(max_results=max_items, timeout=45000),
            )
            for response in batch.responses:
                self._record_history(response.url, response.data_layer_items or [])
            return batch
        finally:
            self.busy = False


def _apply_data_message(results: List[ExtractedResult]) -> Dict[str, Any]:
    payload = []
    for result in results:
        data = result.to_dict()
        if result.image_bytes is not None:
            data["bytes"] = result.image_bytes
        payload.append(data)
    return {"type": "apply-data", "results": payload}
