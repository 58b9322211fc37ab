"""HTTP client for the scrape backend (``/api/scrape``, ``/api/health``).

Used by the plugin workflow and the CLI. Adds retry with exponential
backoff and sequential batch fetching on top of plain requests.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import httpx
from loguru import logger

from layersync.config import Config
from layersync.core.errors import ScrapeApiError
from layersync.core.models import ScrapeOptions, ScrapeRequest, ScrapeResponse
from layersync.utils.image_handler import fetch_image_as_bytes

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class BatchResult:
    """Outcome of a sequential multi-URL fetch.

    Attributes:
        responses: Responses for the URLs processed before any failure
        failed_url: URL that still failed after all retries, if any
        error: Message of that final failure
    """
    responses: List[ScrapeResponse] = field(default_factory=list)
    failed_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.failed_url is None


def _error_message(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        if body.get("error"):
            return str(body["error"])
        if body.get("errors"):
            return ", ".join(str(e) for e in body["errors"])
    return f"HTTP {response.status_code}: {response.reason_phrase}"


class ScrapeApiClient:
    """Async client for the scrape backend.

    Args:
        config: Application configuration (``api_client`` section)
        client: Optional pre-built ``httpx.AsyncClient`` (tests pass one
            with a ``MockTransport``)
        sleep: Backoff sleep, ``asyncio.sleep`` by default
    """

    def __init__(
        self,
        config: Config,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.base_url = config.api_client.base_url.rstrip("/")
        self._client = client
        self._sleep = sleep

    def get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.api_client.timeout)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with self.get_client() as client:
            return await client.request(method, url, **kwargs)

    async def scrape(self, request: Union[ScrapeRequest, Dict[str, Any]]) -> ScrapeResponse:
        """POST one scrape request.

        Raises:
            ScrapeApiError: Non-2xx status, message taken from the body
                when it has one
            httpx.HTTPError: Transport failure
        """
        body = request.to_dict() if isinstance(request, ScrapeRequest) else request
        response = await self._request("POST", f"{self.base_url}/api/scrape", json=body)
        if not response.is_success:
            raise ScrapeApiError(_error_message(response), response.status_code)
        return ScrapeResponse.from_dict(response.json())

    async def health_check(self) -> bool:
        try:
            response = await self._request("GET", f"{self.base_url}/api/health")
        except httpx.HTTPError as e:
            logger.debug(f"health check failed: {e}")
            return False
        return response.is_success

    async def fetch_image_bytes(self, url: str) -> bytes:
        if self._client is not None:
            return await fetch_image_as_bytes(url, client=self._client)
        async with self.get_client() as client:
            return await fetch_image_as_bytes(url, client=client)

    async def fetch_with_retry(
        self,
        request: Union[ScrapeRequest, Dict[str, Any]],
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> ScrapeResponse:
        """Scrape with exponential backoff.

        Waits ``base_delay * 2**attempt`` seconds between attempts. Client
        errors (4xx) are not retried. The last error is re-raised.
        """
        attempts = max_attempts or self.config.api_client.max_attempts
        delay = self.config.api_client.base_delay if base_delay is None else base_delay

        for attempt in range(attempts):
            try:
                return await self.scrape(request)
            except ScrapeApiError as e:
                if e.status_code is not None and 400 <= e.status_code < 500:
                    raise
                if attempt == attempts - 1:
                    raise
                logger.warning(f"⚠️ Scrape attempt {attempt + 1}/{attempts} failed: {e}")
            except httpx.HTTPError as e:
                if attempt == attempts - 1:
                    raise
                logger.warning(f"⚠️ Scrape attempt {attempt + 1}/{attempts} failed: {e}")
            await self._sleep(delay * 2 ** attempt)
        raise ScrapeApiError("No attempts made")

    async def fetch_batch(
        self,
        urls: Sequence[str],
        options: Optional[ScrapeOptions] = None,
        on_progress: Optional[Callable[[int, int, str], None]] = None,
    ) -> BatchResult:
        """Fetch URLs one at a time.

        The first URL that still fails after retries ends the batch;
        responses gathered before it are kept.
        """
        batch = BatchResult()
        total = len(urls)
        for i, url in enumerate(urls, start=1):
            if on_progress:
                on_progress(i, total, url)
            request = ScrapeRequest(url=url, options=options or ScrapeOptions())
            try:
                response = await self.fetch_with_retry(request)
            except (ScrapeApiError, httpx.HTTPError) as e:
                logger.error(f"❌ Batch stopped at {url}: {e}")
                batch.failed_url = url
                batch.error = str(e) or e.__class__.__name__
                break
            batch.responses.append(response)
            logger.info(f"📦 [{i}/{total}] {url[:80]} -> {len(response.data_layer_items or [])} items")
        return batch
