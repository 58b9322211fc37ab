"""Direct-API strategy - calls the RedBus search endpoint without a browser.

The search page URL carries everything the endpoint needs:

    https://www.redbus.in/bus-tickets/...?fromCityId=122&toCityId=71756&onward=23-Jan-2026

Records come back at ``data.inventories`` and are normalized immediately;
raw inventory dicts never leave this module.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import httpx
from loguru import logger

from layersync.adapters.base import ExtractionStrategy
from layersync.config import Config
from layersync.core.errors import friendly_error
from layersync.core.models import ExtractionResult, ScrapeOptions, StrategyName
from layersync.core.normalizer import DIRECT_API_FIELDS, normalize_bus

SEARCH_PATH = "/rpw/api/searchResults"
MISSING_PARAMS_ERROR = "URL must contain fromCityId, toCityId, and date parameters"


@dataclass(frozen=True)
class BusSearchParams:
    from_city_id: int
    to_city_id: int
    journey_date: str  # DD-Mon-YYYY, e.g. 23-Jan-2026
    limit: int = 20
    offset: int = 0

    def to_query(self) -> Dict[str, str]:
        return {
            "fromCity": str(self.from_city_id),
            "toCity": str(self.to_city_id),
            "DOJ": self.journey_date,
            "limit": str(self.limit or 20),
            "offset": str(self.offset or 0),
            "meta": "true",
            "groupId": "0",
            "sectionId": "0",
            "sort": "0",
            "sortOrder": "0",
            "from": "initialLoad",
            "getUuid": "true",
            "bT": "1",
        }


def parse_redbus_url(url: str) -> Optional[BusSearchParams]:
    """Read city ids and journey date from a search page URL.

    Returns:
        Search params, or None when any of them is missing or malformed.
    """
    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        return None
    from_city = (query.get("fromCityId") or [""])[0]
    to_city = (query.get("toCityId") or [""])[0]
    journey_date = (query.get("onward") or query.get("doj") or [""])[0]
    if not from_city or not to_city or not journey_date:
        return None
    try:
        return BusSearchParams(int(from_city), int(to_city), journey_date)
    except ValueError:
        return None


def _headers(base_url: str, user_agent: str) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9",
        "User-Agent": user_agent,
        "Referer": f"{base_url}/bus-tickets/bangalore-to-tirupathi",
        "Origin": base_url,
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-origin",
    }


class DirectApiStrategy(ExtractionStrategy):
    """Fastest path: one POST, no page load."""

    name = StrategyName.DIRECT

    def __init__(self, config: Config, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client

    def get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            proxy=self.config.browser.proxy,
            timeout=self.config.provider.direct_timeout,
        )

    async def _post(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, params=params, headers=headers)
        async with self.get_client() as client:
            return await client.post(url, params=params, headers=headers)

    async def extract(self, url: str, options: ScrapeOptions) -> ExtractionResult:
        started = time.monotonic()
        params = parse_redbus_url(url)
        if params is None:
            return self._result(started, errors=[MISSING_PARAMS_ERROR])

        params = BusSearchParams(
            params.from_city_id, params.to_city_id, params.journey_date, limit=options.max_results
        )
        base_url = self.config.provider.base_url
        endpoint = f"{base_url}{SEARCH_PATH}"
        logger.info(f"📡 Direct API call: {endpoint} ({params.from_city_id} -> {params.to_city_id}, {params.journey_date})")

        try:
            response = await self._post(endpoint, params.to_query(), _headers(base_url, self.config.scraper.user_agent))
        except httpx.TimeoutException:
            logger.warning("❌ Direct API failed: request timed out")
            return self._result(started, errors=["Request timed out"])
        except httpx.HTTPError as exc:
            logger.warning(f"❌ Direct API failed: {exc}")
            return self._result(started, errors=[friendly_error(exc)])

        if not response.is_success:
            message = f"HTTP {response.status_code}: {response.reason_phrase}"
            logger.warning(f"❌ Direct API failed: {message}")
            return self._result(started, errors=[message])

        try:
            payload: Any = response.json()
        except ValueError:
            return self._result(started, errors=["Direct API returned a non-JSON response"])

        if not isinstance(payload, dict) or not payload.get("success"):
            message = (payload.get("message") if isinstance(payload, dict) else None) or "API returned unsuccessful response"
            logger.warning(f"❌ Direct API failed: {message}")
            return self._result(started, errors=[str(message)])

        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        inventories = data.get("inventories")
        if not isinstance(inventories, list):
            return self._result(started, success=True, errors=["Direct API response has no inventories list"])

        meta = data.get("metaData") if isinstance(data.get("metaData"), dict) else {}
        total = meta.get("totalCount") if isinstance(meta.get("totalCount"), int) else len(inventories)
        items = [normalize_bus(bus, DIRECT_API_FIELDS) for bus in inventories]
        logger.success(f"✅ Direct API: {len(items)} buses returned ({total} total)")
        return self._result(started, success=True, items=items, total_found=total)
