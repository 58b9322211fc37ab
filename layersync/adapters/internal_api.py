"""Internal bus-search API client.

The provisioned endpoint is not live yet: every call checks the
``internal_api`` config section first and raises
``InternalApiNotConfigured`` until it is enabled with a key. Mock listings
keep the plugin usable in the meantime.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional

import httpx
from loguru import logger

from layersync.config import Config
from layersync.core.errors import InternalApiNotConfigured, ScrapeApiError
from layersync.core.models import BusResult
from layersync.core.normalizer import DIRECT_API_FIELDS, FieldProfile, format_inr, normalize_bus

SEARCH_PATH = "/api/v1/figma/bus-search"

# Listings already use the canonical camelCase names
INTERNAL_API_FIELDS: FieldProfile = {
    **DIRECT_API_FIELDS,
    "id": ["id"],
    "operator": ["operator"],
    "duration_minutes": ["durationMinutes"],
    "price": ["price"],
    "original_price": [],
    "rating": ["rating"],
    "number_of_reviews": ["totalRatings"],
    "seats_available": ["seatsAvailable"],
    "route_name": ["route"],
    "is_primo": ["isPrimarySeller"],
}

_MONTHS = {
    "Jan": "01", "Feb": "02", "Mar": "03", "Apr": "04",
    "May": "05", "Jun": "06", "Jul": "07", "Aug": "08",
    "Sep": "09", "Oct": "10", "Nov": "11", "Dec": "12",
}
_URL_DATE_RE = re.compile(r"(\d{1,2})-(\w{3})-(\d{4})")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class ApiStatus:
    configured: bool
    message: str


def api_status(config: Config) -> ApiStatus:
    internal = config.internal_api
    if not internal.enabled:
        return ApiStatus(False, "Internal API is not enabled. Contact Engineering team to enable.")
    if not internal.api_key:
        return ApiStatus(False, "API key not configured. Contact Engineering team to get API key.")
    return ApiStatus(True, "API is configured and ready.")


def convert_date_format(value: str, today: Optional[date] = None) -> str:
    """DD-Mon-YYYY (URL form) to YYYY-MM-DD (API form).

    ISO dates pass through; anything else becomes today's date.
    """
    match = _URL_DATE_RE.search(value)
    if match:
        day, month, year = match.groups()
        return f"{year}-{_MONTHS.get(month, '01')}-{day.zfill(2)}"
    if _ISO_DATE_RE.match(value):
        return value
    return (today or date.today()).isoformat()


class InternalApiClient:
    def __init__(self, config: Config, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client

    def get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.api_client.timeout)

    async def fetch_bus_listings(
        self, from_city_id: int, to_city_id: int, journey_date: str, max_results: int = 10
    ) -> List[BusResult]:
        """Search buses through the internal API.

        Raises:
            InternalApiNotConfigured: API disabled or key missing
            ScrapeApiError: Non-2xx answer or ``success: false``
        """
        status = api_status(self.config)
        if not status.configured:
            raise InternalApiNotConfigured(
                "Internal API is not configured. Please use DataLayer or Selector mode as fallback."
            )

        body = {
            "fromCityId": from_city_id,
            "toCityId": to_city_id,
            "journeyDate": convert_date_format(journey_date),
            "maxResults": max_results,
        }
        headers = {"Content-Type": "application/json", "X-Figma-Plugin-Key": self.config.internal_api.api_key}
        url = f"{self.config.internal_api.base_url}{SEARCH_PATH}"
        logger.info(f"🔐 Internal API search {from_city_id} -> {to_city_id} on {body['journeyDate']}")

        try:
            if self._client is not None:
                response = await self._client.post(url, json=body, headers=headers)
            else:
                async with self.get_client() as client:
                    response = await client.post(url, json=body, headers=headers)
        except httpx.TransportError as exc:
            raise ScrapeApiError("Cannot reach internal API. Are you connected to the RedBus network?") from exc

        payload: Any
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.is_success:
            error = payload.get("error") if isinstance(payload, dict) else None
            message = (error or {}).get("message") if isinstance(error, dict) else None
            raise ScrapeApiError(
                message or f"HTTP {response.status_code}: {response.reason_phrase}", response.status_code
            )
        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise ScrapeApiError((error or {}).get("message") or "Unknown API error")
        return [normalize_bus(bus, INTERNAL_API_FIELDS) for bus in payload.get("buses") or []]


def get_mock_bus_listings(count: int = 10) -> List[BusResult]:
    """Deterministic sample listings for UI work while the API is unavailable."""
    operators = ["FRESHBUS", "IntrCity SmartBus", "Orange Travels", "VRL Travels", "SRS Travels"]
    bus_types = ["A/C Sleeper (2+1)", "A/C Seater (2+2)", "Non A/C Sleeper", "Volvo Multi-Axle"]
    amenities = ["WiFi", "Charging Point", "Water Bottle", "Blanket", "Reading Light", "TV"]

    listings = []
    for i in range(count):
        hours, minutes = 6 + i % 3, (i * 15) % 60
        price = 500 + i * 100
        bus_type = bus_types[i % len(bus_types)]
        listings.append(
            BusResult(
                id=f"mock_bus_{i + 1}",
                operator=operators[i % len(operators)],
                bus_type=bus_type,
                is_ac=bus_type.startswith("A/C") or "Volvo" in bus_type,
                is_sleeper="Sleeper" in bus_type,
                is_seater="Seater" in bus_type,
                departure_time=f"{20 + i % 4:02d}:{(i * 15) % 60:02d}",
                arrival_time=f"{4 + i % 4:02d}:{(i * 20) % 60:02d}",
                duration=f"{hours}h {minutes}m",
                duration_minutes=hours * 60 + minutes,
                price=price,
                price_formatted=format_inr(price),
                rating=f"{3.5 + (i % 15) / 10:.1f}",
                number_of_reviews=500 + i * 200,
                seats_available=10 + i % 25,
                route="Bangalore to Tirupati",
                boarding_points=("Majestic", "Silk Board", "Electronic City"),
                dropping_points=("Tirupati Bus Stand", "Railway Station"),
                amenities=tuple(amenities[: 3 + i % 3]),
                is_primo=i % 2 == 0,
                cancellation_policy="Free cancellation until 6 hours before departure",
            )
        )
    return listings
