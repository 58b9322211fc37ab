import json
from datetime import date

import httpx
import pytest

from layersync.adapters.internal_api import (
    SEARCH_PATH,
    InternalApiClient,
    api_status,
    convert_date_format,
    get_mock_bus_listings,
)
from layersync.core.errors import InternalApiNotConfigured, ScrapeApiError


@pytest.fixture
def enabled(config):
    config.internal_api.enabled = True
    config.internal_api.api_key = "secret"
    return config


def client_for(handler, config):
    return InternalApiClient(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_status_messages(config):
    assert api_status(config).message == "Internal API is not enabled. Contact Engineering team to enable."
    config.internal_api.enabled = True
    assert api_status(config).message == "API key not configured. Contact Engineering team to get API key."
    config.internal_api.api_key = "k"
    assert api_status(config).configured


def test_convert_date_format():
    assert convert_date_format("23-Jan-2026") == "2026-01-23"
    assert convert_date_format("5-Mar-2026") == "2026-03-05"
    assert convert_date_format("2026-02-01") == "2026-02-01"
    assert convert_date_format("tomorrow", today=date(2026, 3, 4)) == "2026-03-04"


async def test_disabled_api_raises(config):
    with pytest.raises(InternalApiNotConfigured):
        await client_for(lambda r: httpx.Response(200), config).fetch_bus_listings(122, 71756, "23-Jan-2026")


async def test_search_normalizes_listings(enabled):
    def handler(request):
        assert request.url.path == SEARCH_PATH
        assert request.headers["x-figma-plugin-key"] == "secret"
        body = json.loads(request.content)
        assert body == {"fromCityId": 122, "toCityId": 71756, "journeyDate": "2026-01-23", "maxResults": 5}
        return httpx.Response(200, json={"success": True, "buses": [{
            "id": "b1", "operator": "IntrCity", "price": 650, "departureTime": "21:00",
            "arrivalTime": "06:30", "rating": 4.3, "seatsAvailable": 9, "route": "Bangalore to Tirupati",
        }]})

    buses = await client_for(handler, enabled).fetch_bus_listings(122, 71756, "23-Jan-2026", max_results=5)

    bus = buses[0]
    assert (bus.id, bus.operator, bus.price, bus.price_formatted) == ("b1", "IntrCity", 650, "₹650")
    assert bus.duration == "9h 30m"
    assert bus.seats_available == 9
    assert bus.route == "Bangalore to Tirupati"


async def test_error_answers(enabled):
    with pytest.raises(ScrapeApiError, match="upstream down") as excinfo:
        await client_for(
            lambda r: httpx.Response(503, json={"success": False, "error": {"message": "upstream down"}}), enabled,
        ).fetch_bus_listings(1, 2, "23-Jan-2026")
    assert excinfo.value.status_code == 503

    with pytest.raises(ScrapeApiError, match="Unknown API error"):
        await client_for(lambda r: httpx.Response(200, json={"success": False}), enabled).fetch_bus_listings(1, 2, "x")

    def unreachable(request):
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(ScrapeApiError, match="Cannot reach internal API"):
        await client_for(unreachable, enabled).fetch_bus_listings(1, 2, "23-Jan-2026")


def test_mock_listings():
    listings = get_mock_bus_listings(3)
    assert [b.id for b in listings] == ["mock_bus_1", "mock_bus_2", "mock_bus_3"]
    assert listings[0].price_formatted == "₹500"
    assert listings[1].is_seater is True
    assert listings[0].to_dict()["boardingPoints"] == ["Majestic", "Silk Board", "Electronic City"]
