import json

import httpx
import pytest

from layersync.core.errors import ScrapeInputError
from layersync.core.models import ExtractionMode
from layersync.core.scraper import NO_STRATEGY_ERROR, ScrapePipeline, scrape, validate_request
from layersync.services.browser_pool import CapturedResponse

from .conftest import REDBUS_URL, FakePage, FakeSession, session_factory_for

XHR_PAYLOAD = {
    "inventoryItems": [
        {"id": "b1", "travels": "IntrCity SmartBus", "busType": "A/C Sleeper (2+1)", "fare": 1099,
         "depTime": "21:15", "arrTime": "04:40", "rating": 4.4, "availableSeats": 18},
        {"id": "b2", "travels": "SRS Travels", "busType": "Non A/C Seater", "fare": 650,
         "depTime": "23:00", "arrTime": "06:00", "availableSeats": 30},
    ]
}


def failing_transport(status=503):
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(status)))


def unused_session_factory(config, url, options):
    raise AssertionError("browser session should not be opened")


# --- validation -------------------------------------------------------------

@pytest.mark.parametrize("payload, message", [
    (None, "Request body must be a JSON object"),
    ({}, "URL is required"),
    ({"url": 42}, "URL is required"),
    ({"url": "http://"}, "Invalid URL. Please provide a valid HTTP/HTTPS URL."),
    ({"url": "https://x.com", "options": {"extractionMode": "selectors"}},
     "Selectors array is required for selector extraction mode"),
    ({"url": "https://x.com", "selectors": [], "options": {"extractionMode": "selectors"}},
     "At least one selector is required"),
    ({"url": "https://x.com", "selectors": [{"id": "a"}]}, "Each selector must have an id and selector property"),
    ({"url": "https://x.com", "selectors": [{"id": str(i), "selector": "p"} for i in range(51)]},
     "Too many selectors. Maximum is 50."),
])
def test_invalid_requests(payload, message):
    with pytest.raises(ScrapeInputError) as excinfo:
        validate_request(payload)
    assert str(excinfo.value) == message


def test_unknown_presets_and_modes():
    with pytest.raises(ScrapeInputError, match="Unknown dataLayer preset: nope"):
        validate_request({"url": "https://x.com", "options": {"dataLayerPreset": "nope"}})
    with pytest.raises(ScrapeInputError, match="Unknown XHR preset: nope"):
        validate_request({"url": "https://x.com", "options": {"xhrPreset": "nope"}})
    with pytest.raises(ScrapeInputError, match="Extraction modes"):
        validate_request({"url": "https://x.com", "options": {"extractionMode": "magic"}})
    with pytest.raises(ScrapeInputError, match="fieldMappings"):
        validate_request({"url": "https://x.com", "options": {"dataLayerConfig": {"itemsPath": "items"}}})


def test_url_scheme_is_added():
    assert validate_request({"url": "  www.redbus.in/bus-tickets  "}).url == "https://www.redbus.in/bus-tickets"


def test_caps_and_config_defaults(config):
    config.scraper.max_results = 7
    request = validate_request({"url": REDBUS_URL}, config)
    assert request.options.max_results == 7
    assert request.options.timeout == config.scraper.timeout_ms

    request = validate_request({"url": REDBUS_URL, "options": {"maxResults": 500, "timeout": 90000}}, config)
    assert request.options.max_results == 100
    assert request.options.timeout == 55000
    assert validate_request({"url": REDBUS_URL, "options": {"maxResults": 0}}).options.max_results == 1


def test_selectors_not_required_with_preset():
    request = validate_request({
        "url": "https://x.com",
        "options": {"extractionMode": "selectors", "dataLayerPreset": "products"},
    })
    assert request.selectors == []
    assert request.options.extraction_mode == ExtractionMode.SELECTORS


# --- pipeline ---------------------------------------------------------------

async def test_direct_failure_falls_back_to_xhr(config):
    session = FakeSession(responses=[
        CapturedResponse(url="https://www.redbus.in/search/getbuslist?fromCity=122", status=200, data=XHR_PAYLOAD),
    ])
    pipeline = ScrapePipeline(config, http_client=failing_transport(), session_factory=session_factory_for(session))

    response = await pipeline.run(validate_request({"url": REDBUS_URL}, config))

    assert response.success is True
    assert response.extraction_mode == "xhr"
    assert response.errors == []
    assert response.intercepted_url.startswith("https://www.redbus.in/search/getbuslist")
    assert response.total_items_found == 2
    assert [item["operator"] for item in response.data_layer_items] == ["IntrCity SmartBus", "SRS Travels"]
    assert response.results[0].id == "item_0"
    assert json.loads(response.results[1].data)["priceFormatted"] == "₹650"
    assert response.timing.page_load == 120
    assert session.closed


async def test_items_are_capped_to_max_results(config):
    session = FakeSession(responses=[
        CapturedResponse(url="https://www.redbus.in/search/getbuslist", status=200, data=XHR_PAYLOAD),
    ])
    pipeline = ScrapePipeline(config, session_factory=session_factory_for(session))

    response = await pipeline.run(validate_request({
        "url": "https://www.redbus.in/bus-tickets/x",
        "options": {"maxResults": 1, "extractionMode": "xhr"},
    }, config))

    assert len(response.data_layer_items) == 1
    assert response.total_items_found == 2


async def test_unknown_site_without_strategy(config):
    pipeline = ScrapePipeline(config, session_factory=unused_session_factory)
    response = await pipeline.run(validate_request({"url": "https://example.com/list"}, config))
    assert response.success is False
    assert response.errors == [NO_STRATEGY_ERROR]


async def test_datalayer_mode_with_preset(config):
    page = FakePage(data_layer=[
        {"event": "gtm.js"},
        {"event": "view_item_list", "items": [
            {"item_id": "p1", "item_name": "Shoe", "item_brand": "Acme", "price": 49.5},
        ]},
    ])
    pipeline = ScrapePipeline(config, session_factory=session_factory_for(FakeSession(page)))

    response = await scrape(
        {"url": "https://shop.example.com", "options": {"extractionMode": "dataLayer", "dataLayerPreset": "products"}},
        config,
        session_factory=session_factory_for(FakeSession(page)),
    )
    assert response.success is True
    assert response.extraction_mode == "dataLayer"
    assert response.data_layer_items == [{"id": "p1", "name": "Shoe", "brand": "Acme", "price": 49.5}]
    assert response.intercepted_url is None
    assert pipeline.route(validate_request({"url": "https://shop.example.com"}))["chain"] == []


async def test_every_stage_failing_reports_last_errors(config):
    page = FakePage(data_layer=None)
    pipeline = ScrapePipeline(config, session_factory=session_factory_for(FakeSession(page)))

    response = await pipeline.run(validate_request(
        {"url": "https://shop.example.com", "options": {"extractionMode": "dataLayer"}}, config,
    ))

    assert response.success is False
    assert response.errors == ["dataLayer not found or not an array"]
    assert response.extraction_mode == "dataLayer"
    assert response.data_layer_items is None


async def test_direct_only_without_fallback_never_opens_browser(config):
    session = FakeSession()
    pipeline = ScrapePipeline(config, http_client=failing_transport(500), session_factory=session_factory_for(session))
    response = await pipeline.run(validate_request(
        {"url": REDBUS_URL, "options": {"fallbackOnError": False}}, config,
    ))
    assert response.success is False
    assert response.errors == ["HTTP 500: Internal Server Error"]
    assert response.extraction_mode == "direct"
    assert session.page_calls == 0


async def test_selector_mode_returns_selector_results(config):
    page = FakePage(elements={"h1": ["Bangalore to Tirupati"], ".fare": ["₹788", "₹900"]})
    pipeline = ScrapePipeline(config, session_factory=session_factory_for(FakeSession(page)))

    response = await pipeline.run(validate_request({
        "url": "https://www.redbus.in/bus-tickets/x",
        "selectors": [
            {"id": "1:2", "selector": "h1"},
            {"id": "1:3", "selector": ".fare", "modifier": "all"},
        ],
        "options": {"extractionMode": "selectors"},
    }, config))

    assert response.success is True
    assert response.extraction_mode == "selectors"
    assert [r.id for r in response.results] == ["1:2", "1:3_0", "1:3_1"]
    assert response.results[2].original_id == "1:3"
    assert response.data_layer_items is None
