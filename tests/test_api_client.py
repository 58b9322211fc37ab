import json

import httpx
import pytest

from layersync.core.errors import ScrapeApiError
from layersync.core.models import ScrapeOptions, ScrapeRequest
from layersync.services.api_client import ScrapeApiClient


def ok_body(url, items=None):
    return {
        "success": True,
        "url": url,
        "results": [],
        "errors": [],
        "timing": {"pageLoad": 10, "extraction": 5, "total": 20},
        "dataLayerItems": items if items is not None else [{"operator": "X"}],
        "totalItemsFound": 1,
        "extractionMode": "direct",
    }


class Recorder:
    """Fake sleep that records backoff delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def client_for(handler, config, sleep=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ScrapeApiClient(config, client=http, sleep=sleep or Recorder())


async def test_scrape_parses_response(config):
    def handler(request):
        body = json.loads(request.content)
        assert request.url.path == "/api/scrape"
        assert body["options"]["maxResults"] == 5
        return httpx.Response(200, json=ok_body(body["url"]))

    response = await client_for(handler, config).scrape(
        ScrapeRequest(url="https://www.redbus.in/x", options=ScrapeOptions(max_results=5))
    )

    assert response.success
    assert response.data_layer_items == [{"operator": "X"}]
    assert response.timing.total == 20
    assert response.extraction_mode == "direct"


async def test_client_errors_are_not_retried(config):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"success": False, "error": "URL is required"})

    sleep = Recorder()
    with pytest.raises(ScrapeApiError) as excinfo:
        await client_for(handler, config, sleep).fetch_with_retry({"url": ""})

    assert str(excinfo.value) == "URL is required"
    assert excinfo.value.status_code == 400
    assert len(calls) == 1
    assert sleep.delays == []


async def test_server_errors_retry_with_backoff(config):
    statuses = iter([503, 502, 200])

    def handler(request):
        status = next(statuses)
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json=ok_body("https://x"))

    sleep = Recorder()
    response = await client_for(handler, config, sleep).fetch_with_retry({"url": "https://x"})

    assert response.success
    assert sleep.delays == [1.0, 2.0]


async def test_last_error_is_raised_after_all_attempts(config):
    def handler(request):
        return httpx.Response(500, json={"success": False, "errors": ["a", "b"]})

    sleep = Recorder()
    with pytest.raises(ScrapeApiError, match="a, b"):
        await client_for(handler, config, sleep).fetch_with_retry({"url": "https://x"}, max_attempts=3, base_delay=0.5)
    assert sleep.delays == [0.5, 1.0]


async def test_transport_errors_retry_then_propagate(config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    sleep = Recorder()
    with pytest.raises(httpx.ConnectError):
        await client_for(handler, config, sleep).fetch_with_retry({"url": "https://x"}, max_attempts=2)
    assert sleep.delays == [1.0]


async def test_health_check(config):
    assert await client_for(lambda r: httpx.Response(200, json={"status": "ok"}), config).health_check()

    def down(request):
        raise httpx.ConnectError("down", request=request)

    assert not await client_for(down, config).health_check()


async def test_batch_stops_at_first_failing_url(config):
    requested = []

    def handler(request):
        url = json.loads(request.content)["url"]
        requested.append(url)
        if url == "https://b":
            return httpx.Response(500, json={"success": False, "error": "Browser crashed"})
        return httpx.Response(200, json=ok_body(url))

    progress = []
    batch = await client_for(handler, config).fetch_batch(
        ["https://a", "https://b", "https://c"],
        ScrapeOptions(max_results=10),
        on_progress=lambda i, total, url: progress.append((i, total, url)),
    )

    assert [r.url for r in batch.responses] == ["https://a"]
    assert batch.failed_url == "https://b"
    assert batch.error == "Browser crashed"
    assert not batch.completed
    assert "https://c" not in requested
    assert progress == [(1, 3, "https://a"), (2, 3, "https://b")]


async def test_batch_completes(config):
    batch = await client_for(lambda r: httpx.Response(200, json=ok_body("u")), config).fetch_batch(["https://a"])
    assert batch.completed
    assert len(batch.responses) == 1
