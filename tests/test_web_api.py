import pytest
from fastapi.testclient import TestClient

import web_api
from layersync.core.scraper import ScrapePipeline

from .conftest import FakePage, FakeSession, session_factory_for


class ExplodingPipeline:
    async def run(self, request):
        raise RuntimeError("boom")


@pytest.fixture
def client(config):
    web_api.app.dependency_overrides[web_api.get_config] = lambda: config
    yield TestClient(web_api.app)
    web_api.app.dependency_overrides.clear()


def use_pipeline(pipeline):
    web_api.app.dependency_overrides[web_api.get_pipeline] = lambda: pipeline


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["version"] == "1.0.0"
    assert body["service"] == web_api.SERVICE_NAME
    assert "T" in body["timestamp"]
    assert response.headers["x-content-type-options"] == "nosniff"


def test_bad_request_is_400(client):
    response = client.post("/api/scrape", json={"selectors": []})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "URL is required"}


def test_scrape_success(client, config):
    page = FakePage(elements={"h1": ["Bangalore to Tirupati"]})
    use_pipeline(ScrapePipeline(config, session_factory=session_factory_for(FakeSession(page))))

    response = client.post("/api/scrape", json={
        "url": "https://www.redbus.in/bus-tickets/x",
        "selectors": [{"id": "1:2", "selector": "h1"}],
        "options": {"extractionMode": "selectors"},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["results"] == [{"id": "1:2", "found": True, "type": "text", "data": "Bangalore to Tirupati"}]
    assert body["extractionMode"] == "selectors"
    assert set(body["timing"]) == {"pageLoad", "extraction", "total"}


def test_failed_extraction_is_500(client, config):
    use_pipeline(ScrapePipeline(config, session_factory=session_factory_for(FakeSession(FakePage()))))

    response = client.post("/api/scrape", json={
        "url": "https://shop.example.com",
        "options": {"extractionMode": "dataLayer"},
    })

    assert response.status_code == 500
    assert response.json()["errors"] == ["dataLayer not found or not an array"]


def test_unexpected_exception_is_500(client):
    use_pipeline(ExplodingPipeline())
    response = client.post("/api/scrape", json={"url": "https://www.redbus.in/x"})
    assert response.status_code == 500
    assert response.json()["error"] == "boom"
    assert response.json()["errors"] == ["boom"]


def test_cors_preflight(client):
    response = client.options(
        "/api/scrape",
        headers={"Origin": "https://www.figma.com", "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_config_is_built_lazily_once(monkeypatch):
    assert not hasattr(web_api, "config")
    monkeypatch.setenv("LAYERSYNC_MAX_RESULTS", "7")
    web_api.get_config.cache_clear()
    try:
        assert web_api.get_config().scraper.max_results == 7
        assert web_api.get_config() is web_api.get_config()
    finally:
        web_api.get_config.cache_clear()
