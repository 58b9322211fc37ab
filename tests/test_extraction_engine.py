from layersync.adapters.base import ExtractionStrategy
from layersync.core.extraction_engine import ExtractionEngine
from layersync.core.models import BusResult, ExtractionResult, ScrapeOptions, StrategyName


class StaticStrategy(ExtractionStrategy):
    def __init__(self, name, result=None, error=None):
        self.name = name
        self.result = result
        self.error = error
        self.calls = 0

    async def extract(self, url, options):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def empty(name, *errors):
    return StaticStrategy(name, ExtractionResult(source=name, errors=list(errors)))


async def test_first_stage_with_data_wins():
    direct = empty(StrategyName.DIRECT, "HTTP 503: Service Unavailable")
    xhr = StaticStrategy(
        StrategyName.XHR,
        ExtractionResult(source=StrategyName.XHR, success=True, items=[BusResult(id="1"), BusResult(id="2")]),
    )
    datalayer = empty(StrategyName.DATALAYER)
    engine = ExtractionEngine()

    result = await engine.run([direct, xhr, datalayer], "https://x", ScrapeOptions())

    assert result.source == StrategyName.XHR
    assert [a.source for a in engine.attempts] == [StrategyName.DIRECT, StrategyName.XHR]
    assert datalayer.calls == 0
    assert engine.extraction_stats["xhr"] == 2


async def test_all_empty_returns_last_result():
    engine = ExtractionEngine()
    result = await engine.run(
        [empty(StrategyName.XHR, "first"), empty(StrategyName.DATALAYER, "second")],
        "https://x",
        ScrapeOptions(),
    )
    assert result.source == StrategyName.DATALAYER
    assert result.errors == ["second"]
    assert not result.has_data


async def test_raising_stage_becomes_friendly_error():
    engine = ExtractionEngine()
    result = await engine.run(
        [StaticStrategy(StrategyName.XHR, error=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))],
        "https://x",
        ScrapeOptions(),
    )
    assert result.source == StrategyName.XHR
    assert result.errors == ["Website not found. Please check the URL."]


async def test_no_stages():
    assert await ExtractionEngine().run([], "https://x", ScrapeOptions()) is None


async def test_stats_share():
    engine = ExtractionEngine()
    assert engine.get_stats()["direct"] == 0

    engine.extraction_stats["direct"] = 3
    engine.extraction_stats["dataLayer"] = 1
    stats = engine.get_stats()
    assert stats["total"] == 4
    assert stats["direct"] == {"count": 3, "percent": "75.0%"}
