from layersync.core.models import ExtractionMode, StrategyName
from layersync.router.decision_engine import DecisionEngine, RouteContext

from .conftest import REDBUS_URL

D, X, I, DL, S = (
    StrategyName.DIRECT,
    StrategyName.XHR,
    StrategyName.INJECTION,
    StrategyName.DATALAYER,
    StrategyName.SELECTORS,
)


def decide(**kwargs):
    return DecisionEngine().decide(RouteContext(url=REDBUS_URL, **kwargs))


def redbus(**kwargs):
    return decide(provider="redbus", has_xhr_preset=True, **kwargs)


def test_auto_with_search_params_starts_with_direct():
    decision = redbus(has_search_params=True)
    assert decision["chain"] == [D, X, I, DL]
    assert decision["chain_names"] == ["direct", "xhr", "injection", "dataLayer"]
    assert decision["reasons"]


def test_auto_without_search_params_skips_direct():
    assert redbus()["chain"] == [X, I, DL]


def test_auto_appends_selectors_last():
    assert redbus(has_selectors=True)["chain"] == [X, I, DL, S]


def test_auto_without_fallback_stops_after_direct():
    assert redbus(has_search_params=True, fallback_on_error=False)["chain"] == [D]


def test_unknown_site_with_datalayer_config():
    assert decide(has_datalayer_config=True)["chain"] == [DL]
    assert decide(has_selectors=True)["chain"] == [S]


def test_unknown_site_without_anything_has_empty_chain():
    decision = decide()
    assert decision["chain"] == []
    assert decision["chain_names"] == []


def test_forced_modes():
    assert redbus(mode=ExtractionMode.DATALAYER, has_search_params=True)["chain"] == [DL]
    assert redbus(mode=ExtractionMode.SELECTORS)["chain"] == [S]
    assert redbus(mode=ExtractionMode.XHR)["chain"] == [X, I, DL]
    assert redbus(mode=ExtractionMode.XHR, fallback_on_error=False)["chain"] == [X, I]


def test_direct_mode_fallback_tail():
    assert redbus(mode=ExtractionMode.DIRECT, has_search_params=True)["chain"] == [D, X, I, DL]
    assert redbus(mode=ExtractionMode.DIRECT, fallback_on_error=False)["chain"] == [D]
