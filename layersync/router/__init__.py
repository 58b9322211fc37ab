"""Routing layer - picks the strategy chain for a request."""

from layersync.router.decision_engine import (
    DecisionEngine,
    RouteContext,
)

__all__ = [
    "DecisionEngine",
    "RouteContext",
]
