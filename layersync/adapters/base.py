"""Common contract for extraction strategies."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod

from layersync.core.models import ExtractionResult, ScrapeOptions, StrategyName


class ExtractionStrategy(ABC):
    """One way of getting records out of a target URL.

    ``extract`` never raises for transport or shape problems; it reports
    them in ``ExtractionResult.errors`` so the fallback chain can move on.
    """

    name: StrategyName

    @abstractmethod
    async def extract(self, url: str, options: ScrapeOptions) -> ExtractionResult:
        ...

    def _result(self, started: float, **kwargs) -> ExtractionResult:
        return ExtractionResult(
            source=self.name,
            timing_ms=int((time.monotonic() - started) * 1000),
            **kwargs,
        )
