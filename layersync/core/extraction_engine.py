"""Fallback extraction engine - runs strategies in order until one yields data.

Core Architecture:
1. The decision engine picks an ordered chain (e.g. direct -> xhr ->
   injection -> dataLayer -> selectors)
2. Each stage runs only if every earlier stage came back empty
3. The first stage with items (or found selector results) wins

Design Principles:
- Stages report failures as data; an unexpected exception is logged and
  treated as an empty stage
- Traceability: every attempt is kept, and per-source counters show which
  strategies actually carry the load
"""
import time
from typing import Dict, List, Optional, Sequence

from loguru import logger

from layersync.adapters.base import ExtractionStrategy
from layersync.core.errors import friendly_error
from layersync.core.models import ExtractionResult, ScrapeOptions, StrategyName


class ExtractionEngine:
    """Sequential fallback over extraction strategies"""

    def __init__(self):
        self.extraction_stats: Dict[str, int] = {name.value: 0 for name in StrategyName}
        self.attempts: List[ExtractionResult] = []

    async def run(
        self,
        stages: Sequence[ExtractionStrategy],
        url: str,
        options: ScrapeOptions,
    ) -> Optional[ExtractionResult]:
        """
        Fallback chain entry point

        Args:
            stages: Strategies in the order they should be tried
            url: Target page
            options: Request options shared by every stage

        Returns:
            The first result with data, else the last stage's result
            (None when there were no stages)
        """
        self.attempts = []
        last: Optional[ExtractionResult] = None

        for position, stage in enumerate(stages, start=1):
            label = stage.name.value
            logger.info(f"🔎 [Stage {position}/{len(stages)}] Trying {label}...")
            started = time.monotonic()
            try:
                result = await stage.extract(url, options)
            except Exception as e:  # noqa: BLE001
                logger.warning(f"⚠️ [Stage {position}] {label} raised: {e}")
                result = ExtractionResult(
                    source=stage.name,
                    errors=[friendly_error(e)],
                    timing_ms=int((time.monotonic() - started) * 1000),
                )

            self.attempts.append(result)
            last = result
            if result.has_data:
                count = len(result.items) or sum(1 for r in result.results if r.found)
                self.extraction_stats[label] += count
                logger.success(f"✅ [Stage {position}] {label} succeeded with {count} records")
                return result

            reason = "; ".join(result.errors) or "no data"
            logger.warning(f"⚠️ [Stage {position}] {label} came back empty: {reason}")

        if stages:
            logger.error("❌ Every extraction stage failed")
        return last

    def get_stats(self) -> Dict[str, object]:
        """Per-source record counts with their share of the total"""
        total = sum(self.extraction_stats.values())
        if total == 0:
            return dict(self.extraction_stats)

        stats: Dict[str, object] = {
            source: {"count": count, "percent": f"{count / total * 100:.1f}%"}
            for source, count in self.extraction_stats.items()
        }
        stats["total"] = total
        return stats
