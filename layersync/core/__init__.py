"""Core layer - shared models, errors, field normalization and the scrape pipeline.

Pipeline modules (``scraper``, ``extraction_engine``) are imported from
their own modules since they depend on the adapters.
"""

from layersync.core.errors import (
    LayerSyncError,
    ScrapeInputError,
    ScrapeApiError,
    InternalApiNotConfigured,
    friendly_error,
)
from layersync.core.models import (
    BusResult,
    ExtractionMode,
    StrategyName,
    SelectorConfig,
    ExtractedResult,
    ScrapeOptions,
    ScrapeRequest,
    ScrapeResponse,
    ExtractionResult,
)

__all__ = [
    "LayerSyncError",
    "ScrapeInputError",
    "ScrapeApiError",
    "InternalApiNotConfigured",
    "friendly_error",
    "BusResult",
    "ExtractionMode",
    "StrategyName",
    "SelectorConfig",
    "ExtractedResult",
    "ScrapeOptions",
    "ScrapeRequest",
    "ScrapeResponse",
    "ExtractionResult",
]
