"""Service layer - browser pool, scrape backend client, export.

Includes:
- BrowserPool / BrowserSession: shared browser, one page per run
- ScrapeApiClient: backend client with retry and batch fetching
- Exporter: JSON/Excel export
"""

from layersync.services.browser_pool import BrowserPool, BrowserSession
from layersync.services.api_client import ScrapeApiClient, BatchResult

__all__ = [
    "BrowserPool",
    "BrowserSession",
    "ScrapeApiClient",
    "BatchResult",
]
