"""Layer-sync configuration center.

Groups browser, scraper, provider, API client, storage and internal API
settings into one ``Config`` object. Values come from dataclass defaults,
then ``.env`` and environment overrides. The object is built once by each
entrypoint and passed explicitly to pipelines and clients.
"""

import logging
import os
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from loguru import logger


# Project root (parent of the layersync/ package)
# keeps logs/output/data in one place regardless of cwd
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
    " (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def project_path(*parts: str) -> Path:
    """Build a path relative to the project root.

    Args:
        *parts: Path segments, e.g. "logs", "app.log"

    Returns:
        Path under the project root.
    """
    return PROJECT_ROOT.joinpath(*parts)


@dataclass
class BrowserConfig:
    """Headless browser settings.

    Attributes:
        headless: Run without a visible window. Default True.
        browser_type: 'chromium', 'firefox' or 'webkit'. Default 'chromium'.
        proxy: Proxy server such as 'http://127.0.0.1:7890'. Default None.
        viewport: Page viewport. Default 1920x1080.
        block_resources: Resource types aborted during page loads.
    """
    headless: bool = True
    browser_type: str = "chromium"
    proxy: Optional[str] = None
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    block_resources: tuple = ("font", "media")


@dataclass
class ScraperConfig:
    """Defaults applied to scrape requests that leave options unset.

    Attributes:
        timeout_ms: Navigation timeout in milliseconds. Default 30000.
        max_results: Item cap for list extraction. Default 20.
        wait_for_js: Wait for network idle instead of DOM ready. Default True.
        fallback_on_error: Cascade to the next strategy on failure. Default True.
        user_agent: User-Agent used for both HTTP and browser requests.
    """
    timeout_ms: int = 30000
    max_results: int = 20
    wait_for_js: bool = True
    fallback_on_error: bool = True
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class ProviderConfig:
    """RedBus provider settings.

    Attributes:
        base_url: Site origin used for the search endpoint.
        direct_timeout: Direct API request timeout in seconds.
        presets_file: Optional YAML file with extra dataLayer presets.
    """
    base_url: str = "https://www.redbus.in"
    direct_timeout: float = 10.0
    presets_file: Optional[str] = None


@dataclass
class ApiClientConfig:
    """Settings for talking to the scrape backend over HTTP.

    Attributes:
        base_url: Backend origin. Default http://localhost:3000.
        timeout: Request timeout in seconds.
        max_attempts: Attempts per request, first one included.
        base_delay: Backoff delay in seconds, doubled on every retry.
    """
    base_url: str = "http://localhost:3000"
    timeout: float = 60.0
    max_attempts: int = 3
    base_delay: float = 1.0


@dataclass
class StorageConfig:
    """Key-value storage for presets and fetch history.

    Attributes:
        db_url: SQLAlchemy database URL.
        history_limit: Number of history entries kept.
    """
    db_url: str = "sqlite:///data/layersync.db"
    history_limit: int = 20


@dataclass
class InternalApiConfig:
    """Provisioned internal bus-search API. Disabled until a key exists."""
    base_url: str = "https://api-internal.redbus.in"
    api_key: str = ""
    enabled: bool = False


class Config:
    """Unified configuration object.

    Attributes:
        browser: Browser settings
        scraper: Scrape defaults
        provider: RedBus provider settings
        api_client: Backend client settings
        storage: Preset/history storage settings
        internal_api: Internal API stub settings
    """

    def __init__(self) -> None:
        self.browser = BrowserConfig()
        self.scraper = ScraperConfig()
        self.provider = ProviderConfig()
        self.api_client = ApiClientConfig()
        self.storage = StorageConfig()
        self.internal_api = InternalApiConfig()

    def override_from_env(self) -> "Config":
        """Override values from environment variables.

        Supported variables:
            - HEADLESS: 'true'/'false'
            - PROXY/HTTPS_PROXY/HTTP_PROXY: proxy server
            - LAYERSYNC_MAX_RESULTS: integer item cap
            - LAYERSYNC_API_URL: scrape backend origin
            - LAYERSYNC_DB_URL: storage database URL
            - LAYERSYNC_PRESETS_FILE: extra dataLayer presets (YAML)
            - REDBUS_API_KEY: enables the internal API when set
        """
        if os.getenv("HEADLESS"):
            self.browser.headless = os.getenv("HEADLESS", "true").lower() == "true"
        if os.getenv("LAYERSYNC_MAX_RESULTS"):
            try:
                self.scraper.max_results = int(os.getenv("LAYERSYNC_MAX_RESULTS", "20"))
            except ValueError:
                logger.warning("LAYERSYNC_MAX_RESULTS is not an integer, keeping 20")

        # PROXY > HTTPS_PROXY > HTTP_PROXY
        proxy_env = (
            os.getenv("PROXY")
            or os.getenv("HTTPS_PROXY")
            or os.getenv("HTTP_PROXY")
        )
        if proxy_env:
            self.browser.proxy = proxy_env

        if os.getenv("LAYERSYNC_API_URL"):
            self.api_client.base_url = os.getenv("LAYERSYNC_API_URL", "").rstrip("/")
        if os.getenv("LAYERSYNC_DB_URL"):
            self.storage.db_url = os.getenv("LAYERSYNC_DB_URL", "")
        if os.getenv("LAYERSYNC_PRESETS_FILE"):
            self.provider.presets_file = os.getenv("LAYERSYNC_PRESETS_FILE")

        api_key = os.getenv("REDBUS_API_KEY")
        if api_key:
            self.internal_api.api_key = api_key
            self.internal_api.enabled = True
        return self

    def print_summary(self) -> None:
        """Log a configuration summary."""
        logger.info("\n📋 Configuration summary")
        logger.info(f"Browser: {self.browser.browser_type}, headless={self.browser.headless}")
        logger.info(f"Max results: {self.scraper.max_results}, timeout={self.scraper.timeout_ms}ms")
        logger.info(f"Backend: {self.api_client.base_url}")
        logger.info(f"Storage: {self.storage.db_url}")


def load_config(use_env: bool = True) -> Config:
    """Build a fresh configuration.

    Args:
        use_env: Load ``.env`` and apply environment overrides.

    Returns:
        A new Config instance.
    """
    cfg = Config()
    if use_env:
        load_dotenv()
        cfg.override_from_env()
    return cfg


def configure_logging(
    log_path: Optional[Path] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure file logging.

    Args:
        log_path: Log file path. Default logs/app.log.
        max_bytes: Size limit of a single log file. Default 10MB.
        backup_count: Number of rotated files kept. Default 5.
    """
    if log_path is None:
        log_path = project_path("logs", "app.log")

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    )
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        root_logger.addHandler(handler)

    logger.add(
        handler,
        level="INFO",
        enqueue=True,
        backtrace=False,
        diagnose=False
    )


if __name__ == "__main__":
    load_config().print_summary()
