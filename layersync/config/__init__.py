"""Configuration module"""

from layersync.config.config import (
    load_config,
    configure_logging,
    project_path,
    PROJECT_ROOT,
    DEFAULT_USER_AGENT,
    BrowserConfig,
    ScraperConfig,
    ProviderConfig,
    ApiClientConfig,
    StorageConfig,
    InternalApiConfig,
    Config,
)

__all__ = [
    "load_config",
    "configure_logging",
    "project_path",
    "PROJECT_ROOT",
    "DEFAULT_USER_AGENT",
    "BrowserConfig",
    "ScraperConfig",
    "ProviderConfig",
    "ApiClientConfig",
    "StorageConfig",
    "InternalApiConfig",
    "Config",
]
