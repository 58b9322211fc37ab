"""Extraction strategies - one class per way of getting records out of a URL.

Direct API -> XHR interception -> page-state injection -> dataLayer ->
CSS selectors, chained by the decision engine.
"""

from layersync.adapters.base import ExtractionStrategy
from layersync.adapters.direct_api import DirectApiStrategy
from layersync.adapters.xhr_interceptor import XhrInterceptStrategy, InjectionStrategy
from layersync.adapters.datalayer import DataLayerStrategy
from layersync.adapters.selector import SelectorStrategy

__all__ = [
    "ExtractionStrategy",
    "DirectApiStrategy",
    "XhrInterceptStrategy",
    "InjectionStrategy",
    "DataLayerStrategy",
    "SelectorStrategy",
]
