"""layer-sync - bus-listing extraction and design-layer projection."""

__version__ = "1.0.0"
