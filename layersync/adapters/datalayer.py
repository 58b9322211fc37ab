"""DataLayer strategy - reads the page's analytics event queue.

Sites that push e-commerce events to ``window.dataLayer`` are onboarded
with a preset (event filter, items path, field mappings), not code.
Built-in presets live here; more can be added through a YAML file:

    my_site:
      eventFilter: view_item_list
      itemsPath: ecommerce.items
      maxItems: 30
      fieldMappings:
        - {outputField: name, sourceField: item_name, transform: trim}
        - {outputField: price, sourceField: price, transform: currency}
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from loguru import logger

from layersync.adapters.base import ExtractionStrategy
from layersync.config import Config
from layersync.core.errors import ScrapeInputError, friendly_error
from layersync.core.models import ExtractionResult, ScrapeOptions, StrategyName
from layersync.core.normalizer import as_number, tidy_number, format_inr, get_nested_value

TRANSFORMS = ("uppercase", "lowercase", "trim", "number", "currency")


@dataclass(frozen=True)
class DataLayerFieldMapping:
    output_field: str
    source_field: str
    default_value: Any = None
    transform: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataLayerFieldMapping":
        transform = data.get("transform")
        if transform is not None and transform not in TRANSFORMS:
            raise ScrapeInputError(f"Unknown transform: {transform}. Available: {', '.join(TRANSFORMS)}")
        if not data.get("outputField") or not data.get("sourceField"):
            raise ScrapeInputError("Each field mapping needs outputField and sourceField")
        return cls(
            output_field=str(data["outputField"]),
            source_field=str(data["sourceField"]),
            default_value=data.get("defaultValue"),
            transform=transform,
        )


@dataclass(frozen=True)
class DataLayerConfig:
    field_mappings: Tuple[DataLayerFieldMapping, ...]
    event_filter: Optional[str] = "view_item_list"
    items_path: str = "items"
    max_items: int = 50

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataLayerConfig":
        if not isinstance(data, dict):
            raise ScrapeInputError("dataLayer config must be an object")
        mappings = data.get("fieldMappings")
        if not isinstance(mappings, list) or not mappings:
            raise ScrapeInputError("dataLayer config needs a non-empty fieldMappings list")
        return cls(
            field_mappings=tuple(DataLayerFieldMapping.from_dict(m) for m in mappings),
            event_filter=data.get("eventFilter"),
            items_path=data.get("itemsPath") or "items",
            max_items=int(data.get("maxItems") or 50),
        )


def _m(output_field: str, source_field: str, **kwargs) -> DataLayerFieldMapping:
    return DataLayerFieldMapping(output_field, source_field, **kwargs)


DATALAYER_PRESETS: Dict[str, DataLayerConfig] = {
    "redbus": DataLayerConfig(
        field_mappings=(
            _m("id", "item_id"),
            _m("operator", "item_brand"),
            _m("busType", "item_category"),
            _m("rating", "item_category5"),
            _m("price", "price", transform="currency"),
            _m("priceRaw", "price", transform="number"),
            _m("features", "affiliation", default_value=""),
            _m("route", "item_name"),
        ),
    ),
    "ecommerce_ga4": DataLayerConfig(
        items_path="ecommerce.items",
        field_mappings=(
            _m("id", "item_id"),
            _m("name", "item_name"),
            _m("brand", "item_brand"),
            _m("category", "item_category"),
            _m("price", "price"),
            _m("quantity", "quantity"),
        ),
    ),
    "products": DataLayerConfig(
        field_mappings=(
            _m("id", "item_id"),
            _m("name", "item_name"),
            _m("brand", "item_brand"),
            _m("price", "price"),
        ),
    ),
}


def detect_preset(url: str) -> Optional[str]:
    """Preset name for a known provider URL."""
    if "redbus." in url.lower():
        return "redbus"
    return None


def load_presets_file(path: Path) -> Dict[str, DataLayerConfig]:
    """Read extra presets from YAML (name -> config mapping)."""
    with Path(path).open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ScrapeInputError(f"Preset file {path} must contain a mapping of preset names")
    return {str(name): DataLayerConfig.from_dict(cfg) for name, cfg in raw.items()}


def get_presets(config: Optional[Config] = None) -> Dict[str, DataLayerConfig]:
    """Built-in presets plus the configured YAML file, file entries winning."""
    presets = dict(DATALAYER_PRESETS)
    presets_file = config.provider.presets_file if config else None
    if presets_file:
        try:
            presets.update(load_presets_file(Path(presets_file)))
        except (OSError, yaml.YAMLError) as exc:
            logger.warning(f"⚠️ Could not load presets from {presets_file}: {exc}")
    return presets


def apply_transform(value: Any, transform: Optional[str]) -> Any:
    if value is None or transform is None:
        return value
    if transform == "uppercase":
        return str(value).upper()
    if transform == "lowercase":
        return str(value).lower()
    if transform == "trim":
        return str(value).strip()
    number = as_number(value)
    if number is None:
        return None
    if transform == "number":
        return tidy_number(number)
    if transform == "currency":
        return format_inr(number)
    return value


@dataclass
class DataLayerExtraction:
    success: bool = False
    items: List[Dict[str, Any]] = field(default_factory=list)
    total_found: int = 0
    errors: List[str] = field(default_factory=list)


def extract_from_datalayer(data_layer: Any, config: DataLayerConfig) -> DataLayerExtraction:
    """Filter events, collect items and map fields.

    Args:
        data_layer: The page's ``window.dataLayer`` as JSON
        config: Preset or custom mapping

    Returns:
        Mapped items (capped at ``config.max_items``) and the total found.
    """
    result = DataLayerExtraction()
    if not isinstance(data_layer, list):
        result.errors.append("dataLayer not found or not an array")
        return result

    events = [e for e in data_layer if isinstance(e, dict)]
    if config.event_filter:
        events = [e for e in events if e.get("event") == config.event_filter]
    if not events:
        result.errors.append("No matching events found in dataLayer")
        return result

    all_items: List[Any] = []
    for event in events:
        items = get_nested_value(event, config.items_path)
        if isinstance(items, list):
            all_items.extend(items)

    result.total_found = len(all_items)
    for item in all_items[: config.max_items]:
        mapped: Dict[str, Any] = {}
        for mapping in config.field_mappings:
            value = get_nested_value(item, mapping.source_field) if isinstance(item, dict) else None
            if value is None and mapping.default_value is not None:
                value = mapping.default_value
            mapped[mapping.output_field] = apply_transform(value, mapping.transform)
        result.items.append(mapped)

    result.success = True
    return result


DATALAYER_SCRIPT = """
() => {
    const dl = window.dataLayer;
    if (!dl || !Array.isArray(dl)) return null;
    return dl.map((entry) => {
        try { return JSON.parse(JSON.stringify(entry)); } catch (e) { return null; }
    });
}
"""


class DataLayerStrategy(ExtractionStrategy):
    name = StrategyName.DATALAYER

    def __init__(self, session, config: DataLayerConfig, preset_name: Optional[str] = None) -> None:
        self.session = session
        self.config = config
        self.preset_name = preset_name

    async def extract(self, url: str, options: ScrapeOptions) -> ExtractionResult:
        started = time.monotonic()
        logger.info(f"📊 DataLayer extraction (preset: {self.preset_name or 'custom'})")
        try:
            page = await self.session.page()
            data_layer = await page.evaluate(DATALAYER_SCRIPT)
        except Exception as exc:  # noqa: BLE001
            return self._result(started, errors=[friendly_error(exc)])

        extraction = extract_from_datalayer(data_layer, self.config)
        return self._result(
            started,
            success=extraction.success,
            items=list(extraction.items),
            total_found=extraction.total_found,
            errors=extraction.errors,
        )
