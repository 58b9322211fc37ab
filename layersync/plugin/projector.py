"""Document projector - writes fetched data into named design layers.

Two modes:

1. Record projection: frames named ``... @[N]`` receive record N; layers
   named ``@{field}`` inside a frame receive that field's value as text.
2. Legacy selector mode: layers named ``@{css}`` become selector requests;
   per-selector results are written back by node id, with ``.all``
   results cloning the template layer for every extra match.

Per-field failures are counted, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from layersync.core.models import ExtractedResult, Item, SelectorConfig, item_to_dict
from layersync.core.normalizer import stringify
from layersync.plugin.document import IMAGE_NODE_TYPES, DocumentHost
from layersync.plugin.layer_parser import (
    SelectorDescriptor,
    is_group_selector,
    layer_description,
    parse_field_name,
    parse_frame_index,
    parse_layer_name,
)

CLONE_GUTTER = 16

ProgressCallback = Callable[[int, int], None]


@dataclass
class ApplyReport:
    updated: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"updated": self.updated, "failed": self.failed}


@dataclass(frozen=True)
class ScraperLayer:
    node: Any
    descriptor: SelectorDescriptor


@dataclass(frozen=True)
class DetectedLayer:
    """Layer summary shown to the user after a scan."""
    id: str
    name: str
    selector: str
    type: str
    modifier: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "name": self.name, "selector": self.selector, "type": self.type}
        if self.modifier:
            data["modifier"] = self.modifier
        return data


# --- traversal -----------------------------------------------------------

def _walk(host: DocumentHost, nodes: Iterable[Any]):
    for node in nodes:
        yield node
        yield from _walk(host, host.list_children(node))


def find_indexed_frames(host: DocumentHost, nodes: Iterable[Any]) -> Dict[int, Any]:
    """Ordinal -> frame; a later duplicate ordinal replaces an earlier one."""
    frames: Dict[int, Any] = {}
    for node in _walk(host, nodes):
        index = parse_frame_index(node.name)
        if index is not None:
            frames[index] = node
    return frames


def find_field_layers(host: DocumentHost, frame: Any) -> Dict[str, Any]:
    """Field name -> layer within ``frame`` (frame included)."""
    layers: Dict[str, Any] = {}
    for node in _walk(host, [frame]):
        field_name = parse_field_name(node.name)
        if field_name:
            layers[field_name] = node
    return layers


def find_text_node(host: DocumentHost, node: Any) -> Optional[Any]:
    for candidate in _walk(host, [node]):
        if candidate.type == "TEXT":
            return candidate
    return None


def find_scraper_layers(host: DocumentHost, nodes: Iterable[Any]) -> List[ScraperLayer]:
    layers = []
    for node in _walk(host, nodes):
        descriptor = parse_layer_name(node.name)
        if descriptor:
            layers.append(ScraperLayer(node=node, descriptor=descriptor))
    return layers


def _layer_type(node: Any) -> str:
    return "image" if node.type in IMAGE_NODE_TYPES else "text"


def to_detected_layer(layer: ScraperLayer) -> DetectedLayer:
    descriptor = layer.descriptor
    modifier = descriptor.modifier
    if is_group_selector(descriptor):
        modifier = f"group[{descriptor.group_index}]"
    return DetectedLayer(
        id=layer.node.id,
        name=layer_description(layer.node.name) or descriptor.selector,
        selector=descriptor.selector,
        type=_layer_type(layer.node),
        modifier=modifier,
    )


# --- record projection ---------------------------------------------------

async def _write_text(host: DocumentHost, layer: Any, text: str) -> bool:
    target = layer if layer.type == "TEXT" else find_text_node(host, layer)
    if target is None:
        return False
    await host.load_font(target)
    host.set_text(target, text)
    return True


async def apply_records(
    host: DocumentHost,
    records: Sequence[Item],
    scope: str = "selection",
    on_progress: Optional[ProgressCallback] = None,
) -> ApplyReport:
    """Write ``records[i]`` into the frame tagged ``@[i]``.

    Frames without a record and records without a frame are skipped.
    Only attempted writes (fields present in both the record and the frame)
    are counted.
    """
    report = ApplyReport()
    frames = find_indexed_frames(host, host.nodes_for_scope(scope))
    logger.info(f"🧩 Found {len(frames)} indexed frame(s) for {len(records)} record(s)")

    for i, record in enumerate(records):
        frame = frames.get(i)
        if frame is None:
            continue
        layers = find_field_layers(host, frame)
        for field_name, value in item_to_dict(record).items():
            layer = layers.get(field_name)
            if layer is None:
                continue
            try:
                if await _write_text(host, layer, stringify(value)):
                    report.updated += 1
                else:
                    report.failed += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"⚠️ Could not apply {field_name} to frame @[{i}]: {exc}")
                report.failed += 1
        if on_progress:
            on_progress(i + 1, len(records))

    logger.info(f"✅ Applied records: updated={report.updated}, failed={report.failed}")
    return report


# --- legacy selector mode ------------------------------------------------

def _ancestors(host: DocumentHost, node: Any):
    parent = host.parent_of(node)
    while parent is not None:
        yield parent
        parent = host.parent_of(parent)


def find_parent_group_index(host: DocumentHost, layer: ScraperLayer, layers: Sequence[ScraperLayer]) -> Optional[int]:
    """Group index of the nearest ``.group[N]`` ancestor."""
    by_id = {l.node.id: l for l in layers}
    for ancestor in _ancestors(host, layer.node):
        candidate = by_id.get(ancestor.id)
        if candidate is not None and is_group_selector(candidate.descriptor):
            return candidate.descriptor.group_index
    return None


def build_full_selector(host: DocumentHost, layer: ScraperLayer, layers: Sequence[ScraperLayer]) -> str:
    """Prefix the selector with the nearest ``.all`` ancestor's selector."""
    by_id = {l.node.id: l for l in layers}
    for ancestor in _ancestors(host, layer.node):
        candidate = by_id.get(ancestor.id)
        if candidate is not None and candidate.descriptor.modifier == "all":
            return f"{candidate.descriptor.selector} {layer.descriptor.selector}"
    return layer.descriptor.selector


def build_selector_requests(host: DocumentHost, layers: Sequence[ScraperLayer]) -> List[SelectorConfig]:
    """Selector requests for every non-container layer."""
    requests = []
    for layer in layers:
        if is_group_selector(layer.descriptor):
            continue
        requests.append(SelectorConfig(
            id=layer.node.id,
            selector=build_full_selector(host, layer, layers),
            type=_layer_type(layer.node),
            modifier=layer.descriptor.modifier,
            attribute=layer.descriptor.attribute,
            index=find_parent_group_index(host, layer, layers),
        ))
    return requests


def _resolve_target(host: DocumentHost, result: ExtractedResult) -> Optional[Any]:
    if result.original_id is None or result.index is None:
        return host.get_node(result.id)

    original = host.get_node(result.original_id)
    if original is None:
        return None
    if result.index == 0:
        return original

    clone = host.clone_node(original)
    parent = host.parent_of(original)
    if parent is None or not host.has_auto_layout(parent):
        host.move_below(clone, original, result.index * (original.height + CLONE_GUTTER))
    return clone


async def apply_results(
    host: DocumentHost,
    results: Sequence[ExtractedResult],
    max_count: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ApplyReport:
    """Write selector results back to their layers.

    ``.all`` results (``original_id`` + ``index``) reuse the template for
    index 0 and clone it for every later index below ``max_count``.
    """
    report = ApplyReport()
    total = len(results)
    for i, result in enumerate(results):
        if max_count is not None and result.index is not None and result.index >= max_count:
            continue
        try:
            node = _resolve_target(host, result)
            if node is None or not result.found or not result.data:
                report.failed += 1
            elif result.type == "image":
                if result.image_bytes and host.supports_fills(node):
                    host.set_image_fill(node, result.image_bytes)
                    report.updated += 1
                else:
                    report.failed += 1
            elif await _write_text(host, node, result.data):
                report.updated += 1
            else:
                report.failed += 1
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"⚠️ Error applying result {result.id}: {exc}")
            report.failed += 1
        if on_progress:
            on_progress(i + 1, total)

    logger.info(f"✅ Applied selector results: updated={report.updated}, failed={report.failed}")
    return report
