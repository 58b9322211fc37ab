"""Typed messages between the plugin UI and the document sandbox.

Inbound (UI -> sandbox): scan-layers, sync, apply-data, apply-datalayer,
load-storage, save-presets, save-history.
Outbound (sandbox -> UI): layers-found, fetch-data, sync-complete, error,
progress, storage-loaded.

Every message is a dataclass with a ``type`` tag; ``to_dict`` produces
the JSON the other side expects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from layersync.core.models import ExtractedResult, SelectorConfig
from layersync.plugin.document import SCOPES
from layersync.plugin.projector import DetectedLayer
from layersync.storage.store import HistoryItem, Preset


def _scope(value: Any) -> str:
    return value if value in SCOPES else "selection"


def _result_from_dict(data: Dict[str, Any]) -> ExtractedResult:
    result = ExtractedResult.from_dict(data)
    raw = data.get("bytes")
    # JSON transports send the image as a list of ints
    if isinstance(raw, (bytes, bytearray, list)):
        result.image_bytes = bytes(raw)
    return result


# --- UI -> sandbox ---------------------------------------------------------

@dataclass
class SyncOptions:
    wait_for_js: bool = True
    include_images: bool = True
    timeout: int = 30000


@dataclass
class ScanLayers:
    scope: str = "selection"
    type: str = field(default="scan-layers", init=False)


@dataclass
class Sync:
    url: str
    scope: str = "selection"
    options: SyncOptions = field(default_factory=SyncOptions)
    type: str = field(default="sync", init=False)


@dataclass
class ApplyData:
    results: List[ExtractedResult] = field(default_factory=list)
    type: str = field(default="apply-data", init=False)


@dataclass
class ApplyDataLayer:
    items: List[Dict[str, Any]] = field(default_factory=list)
    scope: str = "selection"
    type: str = field(default="apply-datalayer", init=False)


@dataclass
class LoadStorage:
    type: str = field(default="load-storage", init=False)


@dataclass
class SavePresets:
    presets: List[Preset] = field(default_factory=list)
    type: str = field(default="save-presets", init=False)


@dataclass
class SaveHistory:
    history: List[HistoryItem] = field(default_factory=list)
    type: str = field(default="save-history", init=False)


UIMessage = Union[ScanLayers, Sync, ApplyData, ApplyDataLayer, LoadStorage, SavePresets, SaveHistory]


def parse_ui_message(data: Any) -> UIMessage:
    """Decode a raw UI message.

    Raises:
        ValueError: Not a message, or an unknown ``type``.
    """
    if not isinstance(data, dict) or not data.get("type"):
        raise ValueError("Message must be an object with a type")
    kind = data["type"]
    if kind == "scan-layers":
        return ScanLayers(scope=_scope(data.get("scope")))
    if kind == "sync":
        raw_options = data.get("options") or {}
        return Sync(
            url=str(data.get("url") or ""),
            scope=_scope(data.get("scope")),
            options=SyncOptions(
                wait_for_js=bool(raw_options.get("waitForJs", True)),
                include_images=bool(raw_options.get("includeImages", True)),
                timeout=int(raw_options.get("timeout") or 30000),
            ),
        )
    if kind == "apply-data":
        return ApplyData(results=[_result_from_dict(r) for r in data.get("results") or [] if isinstance(r, dict)])
    if kind == "apply-datalayer":
        items = [i for i in data.get("items") or [] if isinstance(i, dict)]
        return ApplyDataLayer(items=items, scope=_scope(data.get("scope")))
    if kind == "load-storage":
        return LoadStorage()
    if kind == "save-presets":
        return SavePresets(presets=[Preset.from_dict(p) for p in data.get("presets") or [] if isinstance(p, dict)])
    if kind == "save-history":
        return SaveHistory(
            history=[HistoryItem.from_dict(h) for h in data.get("history") or [] if isinstance(h, dict)]
        )
    raise ValueError(f"Unknown message type: {kind}")


# --- sandbox -> UI ---------------------------------------------------------

@dataclass
class LayersFound:
    layers: List[DetectedLayer]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "layers-found", "layers": [layer.to_dict() for layer in self.layers]}


@dataclass
class FetchData:
    url: str
    selectors: List[SelectorConfig]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "fetch-data", "url": self.url, "selectors": [s.to_dict() for s in self.selectors]}


@dataclass
class SyncComplete:
    updated: int
    failed: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "sync-complete", "updated": self.updated, "failed": self.failed}


@dataclass
class ErrorMessage:
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "error", "message": self.message}


@dataclass
class Progress:
    current: int
    total: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "progress", "current": self.current, "total": self.total, "message": self.message}


@dataclass
class StorageLoaded:
    presets: List[Preset]
    history: List[HistoryItem]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "storage-loaded",
            "presets": [p.to_dict() for p in self.presets],
            "history": [h.to_dict() for h in self.history],
        }


SandboxMessage = Union[LayersFound, FetchData, SyncComplete, ErrorMessage, Progress, StorageLoaded]
