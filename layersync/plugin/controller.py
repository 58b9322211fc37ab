"""Document-sandbox side of the plugin.

``SandboxController.handle`` takes one UI message, works on the document
through ``DocumentHost`` and posts replies through ``post``. It is the top
boundary of the document side: unexpected exceptions become an ``error``
message here and nowhere else.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from loguru import logger

from layersync.plugin import projector
from layersync.plugin.document import DocumentHost
from layersync.plugin.messages import (
    ApplyData,
    ApplyDataLayer,
    ErrorMessage,
    FetchData,
    LayersFound,
    LoadStorage,
    Progress,
    SandboxMessage,
    SaveHistory,
    SavePresets,
    ScanLayers,
    StorageLoaded,
    Sync,
    SyncComplete,
    parse_ui_message,
)
from layersync.storage.store import PluginStorage

NO_LAYERS_ERROR = "No @{selector} layers found in the selected scope"
NO_DATA_LAYERS_ERROR = (
    "No data layers found. Group containers need child layers with @{selector} to extract data."
)

Post = Callable[[Dict[str, Any]], None]


class SandboxController:
    """Dispatches UI messages to the projector and storage.

    Args:
        host: Document the plugin runs against
        storage: Preset/history storage, optional
        post: Receives every outbound message as a dict
        max_items: Cap for cloned ``.all`` results, None for no cap
    """

    def __init__(
        self,
        host: DocumentHost,
        storage: Optional[PluginStorage] = None,
        post: Optional[Post] = None,
        max_items: Optional[int] = None,
    ) -> None:
        self.host = host
        self.storage = storage
        self.max_items = max_items
        self.post_message: Post = post or (lambda message: None)

    def post(self, message: SandboxMessage) -> None:
        self.post_message(message.to_dict())

    async def handle(self, raw: Any) -> None:
        try:
            message = parse_ui_message(raw)
            logger.debug(f"📨 UI message: {message.type}")
            if isinstance(message, ScanLayers):
                self._scan(message)
            elif isinstance(message, Sync):
                self._sync(message)
            elif isinstance(message, ApplyData):
                await self._apply_data(message)
            elif isinstance(message, ApplyDataLayer):
                await self._apply_datalayer(message)
            elif isinstance(message, LoadStorage):
                self._load_storage()
            elif isinstance(message, SavePresets):
                self._require_storage().save_presets(message.presets)
            elif isinstance(message, SaveHistory):
                self._require_storage().save_history(message.history)
        except Exception as e:  # noqa: BLE001
            logger.error(f"❌ Plugin message failed: {e}")
            self.post(ErrorMessage(str(e) or "Unexpected error"))

    def _require_storage(self) -> PluginStorage:
        if self.storage is None:
            raise RuntimeError("Storage is not available")
        return self.storage

    def _scan(self, message: ScanLayers) -> None:
        layers = projector.find_scraper_layers(self.host, self.host.nodes_for_scope(message.scope))
        self.post(LayersFound([projector.to_detected_layer(layer) for layer in layers]))

    def _sync(self, message: Sync) -> None:
        layers = projector.find_scraper_layers(self.host, self.host.nodes_for_scope(message.scope))
        if not layers:
            self.post(ErrorMessage(NO_LAYERS_ERROR))
            return
        selectors = projector.build_selector_requests(self.host, layers)
        if not selectors:
            self.post(ErrorMessage(NO_DATA_LAYERS_ERROR))
            return
        self.post(FetchData(url=message.url, selectors=selectors))

    async def _apply_data(self, message: ApplyData) -> None:
        total = len(message.results)
        self.post(Progress(0, total, "Applying data to layers..."))
        report = await projector.apply_results(
            self.host,
            message.results,
            max_count=self.max_items,
            on_progress=lambda current, count: self.post(Progress(current, count, f"Applied {current}/{count} layers")),
        )
        self.post(SyncComplete(report.updated, report.failed))

    async def _apply_datalayer(self, message: ApplyDataLayer) -> None:
        self.post(Progress(0, len(message.items), "Applying data to frames..."))
        try:
            report = await projector.apply_records(self.host, message.items, scope=message.scope)
        except Exception as e:  # noqa: BLE001
            self.post(ErrorMessage(str(e) or "Failed to apply data"))
            return
        self.post(SyncComplete(report.updated, report.failed))

    def _load_storage(self) -> None:
        storage = self._require_storage()
        self.post(StorageLoaded(storage.load_presets(), storage.load_history()))
