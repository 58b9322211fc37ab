"""Plugin key-value storage: saved presets and fetch history.

Values are stored as JSON under two keys. History keeps insertion order
and is trimmed to the most recent entries, oldest evicted first.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from .connection import DatabaseManager
from .models import StorageEntry

PRESETS_KEY = "presets"
HISTORY_KEY = "history"
HISTORY_LIMIT = 20


@dataclass(frozen=True)
class Preset:
    name: str
    url: str
    max_items: int = 10

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preset":
        return cls(
            name=str(data.get("name", "")),
            url=str(data.get("url", "")),
            max_items=int(data.get("maxItems") or 10),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url, "maxItems": self.max_items}


@dataclass(frozen=True)
class HistoryItem:
    url: str
    route_name: str = ""
    bus_count: int = 0
    timestamp: int = 0  # epoch milliseconds

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryItem":
        return cls(
            url=str(data.get("url", "")),
            route_name=str(data.get("routeName", "")),
            bus_count=int(data.get("busCount") or 0),
            timestamp=int(data.get("timestamp") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "routeName": self.route_name,
            "busCount": self.bus_count,
            "timestamp": self.timestamp,
        }


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class PluginStorage:
    """Presets and history on top of ``DatabaseManager``.

    Args:
        db: Initialized database manager
        history_limit: Entries kept by ``save_history``/``add_history_item``
    """

    def __init__(self, db: DatabaseManager, history_limit: int = HISTORY_LIMIT):
        self.db = db
        self.history_limit = history_limit
        self.db.init_db()

    def _get(self, key: str) -> Any:
        with self.db.get_session() as session:
            entry = session.get(StorageEntry, key)
            raw = entry.value_json if entry else None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"⚠️ Stored value for '{key}' is not valid JSON, ignoring it")
            return None

    def _set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with self.db.get_session() as session:
            entry = session.get(StorageEntry, key)
            if entry is None:
                session.add(StorageEntry(key=key, value_json=payload))
            else:
                entry.value_json = payload
                entry.updated_at = datetime.utcnow()

    def load_presets(self) -> List[Preset]:
        raw = self._get(PRESETS_KEY)
        return [Preset.from_dict(p) for p in raw if isinstance(p, dict)] if isinstance(raw, list) else []

    def load_history(self) -> List[HistoryItem]:
        raw = self._get(HISTORY_KEY)
        return [HistoryItem.from_dict(h) for h in raw if isinstance(h, dict)] if isinstance(raw, list) else []

    def load(self) -> Dict[str, List[Dict[str, Any]]]:
        """Everything the UI needs on startup, in wire shape."""
        return {
            "presets": [p.to_dict() for p in self.load_presets()],
            "history": [h.to_dict() for h in self.load_history()],
        }

    def save_presets(self, presets: List[Preset]) -> None:
        self._set(PRESETS_KEY, [p.to_dict() for p in presets])
        logger.debug(f"💾 Saved {len(presets)} presets")

    def save_history(self, history: List[HistoryItem]) -> List[HistoryItem]:
        """Persist history, keeping only the newest ``history_limit`` entries."""
        kept = list(history)[-self.history_limit:] if self.history_limit > 0 else []
        self._set(HISTORY_KEY, [h.to_dict() for h in kept])
        return kept

    def add_history_item(self, item: HistoryItem) -> List[HistoryItem]:
        return self.save_history(self.load_history() + [item])


def open_storage(db_url: str, history_limit: int = HISTORY_LIMIT) -> PluginStorage:
    return PluginStorage(DatabaseManager(db_url), history_limit=history_limit)


def history_entry(url: str, route_name: str, bus_count: int, timestamp: Optional[int] = None) -> HistoryItem:
    return HistoryItem(url=url, route_name=route_name, bus_count=bus_count, timestamp=timestamp or now_ms())
