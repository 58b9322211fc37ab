from .connection import DatabaseManager
from .store import PluginStorage, Preset, HistoryItem, open_storage

__all__ = ["DatabaseManager", "PluginStorage", "Preset", "HistoryItem", "open_storage"]
