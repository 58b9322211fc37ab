from layersync.storage.models import StorageEntry
from layersync.storage.store import HISTORY_KEY, HistoryItem, Preset, history_entry, open_storage


def test_empty_storage_loads_empty_lists(storage):
    assert storage.load() == {"presets": [], "history": []}


def test_presets_round_trip_through_wire_shape(storage):
    storage.save_presets([Preset("Bangalore-Tirupati", "https://www.redbus.in/x", max_items=15)])
    assert storage.load()["presets"] == [{"name": "Bangalore-Tirupati", "url": "https://www.redbus.in/x", "maxItems": 15}]

    storage.save_presets([])
    assert storage.load_presets() == []


def test_history_keeps_most_recent_entries():
    storage = open_storage("sqlite://", history_limit=20)
    for i in range(25):
        storage.add_history_item(HistoryItem(url=f"u{i}", route_name="A to B", bus_count=i, timestamp=i))

    history = storage.load_history()
    assert len(history) == 20
    assert history[0].url == "u5"
    assert history[-1].url == "u24"


def test_save_history_returns_trimmed_list():
    storage = open_storage("sqlite://", history_limit=2)
    kept = storage.save_history([HistoryItem(url=u) for u in ("a", "b", "c")])
    assert [h.url for h in kept] == ["b", "c"]
    assert storage.load()["history"][0] == {"url": "b", "routeName": "", "busCount": 0, "timestamp": 0}


def test_corrupt_value_is_ignored(storage):
    with storage.db.get_session() as session:
        session.add(StorageEntry(key=HISTORY_KEY, value_json="{not json"))
    assert storage.load_history() == []


def test_file_database_persists_between_instances(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'data' / 'layersync.db'}"
    open_storage(db_url).save_presets([Preset("p", "https://x")])
    assert open_storage(db_url).load_presets() == [Preset("p", "https://x", 10)]


def test_history_entry_stamps_current_time():
    item = history_entry("https://x", "A to B", 3)
    assert item.timestamp > 0
    assert HistoryItem.from_dict(item.to_dict()) == item
