from __future__ import annotations

import random

from affiliation_crawler.config import BrowserConfig
from affiliation_crawler.infra import KeyValueStore, SQLiteManager, UserAgentPool


def test_sqlite_manager_initialises_schema(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "store.db"
    conn = manager.connect(path)
    columns = conn.execute("PRAGMA table_info(kv_store)").fetchall()
    column_names = [row["name"] for row in columns]
    assert {"key", "value", "updated_at"}.issubset(column_names)


def test_store_load_omits_absent_keys(kv_store: KeyValueStore) -> None:
    kv_store.replace({"current_index": 2, "is_running": False})
    loaded = kv_store.load(["current_index", "is_running", "records"])
    assert loaded == {"current_index": 2, "is_running": False}
    assert kv_store.load([]) == {}


def test_store_roundtrips_json_values(kv_store: KeyValueStore) -> None:
    records = [{"author": "Zoë Müller", "title": "Über Graphen", "affiliation": ""}]
    kv_store.replace({"records": records})
    assert kv_store.load(["records"])["records"] == records


def test_store_values_survive_reconnect(tmp_path) -> None:
    path = tmp_path / "store.db"
    first = SQLiteManager()
    KeyValueStore(first, path).replace({"debug_info": "hello"})
    first.close_all()
    second = SQLiteManager()
    assert KeyValueStore(second, path).load(["debug_info"]) == {"debug_info": "hello"}
    second.close_all()


def test_store_broadcasts_changed_keys(kv_store: KeyValueStore) -> None:
    seen: list[frozenset[str]] = []
    unsubscribe = kv_store.subscribe(seen.append)

    kv_store.replace({"current_index": 1, "is_running": True})
    kv_store.replace({})
    kv_store.clear()
    unsubscribe()
    kv_store.replace({"current_index": 2})

    assert seen == [
        frozenset({"current_index", "is_running"}),
        frozenset({"current_index", "is_running"}),
    ]
    assert kv_store.load(["current_index"]) == {"current_index": 2}


def test_store_listener_failure_does_not_block_others(kv_store: KeyValueStore) -> None:
    seen: list[frozenset[str]] = []

    def _broken(keys: frozenset[str]) -> None:
        raise RuntimeError("listener exploded")

    kv_store.subscribe(_broken)
    kv_store.subscribe(seen.append)
    kv_store.replace({"debug_info": "note"})
    assert seen == [frozenset({"debug_info"})]


def test_user_agent_pool(monkeypatch) -> None:
    monkeypatch.setattr(random, "choice", lambda seq: seq[-1])
    pool = UserAgentPool(user_agents=["UA1", " UA2 ", "UA1", ""])
    assert not pool.empty
    assert pool.get() == "UA2"
    assert UserAgentPool().get() is None
    assert UserAgentPool().empty


def test_user_agent_pool_from_browser_config(tmp_path) -> None:
    ua_file = tmp_path / "uas.txt"
    ua_file.write_text("UA3\n\nUA3\n", encoding="utf-8")
    pool = UserAgentPool.from_config(BrowserConfig(user_agent_list=ua_file))
    assert pool.get() == "UA3"
    assert UserAgentPool.from_config(BrowserConfig()).empty
