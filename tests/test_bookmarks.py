"""Tests for bookmarked stop storage."""

import json

from nextrip_mcp.bookmarks import SAVED_STOPS_KEY, BookmarkStore
from nextrip_mcp.models import StopData


class TestBookmarkStore:
    """Test key/value persistence of saved stops."""

    def test_load_initializes_empty_list(self, tmp_path):
        path = tmp_path / "nested" / "bookmarks.json"
        store = BookmarkStore(path)
        assert store.load() == []
        assert json.loads(path.read_text(encoding="utf-8")) == {SAVED_STOPS_KEY: []}

    def test_add_and_reload(self, tmp_path):
        path = tmp_path / "bookmarks.json"
        BookmarkStore(path).add([
            StopData(stop_id=17940, stop_name="Hennepin Ave & 7th St", stop_lat=44.978, stop_lon=-93.274),
        ])

        saved = BookmarkStore(path).load()
        assert len(saved) == 1
        assert saved[0].stop_id == 17940
        assert saved[0].stop_lat == 44.978

    def test_remove(self, tmp_path):
        store = BookmarkStore(tmp_path / "bookmarks.json")
        store.add([
            StopData(stop_id=1, stop_name="A"),
            StopData(stop_id=2, stop_name="B"),
        ])
        remaining = store.remove(1)
        assert [s.stop_id for s in remaining] == [2]
        assert [s.stop_id for s in store.load()] == [2]

    def test_other_keys_preserved(self, tmp_path):
        store = BookmarkStore(tmp_path / "bookmarks.json")
        store.set("theme", "dark")
        store.add([StopData(stop_id=1, stop_name="A")])
        assert store.get("theme") == "dark"
        assert store.get("missing") is None
