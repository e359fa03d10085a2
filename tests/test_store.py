"""Tests for the capture store and its backends (flow.store)."""

import json
import os

import pytest

from conftest import make_record, run

from capture.constants import CAPTURED_PAGES_INDEX_KEY
from capture.errors import StoreError
from flow.store import CaptureStore, JsonDirBackend, MemoryBackend, page_data_key


class RecordingBackend(MemoryBackend):
    def __init__(self):
        super().__init__()
        self.writes = []

    async def set(self, key, value):
        self.writes.append(key)
        await super().set(key, value)


class IndexWriteFailingBackend(MemoryBackend):
    def __init__(self, *, remove_fails=False):
        super().__init__()
        self.remove_fails = remove_fails

    async def set(self, key, value):
        if key == CAPTURED_PAGES_INDEX_KEY:
            raise OSError("quota exceeded")
        await super().set(key, value)

    async def remove(self, keys):
        if self.remove_fails:
            raise OSError("backend unavailable")
        await super().remove(keys)


class TestCaptureStore:

    def test_append_writes_data_before_index(self):
        backend = RecordingBackend()
        store = CaptureStore(backend)
        total = run(store.append(make_record("p1", "https://a.com")))
        assert total == 1
        assert backend.writes == [page_data_key("p1"), CAPTURED_PAGES_INDEX_KEY]

    def test_entries_keep_capture_order(self, store):
        for pid in ("p1", "p2", "p3"):
            run(store.append(make_record(pid, f"https://{pid}.example")))
        entries = run(store.entries())
        assert [e.id for e in entries] == ["p1", "p2", "p3"]
        assert entries[1].url == "https://p2.example"
        assert run(store.count()) == 3

    def test_snapshot_unaffected_by_later_appends(self, store):
        run(store.append(make_record("p1", "https://a.com")))
        snap = run(store.snapshot())
        run(store.append(make_record("p2", "https://b.com")))
        assert [e.id for e in snap] == ["p1"]

    def test_index_entry_estimates(self, store):
        rec = make_record("p1", "https://a.com")
        run(store.append(rec))
        entry = run(store.entries())[0]
        assert entry.est_screenshot_size == len(rec.screenshot) * 0.75
        assert entry.est_text_content_size > 0
        assert entry.has_content

    def test_load_round_trip_keeps_metadata(self, store):
        rec = make_record("p1", "https://a.com")
        run(store.append(rec))
        loaded = run(store.load("p1"))
        assert loaded == rec
        assert loaded.segments[0].metadata == {"sid": "s1"}

    def test_load_missing_is_none(self, store):
        assert run(store.load("nope")) is None

    def test_load_malformed_is_none(self, backend, store):
        run(backend.set(page_data_key("bad"), {"id": "bad"}))
        assert run(store.load("bad")) is None

    def test_malformed_index_items_skipped(self, backend, store):
        run(store.append(make_record("p1", "https://a.com")))
        index = run(backend.get(CAPTURED_PAGES_INDEX_KEY))
        index.append({"url": "missing id"})
        run(backend.set(CAPTURED_PAGES_INDEX_KEY, index))
        assert [e.id for e in run(store.entries())] == ["p1"]

    def test_usage_mb(self, store):
        assert run(store.usage_mb()) == 0
        run(store.append(make_record("p1", "https://a.com")))
        assert run(store.usage_bytes()) > 0
        assert run(store.usage_mb()) == round(run(store.usage_bytes()) / (1024 * 1024), 2)

    def test_reset_clears_index_and_data(self, backend, store):
        run(store.append(make_record("p1", "https://a.com")))
        run(store.append(make_record("p2", "https://b.com")))
        assert run(store.reset()) == 2
        assert run(store.entries()) == []
        assert backend.keys() == [CAPTURED_PAGES_INDEX_KEY]

    def test_memory_backend_returns_copies(self, backend):
        value = {"a": [1]}
        run(backend.set("k", value))
        got = run(backend.get("k"))
        got["a"].append(2)
        assert run(backend.get("k")) == {"a": [1]}


class TestJsonDirBackend:

    def test_persists_across_instances(self, tmp_path):
        root = str(tmp_path / "captures")
        run(CaptureStore(JsonDirBackend(root)).append(make_record("p1", "https://a.com")))

        reopened = CaptureStore(JsonDirBackend(root))
        assert [e.id for e in run(reopened.entries())] == ["p1"]
        assert run(reopened.load("p1")).url == "https://a.com"

    def test_one_file_per_key(self, tmp_path):
        root = tmp_path / "captures"
        run(CaptureStore(JsonDirBackend(str(root))).append(make_record("p1", "https://a.com")))
        names = sorted(os.listdir(root))
        assert names == [f"{CAPTURED_PAGES_INDEX_KEY}.json", "lqa_page_p1.json"]
        with open(root / "lqa_page_p1.json", encoding="utf-8") as f:
            assert json.load(f)["id"] == "p1"

    def test_missing_key_and_remove(self, tmp_path):
        backend = JsonDirBackend(str(tmp_path))
        assert run(backend.get("absent")) is None
        run(backend.set("k", [1, 2]))
        run(backend.remove(["k", "absent"]))
        assert run(backend.get("k")) is None


class TestAppendFailure:

    def test_index_write_failure_discards_page_data(self):
        backend = IndexWriteFailingBackend()
        store = CaptureStore(backend)
        with pytest.raises(StoreError) as ei:
            run(store.append(make_record("p1", "https://a.com")))
        assert "capture index" in ei.value.message
        assert backend.keys() == []
        assert run(store.load("p1")) is None

    def test_cleanup_failure_still_raises_store_error(self):
        backend = IndexWriteFailingBackend(remove_fails=True)
        with pytest.raises(StoreError) as ei:
            run(CaptureStore(backend).append(make_record("p1", "https://a.com")))
        assert isinstance(ei.value.original, OSError)
        assert "quota exceeded" in str(ei.value)


class TestIndexKeys:

    def test_index_stored_with_camel_case_keys(self, backend, store):
        run(store.append(make_record("p1", "https://a.com")))
        item = run(backend.get(CAPTURED_PAGES_INDEX_KEY))[0]
        assert set(item) == {"id", "url", "timestamp", "estScreenshotSize", "estTextContentSize", "hasContent"}
        assert item["hasContent"] is True

    def test_snake_case_entries_still_readable(self, backend, store):
        run(backend.set(CAPTURED_PAGES_INDEX_KEY, [{
            "id": "old", "url": "https://a.com", "timestamp": "t",
            "est_screenshot_size": 10.0, "est_text_content_size": 5, "has_content": False,
        }]))
        entry = run(store.entries())[0]
        assert entry.est_screenshot_size == 10.0
        assert entry.has_content is False
