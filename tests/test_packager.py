"""Tests for building and writing .lqaboss flow archives (flow.packager)."""

import io
import json
import os
import zipfile
from datetime import datetime, timezone

import pytest

from conftest import make_record, png_bytes, run

from capture.constants import FLOW_METADATA_FILE, FLOW_MIME_TYPE
from capture.errors import EmptyFlow
from capture.types import Segment
from flow.packager import build_flow_archive, image_name, write_flow_file
from flow.store import page_data_key


CREATED = datetime(2024, 5, 6, 7, 8, 9, 123000, tzinfo=timezone.utc)


def _open(archive):
    return zipfile.ZipFile(io.BytesIO(archive.data))


def _seed(store, backend):
    run(store.append(make_record("pa", "https://a.com")))
    run(store.append(make_record("orphan", "https://lost.com")))
    run(store.append(make_record("pb", "https://b.com")))
    # index entry left behind without its page data
    run(backend.remove([page_data_key("orphan")]))


class TestBuildFlowArchive:

    def test_images_and_manifest(self, store, backend):
        _seed(store, backend)
        archive = run(build_flow_archive(store, "Checkout", created_at=CREATED))
        zf = _open(archive)
        names = sorted(zf.namelist())
        assert names == sorted([FLOW_METADATA_FILE, "page_1_pa.png", "page_3_pb.png"])
        assert zf.read("page_1_pa.png") == png_bytes()
        assert archive.skipped == ["orphan"]
        assert archive.page_count == 2
        assert archive.mime_type == FLOW_MIME_TYPE

        meta = json.loads(zf.read(FLOW_METADATA_FILE).decode("utf-8"))
        assert meta["flowName"] == "Checkout"
        assert meta["createdAt"] == "2024-05-06T07:08:09.123Z"
        assert [p["pageId"] for p in meta["pages"]] == ["pa", "pb"]
        assert [p["originalUrl"] for p in meta["pages"]] == ["https://a.com", "https://b.com"]
        assert meta["pages"][0]["imageFile"] == "page_1_pa.png"
        assert meta["pages"][0]["timestamp"] == "2024-01-02T03:04:05.000Z"
        assert meta["pages"][0]["segments"] == [
            {"text": "Hello", "x": 1.0, "y": 2.0, "width": 30.0, "height": 10.0, "sid": "s1"},
        ]

    def test_manifest_is_indented(self, store):
        run(store.append(make_record("pa", "https://a.com")))
        raw = _open(run(build_flow_archive(store, "f"))).read(FLOW_METADATA_FILE).decode("utf-8")
        assert raw.startswith('{\n  "flowName"')

    def test_every_image_referenced_exactly_once(self, store, backend):
        _seed(store, backend)
        archive = run(build_flow_archive(store, "x"))
        zf = _open(archive)
        images = [n for n in zf.namelist() if n.endswith(".png")]
        refs = [p.image_file for p in archive.manifest.pages]
        assert sorted(images) == sorted(refs)
        assert len(set(refs)) == len(refs)

    def test_reserved_keys_stripped_from_segments(self, store):
        seg = Segment(text="T", x=0, y=0, width=1, height=1, sid="k", screenshot="no", id="no", url="no", timestamp="no")
        run(store.append(make_record("pa", "https://a.com", segments=[seg])))
        archive = run(build_flow_archive(store, "f"))
        assert archive.manifest.pages[0].segments == [{"text": "T", "x": 0.0, "y": 0.0, "width": 1.0, "height": 1.0, "sid": "k"}]

    def test_empty_store_raises(self, store):
        with pytest.raises(EmptyFlow) as ei:
            run(build_flow_archive(store, "f"))
        assert ei.value.message == "No pages were available to include in the flow."

    def test_all_unresolvable_raises(self, store, backend):
        run(store.append(make_record("p1", "https://a.com")))
        run(backend.remove([page_data_key("p1")]))
        with pytest.raises(EmptyFlow) as ei:
            run(build_flow_archive(store, "f"))
        assert "Failed to process any pages" in ei.value.message

    def test_bad_base64_page_skipped(self, store, backend):
        run(store.append(make_record("good", "https://a.com")))
        bad = make_record("bad", "https://b.com").model_copy(update={"screenshot": "data:image/png;base64,@@not-base64@@"})
        run(store.append(bad))
        archive = run(build_flow_archive(store, "f"))
        assert [p.page_id for p in archive.manifest.pages] == ["good"]
        assert archive.skipped == ["bad"]

    def test_store_not_mutated(self, store, backend):
        _seed(store, backend)
        before = [e.id for e in run(store.entries())]
        run(build_flow_archive(store, "f"))
        assert [e.id for e in run(store.entries())] == before
        assert run(store.load("pa")) is not None

    def test_filename_sanitized(self, store):
        run(store.append(make_record("pa", "https://a.com")))
        archive = run(build_flow_archive(store, "My Flow/1"))
        assert archive.filename == "My_Flow_1.lqaboss"
        assert archive.manifest.flow_name == "My Flow/1"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_default_name(self, store, name):
        run(store.append(make_record("pa", "https://a.com")))
        archive = run(build_flow_archive(store, name, created_at=CREATED))
        assert archive.manifest.flow_name == "lqa_flow_20240506"
        assert archive.filename == "lqa_flow_20240506.lqaboss"


def test_image_name():
    assert image_name(3, "page_1_abc") == "page_3_page_1_abc.png"


class TestWriteFlowFile:

    def test_writes_and_uniquifies(self, store, tmp_path):
        run(store.append(make_record("pa", "https://a.com")))
        archive = run(build_flow_archive(store, "demo"))
        first = write_flow_file(archive, str(tmp_path))
        second = write_flow_file(archive, str(tmp_path))
        assert os.path.basename(first) == "demo.lqaboss"
        assert os.path.basename(second) == "demo-1.lqaboss"
        with open(first, "rb") as f:
            assert f.read() == archive.data

    def test_overwrite(self, store, tmp_path):
        run(store.append(make_record("pa", "https://a.com")))
        archive = run(build_flow_archive(store, "demo"))
        write_flow_file(archive, str(tmp_path))
        again = write_flow_file(archive, str(tmp_path), overwrite=True)
        assert os.path.basename(again) == "demo.lqaboss"
        assert os.listdir(tmp_path) == ["demo.lqaboss"]
