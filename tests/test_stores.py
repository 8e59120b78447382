import json
import os
import sys
import threading
from datetime import datetime, timedelta, timezone

import pytest

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from vendmap.exceptions import RecordNotFoundError
from vendmap.stores import SERVER_TIMESTAMP, InMemoryRecordStore, JsonRecordStore, LocalMediaStore, StaticAuth

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class TickingClock:
    """Returns a time one second later on every call."""

    def __init__(self):
        self.now = START

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def machine(description="Gate"):
    return {"latitude": 35.0, "longitude": 139.0, "description": description, "lastUpdated": SERVER_TIMESTAMP}


class TestInMemoryRecordStore:
    def test_create_assigns_id_and_resolves_timestamp(self):
        store = InMemoryRecordStore(clock=TickingClock())

        record_id = store.create(machine())
        doc = store.get(record_id)

        assert record_id
        assert doc["id"] == record_id
        assert doc["lastUpdated"] == START + timedelta(seconds=1)
        assert doc["timestamp"] == doc["lastUpdated"]

    def test_snapshot_is_newest_first(self):
        store = InMemoryRecordStore(clock=TickingClock())
        first = store.create(machine("first"))
        second = store.create(machine("second"))

        assert [d["id"] for d in store.snapshot()] == [second, first]

    def test_update_merges_and_touches_last_updated(self):
        store = InMemoryRecordStore(clock=TickingClock())
        record_id = store.create(machine())
        created = store.get(record_id)["lastUpdated"]

        store.update(record_id, {"operatingState": "maintenance"})
        doc = store.get(record_id)

        assert doc["operatingState"] == "maintenance"
        assert doc["description"] == "Gate"
        assert doc["lastUpdated"] > created

    def test_unknown_ids(self):
        store = InMemoryRecordStore()
        with pytest.raises(RecordNotFoundError):
            store.update("missing", {"description": "x"})
        with pytest.raises(RecordNotFoundError):
            store.delete("missing")
        with pytest.raises(KeyError):
            store.get("missing")

    def test_subscribe_delivers_current_snapshot_then_changes(self):
        store = InMemoryRecordStore(clock=TickingClock())
        store.create(machine("existing"))
        received = []

        unsubscribe = store.subscribe(received.append)
        record_id = store.create(machine("new"))
        store.delete(record_id)
        unsubscribe()
        store.create(machine("unseen"))

        assert [len(s) for s in received] == [1, 2, 1]

    def test_initial_snapshot_is_not_overtaken_by_a_concurrent_write(self):
        store = InMemoryRecordStore(clock=TickingClock())
        received = []
        writer_finished_early = []

        def listener(snapshot):
            received.append(len(snapshot))
            if len(received) == 1:
                writer = threading.Thread(target=store.create, args=(machine("concurrent"),))
                writer.start()
                writer.join(timeout=0.5)
                writer_finished_early.append(not writer.is_alive())
                listener.writer = writer

        store.subscribe(listener)
        listener.writer.join(timeout=5)

        assert writer_finished_early == [False]
        assert received == [0, 1]

    def test_failing_listener_does_not_block_writes(self):
        store = InMemoryRecordStore()
        received = []

        def broken(snapshot):
            if snapshot:
                raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(received.append)
        store.create(machine())

        assert len(received[-1]) == 1


class TestJsonRecordStore:
    def test_persists_and_reloads(self, tmp_path):
        path = tmp_path / "data" / "assets.json"
        store = JsonRecordStore(path, clock=TickingClock())
        record_id = store.create(machine("Persisted"))

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw[record_id]["description"] == "Persisted"

        reloaded = JsonRecordStore(path)
        doc = reloaded.get(record_id)
        assert doc["description"] == "Persisted"
        assert doc["lastUpdated"] == START + timedelta(seconds=1)

    def test_missing_file_is_empty(self, tmp_path):
        assert JsonRecordStore(tmp_path / "none.json").snapshot() == []


class TestLocalMediaStore:
    def test_upload_and_delete(self, tmp_path):
        media = LocalMediaStore(tmp_path / "media")

        url = media.upload(b"jpeg-bytes", "assets/abc/image.jpg")
        target = tmp_path / "media" / "assets" / "abc" / "image.jpg"

        assert url.startswith("file://")
        assert target.read_bytes() == b"jpeg-bytes"

        media.delete("assets/abc/image.jpg")
        assert not target.exists()
        assert not target.parent.exists()

    def test_delete_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalMediaStore(tmp_path).delete("assets/none/image.jpg")

    def test_refuses_paths_outside_root(self, tmp_path):
        media = LocalMediaStore(tmp_path / "media")
        with pytest.raises(ValueError):
            media.upload(b"x", "../escape.jpg")


class TestStaticAuth:
    def test_signed_in(self):
        assert StaticAuth("alice").current_actor() == "alice"

    @pytest.mark.parametrize("actor", [None, ""])
    def test_signed_out(self, actor):
        assert StaticAuth(actor).current_actor() is None
