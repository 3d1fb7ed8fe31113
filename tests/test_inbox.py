"""Tests for the inbox staging store."""

import json
import shutil
from pathlib import Path

import pytest

from conftest import write_wav
from musiq.core.models import InboxStatus
from musiq.inbox.store import InboxStore
from musiq.library.importer import LibraryImporter


@pytest.fixture
def store(tmp_path: Path, catalog):
    s = InboxStore(str(tmp_path / "data" / "inbox.json"), LibraryImporter(catalog))
    yield s
    s.shutdown()


def _album(root: Path, tracks: int, extras: int = 0) -> Path:
    for i in range(tracks):
        write_wav(root / f"{i:03d}.wav", seconds=0.1)
    for i in range(extras):
        (root / f"notes{i}.txt").write_text("liner notes")
    return root


class TestEndToEnd:
    def test_stage_and_import_150_tracks(self, tmp_path: Path, store, catalog, monkeypatch):
        folder = _album(tmp_path / "Big Album", tracks=150, extras=3)
        commits = []
        original = catalog.insert_batch
        monkeypatch.setattr(
            catalog, "insert_batch",
            lambda batch, *a, **kw: commits.append(len(batch)) or original(batch, *a, **kw),
        )
        before = catalog.total_count()

        item = store.add_folder(str(folder)).result()

        assert item.status == InboxStatus.READY
        assert item.track_count == 150
        assert item.total_size > 0
        assert len(store.tracks_for(item.id)) == 150

        progress = []
        assert store.import_item(item.id, lambda *e: progress.append(e)) is True

        assert catalog.total_count() - before == 150
        assert commits == [100, 50]
        assert progress[-1][0] == 150
        assert store.get_item(item.id) is None
        with open(store.index_path, encoding="utf-8") as f:
            assert json.load(f)["items"] == []


class TestScanning:
    def test_folder_without_audio_fails(self, tmp_path: Path, store):
        folder = tmp_path / "docs"
        folder.mkdir()
        (folder / "readme.txt").write_text("nothing to hear")

        item = store.add_folder(str(folder)).result()

        assert item.status == InboxStatus.FAILED
        assert item.track_count == 0

    def test_missing_folder_fails(self, tmp_path: Path, store):
        item = store.add_folder(str(tmp_path / "gone")).result()
        assert item.status == InboxStatus.FAILED

    def test_track_count_includes_unreadable_files(self, tmp_path: Path, store):
        folder = _album(tmp_path / "mixed", tracks=2)
        (folder / "broken.mp3").write_bytes(b"not audio")

        item = store.add_folder(str(folder)).result()

        assert item.track_count == 3
        assert len(store.tracks_for(item.id)) == 2

    def test_rescan_picks_up_new_files(self, tmp_path: Path, store):
        folder = _album(tmp_path / "growing", tracks=1)
        item = store.add_folder(str(folder)).result()
        write_wav(folder / "999.wav", seconds=0.1)

        rescanned = store.rescan_item(item.id).result()

        assert rescanned.track_count == 2
        assert len(store.tracks_for(item.id)) == 2


class TestImportFailures:
    def test_import_of_vanished_folder_marks_failed(self, tmp_path: Path, store, catalog):
        folder = _album(tmp_path / "temp", tracks=2)
        item = store.add_folder(str(folder)).result()
        shutil.rmtree(folder)

        assert store.import_item(item.id) is False
        assert store.get_item(item.id).status == InboxStatus.FAILED
        assert catalog.total_count() == 0

    def test_progress_error_marks_failed_and_allows_retry(self, tmp_path: Path, store, catalog):
        item = store.add_folder(str(_album(tmp_path / "flaky", tracks=2))).result()

        def broken_progress(processed, total, label):
            raise RuntimeError("progress sink went away")

        with pytest.raises(RuntimeError):
            store.import_item(item.id, broken_progress)

        assert store.get_item(item.id).status == InboxStatus.FAILED
        assert store.import_item(item.id) is True
        assert store.get_item(item.id) is None
        assert catalog.total_count() == 2

    def test_only_ready_or_failed_items_import(self, tmp_path: Path, store):
        assert store.import_item("no-such-id") is False


class TestRemoval:
    def test_remove_and_clear(self, tmp_path: Path, store):
        a = store.add_folder(str(_album(tmp_path / "a", tracks=1))).result()
        store.add_folder(str(_album(tmp_path / "b", tracks=1))).result()
        hits = []
        store.items_changed.connect(lambda: hits.append(1))

        assert store.remove_item(a.id) is True
        assert hits == [1]
        assert store.remove_item(a.id) is False
        assert len(store.list_items()) == 1

        store.clear_all()
        assert store.list_items() == []
        assert store.tracks_for(a.id) == []


class TestPersistence:
    def test_items_survive_reload(self, tmp_path: Path, store, catalog):
        item = store.add_folder(str(_album(tmp_path / "keep", tracks=3))).result()

        reloaded = InboxStore(store.index_path, LibraryImporter(catalog))
        try:
            again = reloaded.get_item(item.id)
            assert again.status == InboxStatus.READY
            assert again.track_count == 3
            assert again.folder_name == "keep"
            # descriptors are rebuilt on demand
            assert len(reloaded.tracks_for(item.id)) == 3
        finally:
            reloaded.shutdown()

    def test_interrupted_states_are_reset(self, tmp_path: Path, catalog):
        index = tmp_path / "inbox.json"
        index.write_text(json.dumps({
            "version": 1,
            "items": [
                {"id": "a", "folder_path": "/x/a", "folder_name": "a",
                 "date_added": "2025-01-01T00:00:00+00:00", "status": "Scanning"},
                {"id": "b", "folder_path": "/x/b", "folder_name": "b",
                 "date_added": "2025-01-01T00:00:00+00:00", "status": "Importing", "track_count": 4},
            ],
        }))

        s = InboxStore(str(index), LibraryImporter(catalog))
        try:
            assert s.get_item("a").status == InboxStatus.PENDING
            assert s.get_item("b").status == InboxStatus.FAILED
            saved = json.loads(index.read_text())
            assert [i["status"] for i in saved["items"]] == ["Pending", "Failed"]
        finally:
            s.shutdown()

    def test_corrupt_index_starts_empty(self, tmp_path: Path, catalog):
        index = tmp_path / "inbox.json"
        index.write_text("{not json")
        s = InboxStore(str(index), LibraryImporter(catalog))
        try:
            assert s.list_items() == []
        finally:
            s.shutdown()
