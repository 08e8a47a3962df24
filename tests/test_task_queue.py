"""Tests for the serialized task queue."""

from pathlib import Path

import pytest

from famlib.core.batch_loader import BatchLoader, LoadReport
from famlib.core.catalog.indexer import IndexResult, LibraryIndexer
from famlib.core.task_queue import LibraryTaskQueue, LibraryTaskRequest, LibraryTaskType
from famlib.core.thumbnail_generator import ThumbnailGenerator, ThumbnailResult

from conftest import FakeHost, FakeWorkspace


class RecordingIndexer:
    def __init__(self, log: list, fail: bool = False):
        self.log = log
        self.fail = fail

    def build_index(self, root, prune_missing=False, progress_callback=None):
        self.log.append(("index", root, prune_missing))
        if self.fail:
            raise RuntimeError("disk full")
        return IndexResult(added=1)


class RecordingThumbnails:
    def __init__(self, log: list):
        self.log = log

    def generate(self, root, pixel_size):
        self.log.append(("thumbs", root, pixel_size))
        return ThumbnailResult(assets=1, rendered=1)


@pytest.fixture
def log():
    return []


class TestTaskQueue:
    """Test queue ordering, results and completion."""

    def test_runs_in_fifo_order(self, qapp, log, temp_dir: Path):
        """Test that requests run in submission order."""
        queue = LibraryTaskQueue(RecordingIndexer(log), RecordingThumbnails(log), lambda r: None)
        queue.submit(LibraryTaskRequest(LibraryTaskType.BUILD_INDEX, library_root=temp_dir, prune_missing=True))
        queue.submit(
            LibraryTaskRequest(
                LibraryTaskType.GENERATE_THUMBNAILS_AND_INDEX,
                library_root=temp_dir,
                thumbnail_pixel_size=256,
            )
        )

        assert queue.pending_count == 2
        assert queue.run_pending() == 2
        assert queue.pending_count == 0
        assert log == [
            ("index", temp_dir, True),
            ("thumbs", temp_dir, 256),
            ("index", temp_dir, False),
        ]

    def test_completed_emitted_with_result(self, qapp, log, temp_dir: Path):
        """Test that completion carries the request and its result."""
        queue = LibraryTaskQueue(RecordingIndexer(log), RecordingThumbnails(log), lambda r: None)
        completed = []
        queue.completed.connect(lambda request: completed.append(request))
        request = LibraryTaskRequest(LibraryTaskType.BUILD_INDEX, library_root=temp_dir)

        queue.submit(request)
        queue.run_pending()

        assert completed == [request]
        assert request.result.added == 1
        assert request.error is None

    def test_failure_notified_and_still_completed(self, qapp, log, temp_dir: Path, notifications, notify):
        """Test that a failing task is reported and the queue continues."""
        queue = LibraryTaskQueue(
            RecordingIndexer(log, fail=True), RecordingThumbnails(log), lambda r: None, notify
        )
        completed = []
        queue.completed.connect(lambda request: completed.append(request))
        failing = LibraryTaskRequest(LibraryTaskType.BUILD_INDEX, library_root=temp_dir)
        after = LibraryTaskRequest(LibraryTaskType.GENERATE_THUMBNAILS_AND_INDEX, library_root=temp_dir)

        queue.submit(failing)
        queue.submit(after)
        queue.run_pending()

        assert completed == [failing, after]
        assert failing.error == "disk full"
        assert len(notifications) == 2
        assert "disk full" in notifications[0][1]

    def test_load_selected_uses_factory(self, qapp, log, temp_dir: Path):
        """Test that load requests build a loader per request."""
        asset = temp_dir / "Lamp.rfa"
        asset.write_bytes(b"lamp")
        workspace = FakeWorkspace()
        requests = []

        def factory(request):
            requests.append(request)
            return BatchLoader(workspace, lambda name, path: None)

        queue = LibraryTaskQueue(RecordingIndexer(log), RecordingThumbnails(log), factory)
        request = LibraryTaskRequest(LibraryTaskType.LOAD_SELECTED, paths=[asset])
        queue.submit(request)
        queue.run_pending()

        assert requests == [request]
        assert isinstance(request.result, LoadReport)
        assert request.result.loaded == 1

    def test_with_real_indexer(self, qapp, library_root: Path, fake_render):
        """Test thumbnails then index against the real implementations."""
        host = FakeHost()
        progress = []
        queue = LibraryTaskQueue(LibraryIndexer(host), ThumbnailGenerator(host, fake_render), lambda r: None)
        request = LibraryTaskRequest(
            LibraryTaskType.GENERATE_THUMBNAILS_AND_INDEX,
            library_root=library_root,
            thumbnail_pixel_size=24,
            progress_callback=lambda current, total, name: progress.append((current, total)),
        )
        queue.submit(request)
        queue.run_pending()

        thumbs, index = request.result
        assert thumbs.rendered == 3
        assert index.added == 3
        assert progress == [(1, 3), (2, 3), (3, 3)]
        assert (library_root / "index.json").is_file()
