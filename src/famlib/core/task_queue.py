"""Serialized queue of library tasks.

Requests carry everything a task needs. Nothing is shared between the caller
and the queue besides the request objects themselves.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from PySide6.QtCore import QObject, Signal

from famlib.core.batch_loader import BatchLoader
from famlib.core.catalog.indexer import LibraryIndexer
from famlib.core.host import Notifier, null_notifier
from famlib.core.thumbnail_generator import ThumbnailGenerator
from famlib.utils.logger import get_logger
from famlib.utils.settings import DEFAULT_THUMBNAIL_SIZE

_logger = get_logger()


class LibraryTaskType(Enum):
    """Kinds of work the queue runs."""

    BUILD_INDEX = "build_index"
    GENERATE_THUMBNAILS_AND_INDEX = "generate_thumbnails_and_index"
    LOAD_SELECTED = "load_selected"


@dataclass
class LibraryTaskRequest:
    """One unit of queued work."""

    task_type: LibraryTaskType
    library_root: Path | None = None
    thumbnail_pixel_size: int = DEFAULT_THUMBNAIL_SIZE
    paths: list[Path] = field(default_factory=list)
    place_after_loading: bool = False
    prune_missing: bool = False
    progress_callback: Callable[[int, int, str], None] | None = field(
        default=None, compare=False, repr=False
    )

    # Filled in after the task ran
    result: Any = field(default=None, compare=False)
    error: str | None = field(default=None, compare=False)


class LibraryTaskQueue(QObject):
    """Runs queued requests one at a time, oldest first.

    Signals:
        completed: Emits the request after it ran, whether it succeeded or not
    """

    completed = Signal(object)

    def __init__(
        self,
        indexer: LibraryIndexer,
        thumbnails: ThumbnailGenerator,
        loader_factory: Callable[[LibraryTaskRequest], BatchLoader],
        notify: Notifier | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._indexer = indexer
        self._thumbnails = thumbnails
        self._loader_factory = loader_factory
        self._notify = notify or null_notifier
        self._pending: deque[LibraryTaskRequest] = deque()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, request: LibraryTaskRequest) -> None:
        self._pending.append(request)
        _logger.debug(f"Queued {request.task_type.value}")

    def run_pending(self) -> int:
        """Run everything queued so far. Returns the number of requests run."""
        count = 0
        while self._pending:
            request = self._pending.popleft()
            self._run(request)
            count += 1
        return count

    def _run(self, request: LibraryTaskRequest) -> None:
        try:
            request.result = self._execute(request)
        except Exception as e:
            request.error = str(e)
            _logger.error(f"Task {request.task_type.value} failed: {e}", exc_info=True)
            self._notify("Family Library", f"Error:\n{e}")
        finally:
            self.completed.emit(request)

    def _execute(self, request: LibraryTaskRequest) -> Any:
        task = request.task_type
        if task == LibraryTaskType.BUILD_INDEX:
            return self._indexer.build_index(
                request.library_root,
                prune_missing=request.prune_missing,
                progress_callback=request.progress_callback,
            )

        if task == LibraryTaskType.GENERATE_THUMBNAILS_AND_INDEX:
            thumbs = self._thumbnails.generate(request.library_root, request.thumbnail_pixel_size)
            index = self._indexer.build_index(
                request.library_root,
                prune_missing=request.prune_missing,
                progress_callback=request.progress_callback,
            )
            return thumbs, index

        if task == LibraryTaskType.LOAD_SELECTED:
            loader = self._loader_factory(request)
            return loader.load_selected(request.paths, request.place_after_loading)

        raise ValueError(f"Unknown task type: {task}")
