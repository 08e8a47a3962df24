"""Incremental indexing of a library root into its catalog."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import send2trash

from famlib.core.catalog.layout import LibraryLayout
from famlib.core.catalog.models import CatalogItem, unique_sorted
from famlib.core.catalog.store import CatalogStore
from famlib.core.catalog.versions import DEFAULT_STRATEGIES, VersionStrategy, detect_version
from famlib.core.host import AssetHost
from famlib.utils.logger import get_logger

_logger = get_logger()


@dataclass
class IndexResult:
    """Outcome of one indexing pass."""

    added: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    pruned: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.added + self.updated + self.unchanged


def sort_key(item: CatalogItem) -> tuple[str, str, str]:
    return (item.display_name.casefold(), item.display_name, item.relative_path.casefold())


def file_mtime_utc(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


class LibraryIndexer:
    """Diffs the asset tree against the catalog and refreshes changed entries.

    Only files that are new or whose modification time is newer than the
    catalog entry are opened through the host; everything else is kept as is.
    """

    def __init__(
        self,
        host: AssetHost,
        version_strategies: tuple[VersionStrategy, ...] = DEFAULT_STRATEGIES,
    ):
        self._host = host
        self._strategies = version_strategies

    def build_index(
        self,
        root: Path | str | None,
        prune_missing: bool = False,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> IndexResult:
        """Index ``root`` and persist the merged catalog.

        Args:
            root: Library root folder
            prune_missing: Drop entries whose file no longer exists. Off by
                default so user tags survive temporary moves.
            progress_callback: Optional callback(current, total, filename)

        Returns:
            Counts of added, updated, unchanged and failed files
        """
        result = IndexResult()
        if not root or not str(root).strip():
            return result
        root = Path(root)
        if not root.is_dir():
            _logger.info(f"Library root does not exist, nothing to index: {root}")
            return result

        layout = LibraryLayout(root, self._host.asset_extension)
        folder = layout.asset_folder()
        layout.thumbs_folder.mkdir(parents=True, exist_ok=True)

        index_path = CatalogStore.index_path(root)
        existing = CatalogStore.read(index_path)

        entries: dict[str, CatalogItem] = {}
        for item in existing:
            if not item.relative_path:
                continue
            item.full_path = str(layout.full_path(folder, item.relative_path))
            entries[item.full_path.casefold()] = item

        files = list(layout.iter_assets(folder))
        total = len(files)
        seen: set[str] = set()

        for i, path in enumerate(files):
            if progress_callback:
                progress_callback(i + 1, total, path.name)

            key = str(path).casefold()
            seen.add(key)
            try:
                modified = file_mtime_utc(path)
            except OSError as e:
                _logger.warning(f"Cannot stat {path}: {e}")
                result.failed += 1
                continue

            item = entries.get(key)
            if item is not None and item.last_modified_utc is not None:
                if item.last_modified_utc >= modified:
                    result.unchanged += 1
                    continue

            is_new = item is None
            if item is None:
                item = CatalogItem()

            item.display_name = path.stem
            item.relative_path = layout.relative_path(folder, path)
            item.full_path = str(path)
            item.last_modified_utc = modified
            item.format_version = self._detect_version(path)

            if not self._read_metadata(path, item):
                result.failed += 1

            entries[key] = item
            if is_new:
                result.added += 1
            else:
                result.updated += 1

        if prune_missing:
            for key in list(entries):
                if key not in seen and not Path(entries[key].full_path).exists():
                    rel = entries.pop(key).relative_path
                    result.pruned.append(rel)
                    self._trash_thumbnails(layout, rel)

        items = sorted(entries.values(), key=sort_key)
        CatalogStore.write(index_path, items)

        _logger.info(
            f"Indexed {root}: {result.added} added, {result.updated} updated, "
            f"{result.unchanged} unchanged, {result.failed} failed, {len(result.pruned)} pruned"
        )
        return result

    def _trash_thumbnails(self, layout: LibraryLayout, relative_path: str) -> None:
        """Move the thumbnails of a pruned entry to the trash."""
        for path in (layout.thumbnail_path(relative_path), layout.variant_thumbnail_dir(relative_path)):
            if not path.exists():
                continue
            try:
                send2trash.send2trash(str(path))
            except Exception as e:
                _logger.warning(f"Cannot trash {path}: {e}")

    def _detect_version(self, path: Path) -> str:
        try:
            detected = detect_version(self._host.read_file_info(path), self._strategies)
        except Exception as e:
            _logger.debug(f"Version detection failed for {path}: {e}")
            return ""
        return detected.year if detected else ""

    def _read_metadata(self, path: Path, item: CatalogItem) -> bool:
        """Read category and variants into ``item``. Returns False on failure.

        Fields that cannot be read keep their previous values.
        """
        document = None
        ok = True
        try:
            document = self._host.open_document(path)
            if document is None or not document.is_asset:
                return True

            try:
                item.category = document.category or ""
            except Exception as e:
                _logger.warning(f"Cannot read category of {path}: {e}")
                ok = False

            try:
                item.variant_names = unique_sorted(document.variant_names())
            except Exception as e:
                _logger.warning(f"Cannot read variants of {path}: {e}")
                ok = False
        except Exception as e:
            _logger.warning(f"Cannot open {path}: {e}")
            ok = False
        finally:
            if document is not None:
                try:
                    document.close()
                except Exception as e:
                    _logger.debug(f"Closing {path} failed: {e}")
        return ok
