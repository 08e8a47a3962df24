"""In-memory catalog state for one library root."""

from pathlib import Path
from typing import Iterable

from famlib.core.catalog.layout import DEFAULT_EXTENSION, LibraryLayout
from famlib.core.catalog.models import CatalogItem
from famlib.core.catalog.store import CatalogStore
from famlib.core.host import Workspace
from famlib.core.tag_system import CatalogFilter, TagVocabulary
from famlib.utils.logger import get_logger
from famlib.utils.settings import Settings

_logger = get_logger()


class LibrarySession:
    """Holds the loaded catalog, the tag vocabulary and the active filter.

    Tag edits are written back to the catalog file right away. Filtering is
    recomputed explicitly after each change through ``refilter()``.
    """

    def __init__(
        self,
        settings: Settings,
        workspace: Workspace | None = None,
        extension: str = DEFAULT_EXTENSION,
        root: Path | None = None,
    ):
        self._settings = settings
        self._root = root
        self._workspace = workspace
        self._extension = extension
        self.items: list[CatalogItem] = []
        self.filter = CatalogFilter(TagVocabulary.build(settings.load_user_tags(), []))
        self._visible: list[CatalogItem] = []

    @property
    def root(self) -> Path | None:
        """The explicit root if one was given, otherwise the configured one."""
        if self._root is not None:
            return self._root
        return self._settings.load_library_root()

    @property
    def vocabulary(self) -> TagVocabulary:
        return self.filter.vocabulary

    @property
    def visible_items(self) -> list[CatalogItem]:
        return list(self._visible)

    def refresh(self) -> list[CatalogItem]:
        """Reload the catalog from disk and refilter."""
        root = self.root
        self.items = []
        if root is not None and root.is_dir():
            layout = LibraryLayout(root, self._extension)
            folder = layout.asset_folder(create=False)
            loaded_names = self._workspace_names()

            for item in CatalogStore.read(CatalogStore.index_path(root)):
                if not item.relative_path:
                    continue
                item.full_path = str(layout.full_path(folder, item.relative_path))
                thumb = layout.thumbnail_path(item.relative_path)
                item.thumbnail_path = str(thumb) if thumb.is_file() else ""
                item.variant_thumbnail_paths = [
                    str(p) for p in layout.variant_thumbnail_paths(item.relative_path)
                ]
                item.selected_variant_index = 0
                item.is_loaded_in_workspace = item.display_name.casefold() in loaded_names
                self.items.append(item)
        else:
            _logger.info(f"No library root to load: {root}")

        self.filter.vocabulary = TagVocabulary.build(self._settings.load_user_tags(), self.items)
        return self.refilter()

    def _workspace_names(self) -> set[str]:
        if self._workspace is None:
            return set()
        try:
            return {name.casefold() for name in self._workspace.asset_names() if name}
        except Exception as e:
            _logger.warning(f"Cannot read workspace asset names: {e}")
            return set()

    def refilter(self) -> list[CatalogItem]:
        self.filter.visible_categories()
        self._visible = self.filter.apply(self.items)
        return self.visible_items

    def find(self, relative_path: str) -> CatalogItem | None:
        key = relative_path.replace("\\", "/").casefold()
        for item in self.items:
            if item.relative_path.casefold() == key:
                return item
        return None

    # === Item tags ===

    def toggle_item_tag(self, item: CatalogItem, tag: str) -> bool:
        changed = item.toggle_tag(tag)
        return self._after_item_edit(changed, tag)

    def add_item_tag(self, item: CatalogItem, tag: str) -> bool:
        return self._after_item_edit(item.add_tag(tag), tag)

    def remove_item_tag(self, item: CatalogItem, tag: str) -> bool:
        return self._after_item_edit(item.remove_tag(tag), tag)

    def _after_item_edit(self, changed: bool, tag: str) -> bool:
        if changed:
            if item_tag := tag.strip():
                self.vocabulary.ensure(item_tag)
            self.save()
            self.refilter()
        return changed

    def save(self) -> None:
        """Persist the whole catalog."""
        root = self.root
        if root is None:
            return
        CatalogStore.write(CatalogStore.index_path(root), self.items)

    # === Vocabulary ===

    def add_vocabulary_tag(self, tag: str) -> bool:
        if not self.vocabulary.add(tag):
            return False
        self._settings.save_user_tags(self.vocabulary.tags)
        self.refilter()
        return True

    def remove_vocabulary_tag(self, tag: str) -> bool:
        if not self.vocabulary.remove(tag):
            return False
        self._settings.save_user_tags(self.vocabulary.tags)
        self.refilter()
        return True

    # === Loading ===

    @staticmethod
    def selected_paths(items: Iterable[CatalogItem]) -> list[Path]:
        """Distinct existing source files of ``items``, in order."""
        seen: set[str] = set()
        paths: list[Path] = []
        for item in items:
            if not item.full_path:
                continue
            key = item.full_path.casefold()
            if key in seen:
                continue
            seen.add(key)
            path = Path(item.full_path)
            if path.is_file():
                paths.append(path)
        return paths
