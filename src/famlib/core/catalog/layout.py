"""Directory layout of a library root.

    <root>/Families/**/<asset>           source files (or directly under <root>)
    <root>/Thumbs/<rel>.png              asset fallback thumbnails
    <root>/Thumbs_Types/<relDir>/<asset>/<variant>.png
"""

import re
from pathlib import Path, PurePosixPath
from typing import Iterator

FAMILIES_DIR = "Families"
THUMBS_DIR = "Thumbs"
VARIANT_THUMBS_DIR = "Thumbs_Types"
DEFAULT_EXTENSION = ".rfa"

# Characters not allowed in file names on any platform we care about
_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def safe_file_name(name: str) -> str:
    """Make a variant name usable as a file name."""
    if not name or not name.strip():
        return "Type"
    return _INVALID_NAME_CHARS.sub("_", name).strip()


class LibraryLayout:
    """Resolves the folders and derived paths of one library root."""

    def __init__(self, root: Path, extension: str = DEFAULT_EXTENSION):
        self.root = Path(root)
        self.extension = extension.lower()

    @property
    def thumbs_folder(self) -> Path:
        return self.root / THUMBS_DIR

    @property
    def variant_thumbs_folder(self) -> Path:
        return self.root / VARIANT_THUMBS_DIR

    def asset_folder(self, create: bool = True) -> Path:
        """Folder the asset files live in.

        Preferred layout is ``<root>/Families``; a legacy flat layout keeps
        assets directly under the root. With neither present the preferred
        folder is returned (and created when ``create`` is set).
        """
        families = self.root / FAMILIES_DIR
        if families.is_dir() and self._has_assets(families):
            return families

        if self.root.is_dir() and self._has_assets(self.root):
            return self.root

        if create:
            families.mkdir(parents=True, exist_ok=True)
        return families

    def iter_assets(self, folder: Path) -> Iterator[Path]:
        """Asset files below ``folder``, sorted, skipping thumbnail trees."""
        if not folder.is_dir():
            return
        skipped = {self.thumbs_folder.resolve(), self.variant_thumbs_folder.resolve()}
        for path in sorted(folder.rglob("*")):
            if path.suffix.lower() != self.extension or not path.is_file():
                continue
            if any(parent.resolve() in skipped for parent in path.parents):
                continue
            yield path

    def _has_assets(self, folder: Path) -> bool:
        return next(self.iter_assets(folder), None) is not None

    @staticmethod
    def relative_path(folder: Path, path: Path) -> str:
        """Forward-slash path of ``path`` relative to ``folder``."""
        return Path(path).relative_to(folder).as_posix()

    @staticmethod
    def full_path(folder: Path, relative_path: str) -> Path:
        return Path(folder).joinpath(*PurePosixPath(relative_path.replace("\\", "/")).parts)

    def thumbnail_path(self, relative_path: str) -> Path:
        rel = PurePosixPath(relative_path.replace("\\", "/")).with_suffix(".png")
        return self.thumbs_folder.joinpath(*rel.parts)

    def variant_thumbnail_dir(self, relative_path: str) -> Path:
        rel = PurePosixPath(relative_path.replace("\\", "/"))
        return self.variant_thumbs_folder.joinpath(*rel.parent.parts, rel.stem)

    def variant_thumbnail_paths(self, relative_path: str) -> list[Path]:
        folder = self.variant_thumbnail_dir(relative_path)
        if not folder.is_dir():
            return []
        files = [p for p in folder.glob("*.png") if p.is_file()]
        return sorted(files, key=lambda p: p.name.casefold())
