"""File-based host for asset packages.

An asset package is a zip file with a ``manifest.json`` and optional preview
images::

    manifest.json          {"category": ..., "variants": [...],
                            "file_info": {...}, "views": [...],
                            "elements": {"<class>": [ids]}}
    previews/<variant>.png

Documents are read into memory once. Changes made to an opened document only
live in memory and the package file is never rewritten.
"""

import json
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping
from zipfile import BadZipFile, ZipFile

from PIL import Image, ImageDraw

from famlib.core.catalog.layout import safe_file_name
from famlib.core.host import (
    AssetDocument,
    AssetHost,
    HostError,
    IdleSource,
    LoadedAsset,
    ScopedMutation,
    Workspace,
    WorkspaceTransaction,
)
from famlib.utils.logger import get_logger

_logger = get_logger()

PACKAGE_EXTENSION = ".fampkg"
MANIFEST_NAME = "manifest.json"
PREVIEWS_DIR = "previews"


class ManifestError(HostError):
    """Raised when a package has no usable manifest."""


def read_manifest(path: Path) -> tuple[dict, dict[str, bytes]]:
    """Read the manifest and preview images of a package."""
    try:
        with ZipFile(path, "r") as zf:
            try:
                manifest = json.loads(zf.read(MANIFEST_NAME).decode("utf-8"))
            except KeyError:
                raise ManifestError(f"{path.name}: {MANIFEST_NAME} missing") from None
            previews = {}
            for info in zf.infolist():
                name = info.filename
                if info.is_dir() or not name.startswith(f"{PREVIEWS_DIR}/"):
                    continue
                stem = Path(name).stem
                if stem:
                    previews[stem.casefold()] = zf.read(name)
    except (BadZipFile, OSError) as e:
        raise ManifestError(f"{path.name}: not a package ({e})") from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestError(f"{path.name}: invalid {MANIFEST_NAME} ({e})") from e

    if not isinstance(manifest, dict):
        raise ManifestError(f"{path.name}: {MANIFEST_NAME} is not an object")
    variants = manifest.get("variants", [])
    if not isinstance(variants, list) or not all(isinstance(v, str) for v in variants):
        raise ManifestError(f"{path.name}: variants must be a list of names")
    return manifest, previews


def write_package(
    path: Path,
    category: str,
    variants: Iterable[str],
    file_info: Mapping[str, str] | None = None,
    previews: Mapping[str, Image.Image] | None = None,
    views: Iterable[str] = (),
    elements: Mapping[str, list] | None = None,
) -> Path:
    """Create an asset package."""
    manifest = {
        "category": category,
        "variants": list(variants),
        "file_info": dict(file_info or {}),
        "views": list(views),
        "elements": {k: list(v) for k, v in (elements or {}).items()},
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(path, "w") as zf:
        zf.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2, ensure_ascii=False))
        for variant, image in (previews or {}).items():
            with tempfile.SpooledTemporaryFile() as buf:
                image.save(buf, format="PNG")
                buf.seek(0)
                zf.writestr(f"{PREVIEWS_DIR}/{safe_file_name(variant)}.png", buf.read())
    return path


@dataclass
class PreviewView:
    """A view of a package document used for rendering."""

    name: str
    document: "PackageDocument" = field(repr=False)
    hidden_categories: set[str] = field(default_factory=set)
    hidden_elements: set[Any] = field(default_factory=set)


class PackageScope(ScopedMutation):
    """Restores the document's in-memory state on rollback."""

    def __init__(self, document: "PackageDocument", name: str):
        super().__init__(name)
        self._document = document
        self._snapshot = document._snapshot()

    def _do_commit(self) -> None:
        pass

    def _do_rollback(self) -> None:
        self._document._restore(self._snapshot)


class PackageDocument(AssetDocument):
    """An opened asset package."""

    def __init__(self, path: Path, manifest: dict, previews: dict[str, bytes]):
        self.path = path
        self._manifest = manifest
        self._previews = previews
        self._views: dict[str, PreviewView] = {}
        for name in manifest.get("views", []) or []:
            if isinstance(name, str) and name:
                self._views[name] = PreviewView(name, self)
        variants = self.variant_names()
        self.active_variant: str | None = variants[0] if variants else None
        self.regenerate_count = 0
        self.closed = False

    @property
    def is_asset(self) -> bool:
        return True

    @property
    def category(self) -> str:
        value = self._manifest.get("category", "")
        return value if isinstance(value, str) else ""

    @property
    def view_names(self) -> list[str]:
        return list(self._views)

    def variant_names(self) -> list[str]:
        return list(self._manifest.get("variants", []))

    def begin_scope(self, name: str) -> PackageScope:
        return PackageScope(self, name)

    def get_or_create_preview_view(self, name: str) -> PreviewView:
        view = self._views.get(name)
        if view is None:
            view = PreviewView(name, self)
            self._views[name] = view
        return view

    def hide_category(self, view: PreviewView, category: str) -> None:
        view.hidden_categories.add(category)

    def element_ids(self, element_class: str) -> list[Any]:
        elements = self._manifest.get("elements") or {}
        ids = elements.get(element_class, []) if isinstance(elements, dict) else []
        return list(ids) if isinstance(ids, list) else []

    def hide_elements(self, view: PreviewView, element_ids: list[Any]) -> None:
        view.hidden_elements.update(element_ids)

    def activate_variant(self, name: str) -> None:
        if name not in self.variant_names():
            raise HostError(f"{self.path.name}: unknown variant {name!r}")
        self.active_variant = name

    def regenerate(self) -> None:
        self.regenerate_count += 1

    def preview_image(self, variant: str | None) -> bytes | None:
        if not variant:
            return None
        return self._previews.get(safe_file_name(variant).casefold())

    def close(self) -> None:
        self.closed = True

    def _snapshot(self) -> tuple:
        views = {
            name: (set(v.hidden_categories), set(v.hidden_elements)) for name, v in self._views.items()
        }
        return views, self.active_variant

    def _restore(self, snapshot: tuple) -> None:
        views, active = snapshot
        restored = {}
        for name, (categories, elements) in views.items():
            view = self._views[name]
            view.hidden_categories = categories
            view.hidden_elements = elements
            restored[name] = view
        self._views = restored
        self.active_variant = active


class PackageHost(AssetHost):
    """Opens ``.fampkg`` asset packages."""

    asset_extension = PACKAGE_EXTENSION

    def open_document(self, path: Path) -> PackageDocument:
        path = Path(path)
        manifest, previews = read_manifest(path)
        _logger.debug(f"Opened package {path}")
        return PackageDocument(path, manifest, previews)

    def read_file_info(self, path: Path) -> dict[str, str]:
        manifest, _ = read_manifest(Path(path))
        info = manifest.get("file_info") or {}
        if not isinstance(info, dict):
            return {}
        return {str(k).lower(): str(v) for k, v in info.items() if v is not None}


class PackageRenderer:
    """Renders a preview view to a PNG file.

    The variant's embedded preview is used when the package has one, else a
    placeholder showing the variant name is drawn.
    """

    PLACEHOLDER_BACKGROUND = (235, 235, 235, 255)
    PLACEHOLDER_FOREGROUND = (60, 60, 60, 255)

    def __call__(self, view: PreviewView, pixel_size: int) -> Path:
        document = view.document
        variant = document.active_variant
        data = document.preview_image(variant)

        fd, name = tempfile.mkstemp(prefix="famlib_render_", suffix=".png")
        target = Path(name)
        try:
            with open(fd, "wb") as f:
                if data:
                    f.write(data)
                else:
                    self._placeholder(variant or document.path.stem, pixel_size).save(f, format="PNG")
        except Exception:
            target.unlink(missing_ok=True)
            raise
        return target

    def _placeholder(self, text: str, pixel_size: int) -> Image.Image:
        size = max(pixel_size, 1)
        image = Image.new("RGBA", (size, size), self.PLACEHOLDER_BACKGROUND)
        draw = ImageDraw.Draw(image)
        margin = max(size // 16, 1)
        draw.rectangle(
            (margin, margin, size - margin - 1, size - margin - 1),
            outline=self.PLACEHOLDER_FOREGROUND,
            width=max(size // 128, 1),
        )
        draw.text((margin * 2, size // 2), text, fill=self.PLACEHOLDER_FOREGROUND)
        return image


class FolderTransaction(WorkspaceTransaction):
    """Tracks files a load created or replaced so they can be restored."""

    def __init__(self, workspace: "FolderWorkspace", name: str):
        super().__init__(name)
        self._workspace = workspace
        self._created: list[Path] = []
        self._backups: dict[Path, Path] = {}
        self._backup_dir: Path | None = None
        self._activations: dict[str, str | None] = {}

    def record_write(self, target: Path) -> None:
        if target in self._backups or target in self._created:
            return
        if target.exists():
            if self._backup_dir is None:
                self._backup_dir = Path(tempfile.mkdtemp(prefix="famlib_backup_"))
            backup = self._backup_dir / f"{len(self._backups)}_{target.name}"
            shutil.copy2(target, backup)
            self._backups[target] = backup
        else:
            self._created.append(target)

    def record_activation(self, asset_name: str, previous: str | None) -> None:
        self._activations.setdefault(asset_name, previous)

    def _do_commit(self) -> None:
        self._cleanup()
        self._workspace._end_transaction(self)

    def _do_rollback(self) -> None:
        try:
            for path in reversed(self._created):
                path.unlink(missing_ok=True)
            for target, backup in self._backups.items():
                shutil.copy2(backup, target)
            for asset_name, previous in self._activations.items():
                self._workspace._set_active(asset_name, previous)
            _logger.info(f"Rolled back {self.name}")
        finally:
            self._cleanup()
            self._workspace._end_transaction(self)

    def _cleanup(self) -> None:
        if self._backup_dir is not None:
            shutil.rmtree(self._backup_dir, ignore_errors=True)
            self._backup_dir = None


class FolderWorkspace(Workspace):
    """A folder that assets are imported into by copying."""

    def __init__(self, root: Path | str, extension: str = PACKAGE_EXTENSION):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.extension = extension
        self.active_variants: dict[str, str] = {}
        self.placements: list[tuple[str, str]] = []
        self._transaction: FolderTransaction | None = None

    def asset_names(self) -> list[str]:
        return sorted(
            p.stem for p in self.root.iterdir() if p.is_file() and p.suffix.lower() == self.extension
        )

    def begin_transaction(self, name: str) -> FolderTransaction:
        if self._transaction is not None:
            raise HostError(f"Transaction already open: {self._transaction.name}")
        self._transaction = FolderTransaction(self, name)
        return self._transaction

    def _end_transaction(self, transaction: FolderTransaction) -> None:
        if self._transaction is transaction:
            self._transaction = None

    def _require_transaction(self) -> FolderTransaction:
        if self._transaction is None:
            raise HostError("Workspace changes need an open transaction")
        return self._transaction

    def load_asset(self, path: Path, overwrite: bool) -> LoadedAsset | None:
        transaction = self._require_transaction()
        path = Path(path)
        manifest, _ = read_manifest(path)

        target = self.root / path.name
        if target.exists() and not overwrite:
            return None

        transaction.record_write(target)
        shutil.copy2(path, target)
        _logger.debug(f"Loaded {path} into {self.root}")
        return LoadedAsset(name=path.stem, source_path=path, variants=list(manifest["variants"]))

    def first_usable_variant(self, asset: LoadedAsset) -> str | None:
        return asset.variants[0] if asset.variants else None

    def activate_variant(self, asset: LoadedAsset, variant: str) -> None:
        transaction = self._require_transaction()
        if variant not in asset.variants:
            raise HostError(f"{asset.name}: unknown variant {variant!r}")
        transaction.record_activation(asset.name, self.active_variants.get(asset.name))
        self.active_variants[asset.name] = variant

    def _set_active(self, asset_name: str, variant: str | None) -> None:
        if variant is None:
            self.active_variants.pop(asset_name, None)
        else:
            self.active_variants[asset_name] = variant

    def request_placement(self, asset: LoadedAsset, variant: str) -> None:
        self.placements.append((asset.name, variant))
        _logger.info(f"Placement requested: {asset.name} : {variant}")


class IdleLoop(IdleSource):
    """Idle signal raised explicitly through ``pump()``."""

    def __init__(self):
        self._listeners: list[Callable[[], None]] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_idle_listener(self, callback: Callable[[], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_idle_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def pump(self) -> int:
        """Raise one idle signal. Returns the number of listeners called."""
        listeners = list(self._listeners)
        for callback in listeners:
            callback()
        return len(listeners)
