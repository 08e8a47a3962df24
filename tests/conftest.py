"""Pytest fixtures for Family Library tests."""

import shutil
import tempfile
from pathlib import Path

import pytest
from PIL import Image
from PySide6.QtCore import QCoreApplication

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
from famlib.utils.settings import Settings


@pytest.fixture(scope="session")
def qapp():
    """Qt core application for signal delivery."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    # Cleanup
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def settings(temp_dir: Path):
    """Settings backed by an INI file in the temp directory."""
    return Settings(temp_dir / "settings.ini")


@pytest.fixture
def library_root(temp_dir: Path):
    """Library root with a Families folder and three asset files."""
    root = temp_dir / "library"
    families = root / "Families"
    (families / "Electrical").mkdir(parents=True)
    (families / "Socket.rfa").write_bytes(b"socket")
    (families / "Electrical" / "Switch.rfa").write_bytes(b"switch")
    (families / "Electrical" / "Lamp.rfa").write_bytes(b"lamp")
    return root


# === Host doubles ===


class FakeScope(ScopedMutation):
    def __init__(self, document: "FakeDocument", name: str):
        super().__init__(name)
        self.document = document
        self.committed = False
        self.rolled_back = False
        document.scopes.append(self)

    def _do_commit(self):
        self.committed = True

    def _do_rollback(self):
        self.rolled_back = True


class FakeDocument(AssetDocument):
    def __init__(self, host: "FakeHost", path: Path, profile: dict):
        self.host = host
        self.path = path
        self._profile = profile
        self.scopes: list[FakeScope] = []
        self.hidden_categories: list[str] = []
        self.hide_batches: list[int] = []
        self.active_variant: str | None = None
        self.closed = False

    @property
    def is_asset(self) -> bool:
        return self._profile.get("is_asset", True)

    @property
    def category(self) -> str:
        if self._profile.get("category_error"):
            raise HostError("category unavailable")
        return self._profile.get("category", "")

    def variant_names(self) -> list[str]:
        return list(self._profile.get("variants", []))

    def begin_scope(self, name: str) -> FakeScope:
        return FakeScope(self, name)

    def get_or_create_preview_view(self, name: str):
        return {"document": self, "name": name}

    def hide_category(self, view, category: str) -> None:
        self.hidden_categories.append(category)

    def element_ids(self, element_class: str) -> list:
        if element_class == "Dimension":
            return list(range(self._profile.get("dimensions", 0)))
        return []

    def hide_elements(self, view, element_ids: list) -> None:
        self.hide_batches.append(len(element_ids))

    def activate_variant(self, name: str) -> None:
        self.active_variant = name

    def regenerate(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True
        self.host.closed += 1


class FakeHost(AssetHost):
    """Asset host keyed by file stem, counting every open."""

    def __init__(self, profiles: dict | None = None):
        self.profiles = profiles or {}
        self.open_count = 0
        self.closed = 0
        self.opened: list[str] = []
        self.documents: list[FakeDocument] = []

    def open_document(self, path: Path) -> FakeDocument:
        self.open_count += 1
        self.opened.append(path.stem)
        profile = self.profiles.get(path.stem, {"category": "Generic", "variants": ["Default"]})
        if profile.get("open_error"):
            raise HostError(f"cannot open {path.name}")
        document = FakeDocument(self, path, profile)
        self.documents.append(document)
        return document

    def read_file_info(self, path: Path) -> dict:
        return dict(self.profiles.get(path.stem, {}).get("info", {}))


class FakeRender:
    """Writes a wide PNG per call, so squaring is observable."""

    def __init__(self, fail_variants: set[str] | None = None):
        self.calls: list[tuple[str | None, int]] = []
        self.outputs: list[Path] = []
        self.fail_variants = fail_variants or set()

    def __call__(self, view, pixel_size: int) -> Path:
        variant = view["document"].active_variant
        self.calls.append((variant, pixel_size))
        if variant in self.fail_variants:
            raise HostError(f"render failed for {variant}")
        fd, name = tempfile.mkstemp(suffix=".png")
        path = Path(name)
        with open(fd, "wb") as f:
            Image.new("RGB", (pixel_size, max(pixel_size // 2, 1)), (200, 30, 30)).save(f, format="PNG")
        self.outputs.append(path)
        return path


class FakeTransaction(WorkspaceTransaction):
    def __init__(self, workspace: "FakeWorkspace", name: str):
        super().__init__(name)
        self.workspace = workspace
        self.state = "open"
        self.snapshot = set(workspace.names)

    def _do_commit(self):
        self.state = "committed"

    def _do_rollback(self):
        self.state = "rolled_back"
        self.workspace.names = set(self.snapshot)


class FakeWorkspace(Workspace):
    """Workspace that tracks loaded names and transactions."""

    def __init__(self, names=(), fail_names=(), raise_names=()):
        self.names: set[str] = set(names)
        self.fail_names = set(fail_names)
        self.raise_names = set(raise_names)
        self.transactions: list[FakeTransaction] = []
        self.loads: list[tuple[str, bool]] = []
        self.activations: list[tuple[str, str]] = []
        self.placements: list[tuple[str, str]] = []

    def asset_names(self):
        return sorted(self.names)

    def begin_transaction(self, name: str) -> FakeTransaction:
        transaction = FakeTransaction(self, name)
        self.transactions.append(transaction)
        return transaction

    def load_asset(self, path: Path, overwrite: bool) -> LoadedAsset | None:
        name = path.stem
        if name in self.raise_names:
            raise HostError(f"refused {name}")
        if name in self.fail_names:
            return None
        self.loads.append((name, overwrite))
        self.names.add(name)
        return LoadedAsset(name=name, source_path=path, variants=[f"{name} A", f"{name} B"])

    def first_usable_variant(self, asset: LoadedAsset) -> str | None:
        return asset.variants[0] if asset.variants else None

    def activate_variant(self, asset: LoadedAsset, variant: str) -> None:
        self.activations.append((asset.name, variant))

    def request_placement(self, asset: LoadedAsset, variant: str) -> None:
        self.placements.append((asset.name, variant))


class FakeIdleSource(IdleSource):
    def __init__(self):
        self.listeners: list = []
        self.added = 0
        self.removed = 0

    def add_idle_listener(self, callback) -> None:
        self.added += 1
        self.listeners.append(callback)

    def remove_idle_listener(self, callback) -> None:
        self.removed += 1
        if callback in self.listeners:
            self.listeners.remove(callback)

    def fire(self) -> None:
        for callback in list(self.listeners):
            callback()


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def fake_render():
    render = FakeRender()
    yield render
    for path in render.outputs:
        path.unlink(missing_ok=True)


@pytest.fixture
def notifications():
    """Collected (title, message) notifications."""
    return []


@pytest.fixture
def notify(notifications):
    return lambda title, message: notifications.append((title, message))
