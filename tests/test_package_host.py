"""Tests for the file-based package host."""

from pathlib import Path
from zipfile import ZipFile

import pytest
from PIL import Image

from famlib.core.batch_loader import BatchLoader
from famlib.core.catalog.indexer import LibraryIndexer
from famlib.core.catalog.store import CatalogStore
from famlib.core.host import ConflictChoice, HostError
from famlib.core.package_host import (
    FolderWorkspace,
    IdleLoop,
    ManifestError,
    PackageHost,
    PackageRenderer,
    write_package,
)
from famlib.core.placement import DeferredPlacement
from famlib.core.thumbnail_generator import ThumbnailGenerator


@pytest.fixture
def package_root(temp_dir: Path) -> Path:
    root = temp_dir / "library"
    families = root / "Families"
    write_package(
        families / "Lamp.fampkg",
        "Lighting Fixtures",
        ["60W", "40W"],
        file_info={"Saved_In_Version": "Autodesk Revit 2024"},
        previews={"60W": Image.new("RGB", (80, 40), (0, 0, 255))},
        elements={"Dimension": [1, 2, 3]},
    )
    write_package(families / "Socket.fampkg", "Electrical Fixtures", ["Single"])
    return root


class TestPackageHost:
    """Test opening packages."""

    def test_open_document(self, package_root: Path):
        """Test reading the manifest of a package."""
        document = PackageHost().open_document(package_root / "Families" / "Lamp.fampkg")

        assert document.category == "Lighting Fixtures"
        assert document.variant_names() == ["60W", "40W"]
        assert document.element_ids("Dimension") == [1, 2, 3]
        assert document.preview_image("60W") is not None
        assert document.preview_image("40W") is None

    def test_file_info_keys_lowercase(self, package_root: Path):
        """Test that file info keys are normalized."""
        info = PackageHost().read_file_info(package_root / "Families" / "Lamp.fampkg")
        assert info == {"saved_in_version": "Autodesk Revit 2024"}

    def test_bad_packages(self, temp_dir: Path):
        """Test that broken packages raise ManifestError."""
        not_zip = temp_dir / "bad.fampkg"
        not_zip.write_bytes(b"plain text")
        no_manifest = temp_dir / "empty.fampkg"
        with ZipFile(no_manifest, "w") as zf:
            zf.writestr("readme.txt", "nothing")
        bad_json = temp_dir / "json.fampkg"
        with ZipFile(bad_json, "w") as zf:
            zf.writestr("manifest.json", "{oops")

        for path in (not_zip, no_manifest, bad_json):
            with pytest.raises(ManifestError):
                PackageHost().open_document(path)

    def test_scope_rollback_restores_state(self, package_root: Path):
        """Test that rollback discards view and variant changes."""
        document = PackageHost().open_document(package_root / "Families" / "Lamp.fampkg")

        with document.begin_scope("temp"):
            view = document.get_or_create_preview_view("Thumbnail")
            document.hide_category(view, "Dimensions")
            document.activate_variant("40W")

        assert document.view_names == []
        assert document.active_variant == "60W"

    def test_unknown_variant_raises(self, package_root: Path):
        """Test that activating a missing variant fails."""
        document = PackageHost().open_document(package_root / "Families" / "Socket.fampkg")
        with pytest.raises(HostError):
            document.activate_variant("Double")


class TestPackageRendering:
    """Test indexing and rendering packages end to end."""

    def test_index_and_thumbnails(self, package_root: Path):
        """Test the indexer and renderer with the package host."""
        host = PackageHost()
        thumbs = ThumbnailGenerator(host, PackageRenderer()).generate(package_root, 64)
        result = LibraryIndexer(host).build_index(package_root)

        assert thumbs.rendered == 3
        assert result.added == 2
        items = CatalogStore.read(CatalogStore.index_path(package_root))
        lamp = items[0]
        assert lamp.display_name == "Lamp"
        assert lamp.format_version == "2024"
        assert lamp.variant_names == ["40W", "60W"]

        for path in (
            package_root / "Thumbs" / "Lamp.png",
            package_root / "Thumbs_Types" / "Lamp" / "40W.png",
            package_root / "Thumbs_Types" / "Socket" / "Single.png",
        ):
            with Image.open(path) as image:
                assert image.size == (64, 64)

        with Image.open(package_root / "Thumbs" / "Lamp.png") as image:
            red, green, blue = image.getpixel((32, 32))
            assert blue > 200 and red < 60


class TestFolderWorkspace:
    """Test loading packages into a folder workspace."""

    def test_load_and_commit(self, package_root: Path, temp_dir: Path):
        """Test that committed loads stay in the workspace."""
        workspace = FolderWorkspace(temp_dir / "project")
        files = sorted((package_root / "Families").glob("*.fampkg"))

        report = BatchLoader(workspace, lambda name, path: ConflictChoice.SKIP).load_selected(files)

        assert report.loaded == 2
        assert workspace.asset_names() == ["Lamp", "Socket"]

    def test_cancel_restores_folder(self, package_root: Path, temp_dir: Path):
        """Test that cancel removes new files and restores replaced ones."""
        workspace = FolderWorkspace(temp_dir / "project")
        families = package_root / "Families"
        (workspace.root / "Socket.fampkg").write_bytes(b"old socket")
        answers = iter([ConflictChoice.CANCEL])

        report = BatchLoader(workspace, lambda name, path: next(answers)).load_selected(
            [families / "Lamp.fampkg", families / "Socket.fampkg"]
        )

        assert report.cancelled
        assert workspace.asset_names() == ["Socket"]
        assert (workspace.root / "Socket.fampkg").read_bytes() == b"old socket"

    def test_overwrite_rollback_restores_backup(self, package_root: Path, temp_dir: Path):
        """Test that a rolled back overwrite restores the previous file."""
        workspace = FolderWorkspace(temp_dir / "project")
        (workspace.root / "Socket.fampkg").write_bytes(b"old socket")

        transaction = workspace.begin_transaction("test")
        workspace.load_asset(package_root / "Families" / "Socket.fampkg", overwrite=True)
        assert (workspace.root / "Socket.fampkg").read_bytes() != b"old socket"
        transaction.rollback()

        assert (workspace.root / "Socket.fampkg").read_bytes() == b"old socket"

    def test_changes_need_transaction(self, package_root: Path, temp_dir: Path):
        """Test that loading outside a transaction is refused."""
        workspace = FolderWorkspace(temp_dir / "project")
        with pytest.raises(HostError):
            workspace.load_asset(package_root / "Families" / "Lamp.fampkg", overwrite=False)

    def test_load_and_place(self, qapp, package_root: Path, temp_dir: Path):
        """Test loading one package and placing it on the next idle signal."""
        workspace = FolderWorkspace(temp_dir / "project")
        idle = IdleLoop()
        placement = DeferredPlacement(
            idle, lambda target: workspace.request_placement(target.asset, target.variant)
        )

        report = BatchLoader(workspace, lambda name, path: ConflictChoice.SKIP, placement).load_selected(
            [package_root / "Families" / "Lamp.fampkg"], place_after_loading=True
        )

        assert report.placement_started
        assert workspace.active_variants == {"Lamp": "60W"}
        assert idle.listener_count == 1
        assert idle.pump() == 1
        assert workspace.placements == [("Lamp", "60W")]
        assert idle.listener_count == 0


class TestIdleLoop:
    """Test the explicit idle signal."""

    def test_add_remove(self):
        """Test that listeners are unique and removal is idempotent."""
        idle = IdleLoop()
        calls = []

        def listener():
            calls.append(1)

        idle.add_idle_listener(listener)
        idle.add_idle_listener(listener)
        assert idle.pump() == 1
        idle.remove_idle_listener(listener)
        idle.remove_idle_listener(listener)
        assert idle.pump() == 0
        assert calls == [1]
