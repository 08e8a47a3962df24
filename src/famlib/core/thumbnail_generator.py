"""Square preview rendering for catalog assets.

Each variant of an asset is rendered at twice the requested size and then
downsampled onto a white square canvas. Thin symbols in the source views end
up much less noticeable that way.
"""

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from famlib.core.catalog.layout import LibraryLayout, safe_file_name
from famlib.core.host import AssetDocument, AssetHost, Notifier, RenderFunc, null_notifier
from famlib.utils.logger import get_logger

_logger = get_logger()

PREVIEW_VIEW_NAME = "Thumbnail"
OVERSAMPLE = 2
HIDE_BATCH_SIZE = 200

# View clutter hidden before rendering
HIDDEN_CATEGORIES = (
    "Dimensions",
    "Constraints",
    "Reference Lines",
    "Reference Planes",
    "Connectors",
)
HIDDEN_ELEMENT_CLASSES = ("Dimension", "ReferencePlane", "ReferencePoint")

BACKGROUND = (255, 255, 255, 255)


@dataclass
class ThumbnailResult:
    """Outcome of a thumbnail run."""

    assets: int = 0
    rendered: int = 0
    failed: int = 0


def make_square_png(source: Path, target: Path, size: int) -> None:
    """Draw ``source`` centered on a white ``size`` x ``size`` canvas.

    The aspect ratio is preserved. The result is written to ``target``
    through a temp file that replaces the target in one step.
    """
    with Image.open(source) as src:
        src.load()
        image = src.convert("RGBA")

    scale = min(size / image.width, size / image.height)
    width = max(1, round(image.width * scale))
    height = max(1, round(image.height * scale))
    resized = image.resize((width, height), Image.Resampling.LANCZOS)

    canvas = Image.new("RGBA", (size, size), BACKGROUND)
    canvas.alpha_composite(resized, ((size - width) // 2, (size - height) // 2))

    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    try:
        canvas.convert("RGB").save(tmp, format="PNG")
        os.replace(tmp, target)
    finally:
        if tmp.exists():
            tmp.unlink()


class ThumbnailGenerator:
    """Renders per-variant and fallback thumbnails for every asset file."""

    def __init__(self, host: AssetHost, render: RenderFunc, notify: Notifier | None = None):
        self._host = host
        self._render = render
        self._notify = notify or null_notifier

    def generate(self, root: Path | str | None, pixel_size: int) -> ThumbnailResult:
        """Render thumbnails for all assets below ``root``."""
        result = ThumbnailResult()
        if not root or pixel_size <= 0:
            return result
        root = Path(root)
        if not root.is_dir():
            return result

        layout = LibraryLayout(root, self._host.asset_extension)
        folder = layout.asset_folder()
        layout.thumbs_folder.mkdir(parents=True, exist_ok=True)
        layout.variant_thumbs_folder.mkdir(parents=True, exist_ok=True)

        files = list(layout.iter_assets(folder))
        if not files:
            self._notify("Family Library", f"No asset files found in:\n{folder}")
            return result

        error_shown = False
        for path in files:
            result.assets += 1
            try:
                result.rendered += self._render_asset(layout, folder, path, pixel_size)
            except Exception as e:
                result.failed += 1
                _logger.warning(f"Thumbnail export failed for {path}: {e}")
                if not error_shown:
                    error_shown = True
                    self._notify(
                        "Family Library",
                        f"Thumbnail export failed for:\n{path}\n\n{e}",
                    )

        _logger.info(
            f"Thumbnails for {root}: {result.rendered} images, "
            f"{result.assets} assets, {result.failed} failed"
        )
        return result

    def _render_asset(self, layout: LibraryLayout, folder: Path, path: Path, pixel_size: int) -> int:
        rel = layout.relative_path(folder, path)
        fallback_png = layout.thumbnail_path(rel)
        variant_dir = layout.variant_thumbnail_dir(rel)
        variant_dir.mkdir(parents=True, exist_ok=True)

        document = self._host.open_document(path)
        written = 0
        try:
            if document is None or not document.is_asset:
                return 0
            variants = document.variant_names()
            if not variants:
                return 0

            # Nothing done inside this group is ever committed
            group = document.begin_scope("Temp: Thumbnail Export")
            try:
                view = self._prepare_view(document)
                if view is None:
                    return 0

                wrote_fallback = False
                for variant in variants:
                    document.activate_variant(variant)
                    document.regenerate()

                    target = variant_dir / f"{safe_file_name(variant)}.png"
                    self._export_square(view, target, pixel_size)
                    written += 1

                    if not wrote_fallback:
                        fallback_png.parent.mkdir(parents=True, exist_ok=True)
                        shutil.copyfile(target, fallback_png)
                        wrote_fallback = True
            finally:
                group.rollback()
        finally:
            if document is not None:
                try:
                    document.close()
                except Exception as e:
                    _logger.debug(f"Closing {path} failed: {e}")
        return written

    def _prepare_view(self, document: AssetDocument):
        view = document.get_or_create_preview_view(PREVIEW_VIEW_NAME)
        if view is None:
            return None

        for category in HIDDEN_CATEGORIES:
            try:
                document.hide_category(view, category)
            except Exception as e:
                _logger.debug(f"Cannot hide category {category}: {e}")

        for element_class in HIDDEN_ELEMENT_CLASSES:
            try:
                ids = document.element_ids(element_class)
            except Exception as e:
                _logger.debug(f"Cannot collect {element_class} elements: {e}")
                continue
            # Small batches so one unhideable element doesn't spoil the rest
            for start in range(0, len(ids), HIDE_BATCH_SIZE):
                try:
                    document.hide_elements(view, ids[start : start + HIDE_BATCH_SIZE])
                except Exception as e:
                    _logger.debug(f"Cannot hide {element_class} elements: {e}")
        return view

    def _export_square(self, view, target: Path, pixel_size: int) -> None:
        raw = Path(self._render(view, pixel_size * OVERSAMPLE))
        try:
            make_square_png(raw, target, pixel_size)
        finally:
            if raw.exists():
                raw.unlink()
