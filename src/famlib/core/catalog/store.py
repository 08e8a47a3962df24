"""Catalog persistence (index.json)."""

import json
import os
from pathlib import Path

from famlib.core.catalog.models import CatalogItem
from famlib.utils.logger import get_logger

_logger = get_logger()

INDEX_FILE_NAME = "index.json"


class CatalogStore:
    """Read and write the catalog file of a library root."""

    @staticmethod
    def index_path(root: Path) -> Path:
        return Path(root) / INDEX_FILE_NAME

    @staticmethod
    def read(index_path: Path) -> list[CatalogItem]:
        """Read the catalog. Missing or corrupt files give an empty catalog."""
        index_path = Path(index_path)
        if not index_path.is_file():
            return []

        try:
            data = json.loads(index_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            _logger.warning(f"Catalog unreadable, starting empty: {index_path} ({e})")
            return []

        if not isinstance(data, list):
            _logger.warning(f"Catalog is not a record list, starting empty: {index_path}")
            return []

        return [CatalogItem.from_record(record) for record in data if isinstance(record, dict)]

    @staticmethod
    def write(index_path: Path, items: list[CatalogItem]) -> None:
        """Write the catalog atomically (temp file, then replace)."""
        index_path = Path(index_path)
        index_path.parent.mkdir(parents=True, exist_ok=True)

        payload = json.dumps(
            [item.to_record() for item in items],
            indent=2,
            ensure_ascii=False,
        )
        tmp_path = index_path.with_name(index_path.name + ".tmp")
        tmp_path.write_text(payload + "\n", encoding="utf-8")
        os.replace(tmp_path, index_path)
        _logger.debug(f"Catalog written: {index_path} ({len(items)} items)")
